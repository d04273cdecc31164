import os
import tempfile
import unittest
from pathlib import Path, PurePosixPath

from pathfinder.utils.walker import FileContext, WalkPolicy, list_children, walk_with_policy


def descend_directories(context: FileContext):
    return context.path if context.is_dir() else None


class FileContextTest(unittest.TestCase):
    """Test FileContext class functionality."""

    def test_name_property_read_only(self):
        context = FileContext(None, "test.txt")
        self.assertEqual("test.txt", context.name)

        with self.assertRaises(AttributeError):
            context.name = "other.txt"

    def test_parent_property_raises_on_none(self):
        """Test that accessing parent raises when None."""
        context = FileContext(None, "root")

        with self.assertRaises(LookupError) as cm:
            _ = context.parent

        self.assertIn("no parent", str(cm.exception))

    def test_stat_lazy_loading(self):
        """Test that stat is loaded lazily from path and cached."""
        with tempfile.TemporaryDirectory() as tmpdir:
            test_file = Path(tmpdir) / "test.txt"
            test_file.write_text("content")

            context = FileContext(None, "test.txt", test_file)
            self.assertIsNone(context._stat)

            st = context.stat
            self.assertEqual(7, st.st_size)
            self.assertIs(st, context.stat)

    def test_stat_does_not_follow_symlinks(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "target"
            target.mkdir()
            link = Path(tmpdir) / "link"
            os.symlink(target, link)

            context = FileContext(None, "link", link)

            self.assertTrue(context.is_symlink())
            self.assertFalse(context.is_dir())

    def test_stat_raises_when_unavailable(self):
        context = FileContext(None, "test")

        with self.assertRaises(LookupError) as cm:
            _ = context.stat

        self.assertIn("stat not available", str(cm.exception))

    def test_relative_path_nested(self):
        """Test relative_path below a nameless root context."""
        root = FileContext(None, None)
        dir1 = FileContext(root, "dir1")
        dir2 = FileContext(dir1, "dir2")
        file_ctx = FileContext(dir2, "file.txt")

        self.assertIsNone(root.relative_path)
        self.assertEqual(PurePosixPath("dir1/dir2/file.txt"), file_ctx.relative_path)

    def test_depth(self):
        root = FileContext(None, None)
        child = FileContext(root, "child")
        grandchild = FileContext(child, "grandchild")

        self.assertEqual(-1, root.depth)
        self.assertEqual(0, child.depth)
        self.assertEqual(1, grandchild.depth)

    def test_ancestors(self):
        root = FileContext(None, None)
        child = FileContext(root, "child")
        grandchild = FileContext(child, "grandchild")

        self.assertEqual([child, root], list(grandchild.ancestors()))
        self.assertEqual([], list(root.ancestors()))

    def test_associated_dict_interface(self):
        context = FileContext(None, "test")

        context["key1"] = "value1"
        self.assertEqual("value1", context["key1"])
        self.assertTrue("key1" in context)
        self.assertFalse("key2" in context)
        self.assertEqual("default", context.get("key2", "default"))

        del context["key1"]
        self.assertFalse("key1" in context)


class WalkWithPolicyTest(unittest.TestCase):
    """Test walk_with_policy function."""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self._tmpdir.name)
        (self.base / "b").mkdir()
        (self.base / "b" / "inner.txt").write_text("inner")
        (self.base / "a.txt").write_text("a")
        (self.base / "c.txt").write_text("c")

    def tearDown(self):
        self._tmpdir.cleanup()

    def walk(self, policy: WalkPolicy) -> list[str]:
        return [str(context.relative_path) for context in walk_with_policy(self.base, policy)]

    def test_pre_order_by_name(self):
        policy = WalkPolicy(should_descend=descend_directories, on_error=lambda path, exc: None)

        self.assertEqual(["a.txt", "b", "b/inner.txt", "c.txt"], self.walk(policy))

    def test_deterministic(self):
        policy = WalkPolicy(should_descend=descend_directories, on_error=lambda path, exc: None)

        self.assertEqual(self.walk(policy), self.walk(policy))

    def test_no_descent(self):
        policy = WalkPolicy(should_descend=lambda context: None, on_error=lambda path, exc: None)

        self.assertEqual(["a.txt", "b", "c.txt"], self.walk(policy))

    def test_descend_into_other_directory(self):
        """Children of a redirected directory keep the parent's logical position."""
        other = self.base / "b"
        policy = WalkPolicy(
            should_descend=lambda context: other if context.name == "c.txt" else None,
            on_error=lambda path, exc: None,
        )

        contexts = list(walk_with_policy(self.base, policy))

        self.assertEqual(["a.txt", "b", "c.txt", "c.txt/inner.txt"], [str(c.relative_path) for c in contexts])
        self.assertEqual(self.base / "c.txt" / "inner.txt", contexts[-1].path)

    def test_listing_errors_reported(self):
        errors = []
        policy = WalkPolicy(
            should_descend=lambda context: self.base / "missing" if context.name == "b" else None,
            on_error=lambda path, exc: errors.append((path, exc)),
        )

        self.assertEqual(["a.txt", "b", "c.txt"], self.walk(policy))
        self.assertEqual(self.base / "missing", errors[0][0])
        self.assertIsInstance(errors[0][1], FileNotFoundError)

    def test_missing_root(self):
        errors = []
        policy = WalkPolicy(should_descend=descend_directories, on_error=lambda path, exc: errors.append(path))

        self.assertEqual([], list(walk_with_policy(self.base / "missing", policy)))
        self.assertEqual([self.base / "missing"], errors)

    def test_root_context(self):
        root_context = FileContext(None, None, self.base)
        root_context["marker"] = True

        contexts = list(walk_with_policy(self.base, WalkPolicy(lambda c: None, lambda p, e: None), root_context))

        self.assertTrue(all(c.parent is root_context for c in contexts))

    def test_list_children_sorted(self):
        parent = FileContext(None, None, self.base)

        self.assertEqual(["a.txt", "b", "c.txt"], [c.name for c in list_children(self.base, parent)])


if __name__ == '__main__':
    unittest.main()
