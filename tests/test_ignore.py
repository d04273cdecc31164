import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pathfinder.ignore import IgnoreMatcher, IgnoreRuleCache


class IgnoreMatcherTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self._tmpdir.name)

    def tearDown(self):
        self._tmpdir.cleanup()

    def write(self, relative: str, content: str):
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    def test_no_ignore_files(self):
        matcher = IgnoreMatcher(self.root)

        self.assertFalse(matcher.is_ignored('anything.txt'))

    def test_patterns_match_at_any_level(self):
        self.write('.gitignore', '*.log\n')
        matcher = IgnoreMatcher(self.root)

        self.assertTrue(matcher.is_ignored('debug.log'))
        self.assertTrue(matcher.is_ignored('deep/nested/debug.log'))
        self.assertFalse(matcher.is_ignored('debug.txt'))

    def test_directory_only_pattern(self):
        self.write('.gitignore', 'build/\n')
        matcher = IgnoreMatcher(self.root)

        self.assertTrue(matcher.is_ignored('build', is_dir=True))
        self.assertFalse(matcher.is_ignored('build', is_dir=False))

    def test_nested_rules_are_relative_to_their_directory(self):
        self.write('sub/.gitignore', '/local.txt\n')
        matcher = IgnoreMatcher(self.root)

        self.assertTrue(matcher.is_ignored('sub/local.txt'))
        self.assertFalse(matcher.is_ignored('local.txt'))
        self.assertFalse(matcher.is_ignored('sub/deeper/local.txt'))

    def test_deeper_negation_wins(self):
        self.write('.gitignore', '*.log\n')
        self.write('sub/.gitignore', '!keep.log\n')
        matcher = IgnoreMatcher(self.root)

        self.assertFalse(matcher.is_ignored('sub/keep.log'))
        self.assertTrue(matcher.is_ignored('sub/drop.log'))
        self.assertTrue(matcher.is_ignored('keep.log'))

    def test_both_ignore_files_are_read(self):
        self.write('.pathfinderignore', 'secret.txt\n')
        self.write('.gitignore', '*.tmp\n')
        matcher = IgnoreMatcher(self.root)

        self.assertTrue(matcher.is_ignored('secret.txt'))
        self.assertTrue(matcher.is_ignored('x.tmp'))

    def test_custom_ignore_file_names(self):
        self.write('.customignore', '*.bak\n')
        self.write('.gitignore', '*.log\n')
        matcher = IgnoreMatcher(self.root, ignore_file_names=['.customignore'])

        self.assertTrue(matcher.is_ignore_file('.customignore'))
        self.assertFalse(matcher.is_ignore_file('.gitignore'))
        self.assertTrue(matcher.is_ignored('a.bak'))
        self.assertFalse(matcher.is_ignored('a.log'))

    def test_rules_loaded_once_per_directory(self):
        self.write('.gitignore', '*.log\n')
        cache = IgnoreRuleCache()
        matcher = IgnoreMatcher(self.root, cache=cache)

        matcher.is_ignored('a.log')
        self.write('.gitignore', '*.txt\n')

        self.assertTrue(matcher.is_ignored('b.log'))
        self.assertFalse(matcher.is_ignored('b.txt'))
        self.assertEqual(1, len(cache))


class IgnoreRuleCacheTest(unittest.TestCase):
    def test_entries_expire(self):
        cache = IgnoreRuleCache(ttl=10)

        with mock.patch('pathfinder.ignore.time.monotonic', return_value=100.0):
            cache[Path('/a')] = None
        with mock.patch('pathfinder.ignore.time.monotonic', return_value=105.0):
            self.assertIn(Path('/a'), cache)
        with mock.patch('pathfinder.ignore.time.monotonic', return_value=111.0):
            self.assertNotIn(Path('/a'), cache)

        self.assertEqual(0, len(cache))

    def test_no_ttl_keeps_entries(self):
        cache = IgnoreRuleCache()
        cache[Path('/a')] = None

        with mock.patch('pathfinder.ignore.time.monotonic', return_value=1e12):
            self.assertIn(Path('/a'), cache)

        cache.clear()
        self.assertNotIn(Path('/a'), cache)


if __name__ == '__main__':
    unittest.main()
