import functools
import os
import stat
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterator, NamedTuple


class FileContext:
    """Context object for a file or directory during traversal.

    The path attribute is the logical path of the entry: children of a followed symlink
    keep the symlink's position in the tree. Use relative_path for the position relative
    to the traversal root.
    """
    def __init__(self, parent, name: str | None, path: Path | None = None, st: os.stat_result | None = None):
        self._parent: FileContext | None = parent
        self._name: str | None = name
        self._stat: os.stat_result | None = st
        self._path: Path | None = path
        self._associated: dict[Any, Any] = {}

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def parent(self) -> 'FileContext':
        if self._parent is None:
            raise LookupError("no parent")

        return self._parent

    @property
    def stat(self) -> os.stat_result:
        if self._stat is None:
            if self._path is None:
                raise LookupError("stat not available and path not provided")
            self._stat = self._path.stat(follow_symlinks=False)
        return self._stat

    @functools.cached_property
    def relative_path(self) -> PurePosixPath | None:
        """Get the relative path from the root context.

        Builds the path by reusing parent results and caches it.
        """
        if self._name is None:
            # Root context with no name
            return None

        if self._parent is None:
            return PurePosixPath(self._name)

        parent_path = self._parent.relative_path
        if parent_path is None:
            return PurePosixPath(self._name)

        return parent_path / self._name

    @functools.cached_property
    def depth(self) -> int:
        """Depth below the root context; the root's direct children are at depth 0."""
        if self._parent is None:
            return -1 if self._name is None else 0
        return self._parent.depth + 1

    def ancestors(self) -> Iterator['FileContext']:
        context = self._parent
        while context is not None:
            yield context
            context = context._parent

    def is_dir(self):
        return stat.S_ISDIR(self.stat.st_mode)

    def is_file(self):
        return stat.S_ISREG(self.stat.st_mode)

    def is_symlink(self):
        return stat.S_ISLNK(self.stat.st_mode)

    # Dictionary-like interface for associated objects
    def __getitem__(self, key: Any) -> Any:
        return self._associated[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._associated[key] = value

    def __delitem__(self, key: Any) -> None:
        del self._associated[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._associated

    def get(self, key: Any, default: Any = None) -> Any:
        return self._associated.get(key, default)


class WalkPolicy(NamedTuple):
    """Policy controlling filesystem traversal behavior.

    Attributes:
        should_descend: Called with each yielded context once the consumer has processed it.
                        Returns the directory whose entries become the context's children
                        (the real directory for a followed symlink), or None to skip them.
        on_error: Called with (directory, exception) when a directory cannot be listed.
                  The directory's children are skipped and the walk continues.
    """
    should_descend: Callable[[FileContext], Path | None]
    on_error: Callable[[Path, OSError], None]


def list_children(directory: Path, parent: FileContext) -> list[FileContext]:
    """List a directory as child contexts of parent, ordered by name.

    Child paths are built from the parent's logical path, not from directory, so the
    entries of a followed symlink appear at the symlink's position.
    """
    base = parent.path if parent.path is not None else directory
    return [FileContext(parent, name, path=base / name) for name in sorted(os.listdir(directory))]


def walk_with_policy(root: Path, policy: WalkPolicy,
                     root_context: FileContext | None = None) -> Iterator[FileContext]:
    """Walk a directory tree in deterministic pre-order.

    An explicit stack of pending contexts replaces recursion: popping a context yields
    it, and its children (if the policy descends) are pushed in reverse name order so
    the first child is visited next. Identical filesystem state produces identical
    output order.

    Args:
        root: Root directory to walk; the root itself is not yielded
        policy: WalkPolicy instance controlling descent and listing errors
        root_context: Nameless context standing for root; created if not given

    Yields:
        FileContext for each entry below root

    Example:
        policy = WalkPolicy(
            should_descend=lambda c: c.path if c.is_dir() else None,
            on_error=lambda path, exc: None,
        )
        for context in walk_with_policy(root, policy):
            print(context.relative_path)
    """
    if root_context is None:
        root_context = FileContext(None, None, root)
    stack: list[FileContext] = []

    try:
        stack.extend(reversed(list_children(root, root_context)))
    except OSError as e:
        policy.on_error(root, e)
        return

    while stack:
        context = stack.pop()
        yield context

        directory = policy.should_descend(context)
        if directory is None:
            continue

        try:
            children = list_children(directory, context)
        except OSError as e:
            policy.on_error(directory, e)
            continue

        stack.extend(reversed(children))
