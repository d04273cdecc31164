"""Cascading gitignore-style ignore files.

Each directory may hold ignore files (DEFAULT_IGNORE_FILES). Their rules apply to the
directory's descendants, with patterns relative to the directory holding the file. When
rules from several directories match a path, the deepest directory wins; within one
directory the last matching rule wins, and '!' re-includes a path. Pattern parsing and
matching is done by pathspec's GitIgnoreSpec.
"""
import logging
import time
from pathlib import Path
from typing import Iterable

from pathspec import GitIgnoreSpec

from .constants import DEFAULT_IGNORE_FILES

logger = logging.getLogger(__name__)


class IgnoreRuleCache:
    """Directory -> compiled ignore rules, with optional expiry.

    Args:
        ttl: Seconds after which an entry is reloaded; None keeps entries forever
    """

    def __init__(self, ttl: float | None = None):
        self._ttl = ttl
        self._entries: dict[Path, tuple[GitIgnoreSpec | None, float]] = {}

    def __contains__(self, directory: Path) -> bool:
        entry = self._entries.get(directory)
        if entry is None:
            return False
        if self._ttl is not None and time.monotonic() - entry[1] > self._ttl:
            del self._entries[directory]
            return False
        return True

    def __getitem__(self, directory: Path) -> GitIgnoreSpec | None:
        return self._entries[directory][0]

    def __setitem__(self, directory: Path, spec: GitIgnoreSpec | None) -> None:
        self._entries[directory] = (spec, time.monotonic())

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class IgnoreMatcher:
    """Decide whether paths below a root are excluded by ignore files.

    Usage:
        matcher = IgnoreMatcher(root)
        if matcher.is_ignored('build/output.o', is_dir=False):
            ...
    """

    def __init__(self, root: Path, ignore_file_names: Iterable[str] = DEFAULT_IGNORE_FILES,
                 cache: IgnoreRuleCache | None = None):
        self._root = root
        self._ignore_file_names = tuple(ignore_file_names)
        self._cache = cache if cache is not None else IgnoreRuleCache()

    @property
    def ignore_file_names(self) -> tuple[str, ...]:
        return self._ignore_file_names

    def is_ignore_file(self, name: str) -> bool:
        return name in self._ignore_file_names

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Return True if relative_path (POSIX, relative to root) is excluded.

        Rules are gathered from the root down to the entry's parent directory.

        Raises:
            OSError: an ignore file exists but cannot be read; the directory is then
                     cached without rules so the error is reported once
        """
        parts = relative_path.split('/')
        ignored: bool | None = None

        for level in range(len(parts)):
            directory = self._root.joinpath(*parts[:level])
            spec = self._rules_for(directory)
            if spec is None:
                continue

            candidate = '/'.join(parts[level:])
            if is_dir:
                candidate += '/'

            result = spec.check_file(candidate)
            if result.include is not None:
                ignored = result.include

        return bool(ignored)

    def _rules_for(self, directory: Path) -> GitIgnoreSpec | None:
        if directory in self._cache:
            return self._cache[directory]

        lines: list[str] = []
        try:
            for name in self._ignore_file_names:
                try:
                    with open(directory / name, encoding='utf-8', errors='replace') as f:
                        lines.extend(f.read().splitlines())
                except (FileNotFoundError, NotADirectoryError):
                    continue
        except OSError:
            self._cache[directory] = None
            raise

        spec = GitIgnoreSpec.from_lines(lines) if lines else None
        if spec is not None:
            logger.debug(f"Loaded {len(spec.patterns)} ignore rules from {directory}")
        self._cache[directory] = spec
        return spec

