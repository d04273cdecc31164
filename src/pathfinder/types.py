"""Core value types shared by the traversal engine and the repository root locator."""
import os
from enum import StrEnum
from pathlib import Path
from typing import Any, Awaitable, Callable, NamedTuple, Sequence

from .constants import DEFAULT_MAX_DEPTH


class EnforcementLevel(StrEnum):
    """How a path escaping the constraint root is handled."""
    STRICT = 'strict'
    WARN = 'warn'
    PERMISSIVE = 'permissive'


class ConstraintType(StrEnum):
    REPOSITORY = 'repository'
    WORKSPACE = 'workspace'
    CLOUD = 'cloud'


class LoaderType(StrEnum):
    LOCAL = 'local'
    REMOTE = 'remote'
    CLOUD = 'cloud'


class ChecksumAlgorithm(StrEnum):
    XXH3_128 = 'xxh3-128'
    SHA256 = 'sha256'


class ChecksumEncoding(StrEnum):
    HEX = 'hex'


class PathConstraint(NamedTuple):
    """Boundary that resolved paths must not escape.

    Attributes:
        root: Constraint root directory; a constraint without root never rejects anything
        type: Classification of the boundary (repository/workspace/cloud)
        enforcement_level: STRICT aborts, WARN reports and skips, PERMISSIVE ignores
    """
    root: str | os.PathLike | None = None
    type: ConstraintType = ConstraintType.REPOSITORY
    enforcement_level: EnforcementLevel = EnforcementLevel.WARN


class PathfinderQuery(NamedTuple):
    """Discovery query for Pathfinder.find().

    Attributes:
        root: Directory to traverse; must exist and be a directory
        include: Glob patterns an entry must match at least one of (empty matches everything)
        exclude: Glob patterns an entry must not match; matching directories are not descended
        max_depth: Maximum depth of reported entries, where the root's direct children are
                   depth 0; None for unlimited
        follow_symlinks: Dereference symlinks and descend into symlinked directories
        include_hidden: Report and descend into dot-prefixed entries
        honor_ignore_files: Apply ignore files; None inherits PathfinderConfig.honor_ignore_files
    """
    root: str | os.PathLike
    include: Sequence[str] = ()
    exclude: Sequence[str] = ()
    max_depth: int | None = None
    follow_symlinks: bool = False
    include_hidden: bool = False
    honor_ignore_files: bool | None = None


class FileMetadata(NamedTuple):
    size: int | None = None
    modified: str | None = None
    mode: str | None = None
    checksum: str | None = None
    checksum_algorithm: ChecksumAlgorithm | None = None
    checksum_error: str | None = None
    is_symlink: bool = False
    symlink_target: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary, omitting unset fields."""
        return {k: str(v) if isinstance(v, StrEnum) else v
                for k, v in self._asdict().items() if v is not None and v is not False}


class PathResult(NamedTuple):
    """A single discovered entry.

    Attributes:
        relative_path: POSIX path relative to the query root
        source_path: Absolute path of the entry under the (resolved) query root
        loader_type: Loader that produced the result
        metadata: Stat-derived metadata and optional checksum
        logical_path: Path presented to downstream consumers, same as relative_path
    """
    relative_path: str
    source_path: Path
    loader_type: LoaderType
    metadata: FileMetadata
    logical_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'relativePath': self.relative_path,
            'sourcePath': str(self.source_path),
            'logicalPath': self.logical_path if self.logical_path is not None else self.relative_path,
            'loaderType': str(self.loader_type),
            'metadata': self.metadata.to_dict(),
        }


ResultCallback = Callable[[PathResult], None | Awaitable[None]]
ProgressCallback = Callable[[PathResult], None | Awaitable[None]]
ErrorCallback = Callable[[Exception, str], None | Awaitable[None]]


class PathfinderCallbacks(NamedTuple):
    """Optional observers for a find() call.

    Attributes:
        result_callback: Invoked once per reported entry, in traversal order
        progress_callback: Invoked once per reported entry, after result_callback
        error_callback: Invoked with (error, path) for every recovered issue
    """
    result_callback: ResultCallback | None = None
    progress_callback: ProgressCallback | None = None
    error_callback: ErrorCallback | None = None


class FindRepoOptions(NamedTuple):
    """Options for find_repository_root().

    Attributes:
        boundary: Upper bound of the search (inclusive); defaults to the home directory when
                  the start path lies beneath it, otherwise the filesystem root
        max_depth: Maximum number of upward steps from the start path
        stop_at_first: Return the nearest match; when False return the topmost match in bounds
        constraint: Constraint whose root the search may not leave
        follow_symlinks: Resolve real paths while walking upward and detect loops
    """
    boundary: str | os.PathLike | None = None
    max_depth: int = DEFAULT_MAX_DEPTH
    stop_at_first: bool = True
    constraint: PathConstraint | None = None
    follow_symlinks: bool = False


def with_max_depth(max_depth: int) -> FindRepoOptions:
    return FindRepoOptions(max_depth=max_depth)


def with_boundary(boundary: str | os.PathLike) -> FindRepoOptions:
    return FindRepoOptions(boundary=boundary)


def with_stop_at_first(stop_at_first: bool) -> FindRepoOptions:
    return FindRepoOptions(stop_at_first=stop_at_first)


def with_constraint(constraint: PathConstraint) -> FindRepoOptions:
    return FindRepoOptions(constraint=constraint)


def with_follow_symlinks(follow_symlinks: bool) -> FindRepoOptions:
    return FindRepoOptions(follow_symlinks=follow_symlinks)
