"""Path safety: containment checks, constraint enforcement and symlink resolution.

Containment is decided component-wise on normalized absolute paths, so '/a/bc' is not
inside '/a/b' and '/a/b/../c' is treated as '/a/c'.
"""
import os
from pathlib import Path, PurePath
from typing import Callable, NamedTuple

from .errors import PathfinderError, PathfinderErrorCode, Severity
from .types import EnforcementLevel, PathConstraint
from .utils.walker import FileContext


REAL_PATH_KEY = 'real_path'


def to_posix_path(path: str | os.PathLike) -> str:
    return PurePath(path).as_posix()


def normalize_path(path: str | os.PathLike) -> Path:
    """Make a path absolute and collapse '.' and '..' without following symlinks.

    - Path() keeps .. components (e.g., Path("/a/b/../c") has .. in parts)
    - Path.resolve() follows symlinks on the filesystem
    - os.path.normpath() removes . and .. without following symlinks (what we want)
    """
    return Path(os.path.normpath(os.path.abspath(os.fspath(path))))


def is_path_within_root(candidate: str | os.PathLike, root: str | os.PathLike) -> bool:
    """Return True if candidate equals root or is a descendant of it after normalization."""
    return normalize_path(candidate).is_relative_to(normalize_path(root))


def resolve_real_path(path: str | os.PathLike) -> Path:
    """Resolve a path to its canonical real path.

    Raises:
        OSError: the path, or a link in its chain, does not exist, or a symlink loop
                 was encountered
    """
    return Path(os.path.realpath(path, strict=True))


def constraint_root(constraint: PathConstraint | None) -> Path | None:
    """Return the real path of the constraint root, or None if there is nothing to enforce."""
    if constraint is None or not constraint.root:
        return None
    return Path(os.path.realpath(constraint.root))


class ConstraintEvaluation(NamedTuple):
    allowed: bool
    reason: str | None = None


def enforce_path_constraints(path: str | os.PathLike, constraint: PathConstraint | None) -> ConstraintEvaluation:
    """Evaluate a resolved path against a constraint.

    Does not raise; callers inspect ConstraintEvaluation.allowed and escalate according to
    the enforcement level (see ConstraintEnforcer).

    Args:
        path: Resolved absolute path being evaluated
        constraint: Constraint configuration, may be None
    """
    if constraint is None or constraint.enforcement_level == EnforcementLevel.PERMISSIVE:
        return ConstraintEvaluation(True)

    root = constraint_root(constraint)
    if root is None:
        return ConstraintEvaluation(True)

    normalized = normalize_path(path)
    if not normalized.is_relative_to(root):
        return ConstraintEvaluation(False, f"Path {normalized} escapes constraint root {root}")

    return ConstraintEvaluation(True)


class ConstraintEnforcer:
    """Apply a constraint's enforcement level to resolved paths.

    - no constraint or PERMISSIVE: every path is allowed
    - STRICT: a violation invokes on_violation(error) and raises CONSTRAINT_VIOLATION with
      critical severity
    - WARN: a violation invokes on_warning(error, context) and returns the error, so the
      caller can drop the entry and report it without aborting

    The same enforcer semantics apply to discovered entries and to repository root search.
    """

    def __init__(self, constraint: PathConstraint | None,
                 on_warning: Callable[[PathfinderError, dict], None] | None = None,
                 correlation_id: str | None = None,
                 on_violation: Callable[[PathfinderError], object] | None = None):
        self._constraint = constraint
        self._on_warning = on_warning
        self._on_violation = on_violation
        self._correlation_id = correlation_id

    @property
    def constraint(self) -> PathConstraint | None:
        return self._constraint

    @property
    def enforcement_level(self) -> EnforcementLevel | None:
        return self._constraint.enforcement_level if self._constraint is not None else None

    def check(self, path: str | os.PathLike, **context) -> PathfinderError | None:
        """Check a resolved path.

        Returns:
            None if the path is allowed, or the WARN-level violation error

        Raises:
            PathfinderError: CONSTRAINT_VIOLATION under STRICT enforcement
        """
        evaluation = enforce_path_constraints(path, self._constraint)
        if evaluation.allowed:
            return None

        assert self._constraint is not None
        violation_context = {
            'path': str(path),
            'constraint_root': str(constraint_root(self._constraint)),
            'enforcement': str(self._constraint.enforcement_level),
            **context,
        }

        if self._constraint.enforcement_level == EnforcementLevel.STRICT:
            error = PathfinderError(PathfinderErrorCode.CONSTRAINT_VIOLATION, evaluation.reason,
                                    severity=Severity.CRITICAL, context=violation_context,
                                    correlation_id=self._correlation_id)
            if self._on_violation is not None:
                self._on_violation(error)
            raise error

        error = PathfinderError(PathfinderErrorCode.CONSTRAINT_VIOLATION, evaluation.reason,
                                severity=Severity.MEDIUM, context=violation_context,
                                correlation_id=self._correlation_id)
        if self._on_warning is not None:
            self._on_warning(error, violation_context)
        return error


def detect_directory_cycle(real_path: Path, context: FileContext) -> bool:
    """Return True if real_path is the real path of one of context's ancestor directories.

    Ancestors record their real path under REAL_PATH_KEY when they are descended into.
    """
    for ancestor in context.ancestors():
        if ancestor.get(REAL_PATH_KEY) == real_path:
            return True
    return False
