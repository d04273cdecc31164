"""Upward search for the directory holding a repository marker (.git, package.json, ...)."""
import errno
import logging
import os
import stat
import time
from pathlib import Path
from typing import Sequence

from . import telemetry
from .constants import GIT_MARKERS
from .errors import PathfinderError, PathfinderErrorCode, Severity
from .safety import normalize_path
from .telemetry import MetricsRegistry, PathfinderLoggerAdapter, generate_correlation_id
from .types import EnforcementLevel, FindRepoOptions

REPOSITORY_ROOT_HISTOGRAM = 'pathfinder_repository_root_ms'


def find_repository_root(start_path: str | os.PathLike, markers: Sequence[str] = GIT_MARKERS,
                         options: FindRepoOptions | None = None, *,
                         logger: logging.Logger | logging.LoggerAdapter | None = None,
                         metrics: MetricsRegistry | None = None,
                         correlation_id: str | None = None) -> Path:
    """Find the repository root by walking upward from start_path.

    Each directory from start_path upward is checked for the markers in list order; the
    first marker present identifies the directory as a match. The walk stops at the
    boundary (inclusive), after options.max_depth upward steps, at the filesystem root, or
    when it would leave the constraint root.

    Args:
        start_path: Directory to start from; relative paths are taken from the current directory
        markers: Marker file or directory names, in priority order
        options: Search options, see FindRepoOptions
        logger: Logger receiving structured records
        metrics: Metrics sink; defaults to the process-wide registry
        correlation_id: Identifier propagated into logs, metric tags and errors

    Returns:
        Absolute path of the matching directory: the nearest one, or the topmost one when
        options.stop_at_first is False

    Raises:
        PathfinderError: VALIDATION_FAILED, INVALID_START_PATH, INVALID_BOUNDARY,
                         SECURITY_VIOLATION, TRAVERSAL_LOOP or REPOSITORY_NOT_FOUND

    Examples:
        >>> find_repository_root('src/components', ['.git'], FindRepoOptions(max_depth=5))
        PosixPath('/home/user/project')
    """
    options = options if options is not None else FindRepoOptions()
    correlation_id = correlation_id or generate_correlation_id()
    log = PathfinderLoggerAdapter(logger if logger is not None else logging.getLogger(__name__), correlation_id)
    metrics = metrics if metrics is not None else telemetry.metrics
    histogram = metrics.histogram(REPOSITORY_ROOT_HISTOGRAM, {'correlation_id': correlation_id})

    start = time.perf_counter()
    try:
        return _RepositoryRootSearch(start_path, markers, options, log, correlation_id).run()
    except PathfinderError as e:
        level = logging.ERROR if e.is_fatal else logging.DEBUG
        log.log(level, e.message, extra={'context': {'code': str(e.code), **e.context}})
        raise
    finally:
        histogram.observe((time.perf_counter() - start) * 1000)


class _RepositoryRootSearch:
    def __init__(self, start_path, markers: Sequence[str], options: FindRepoOptions,
                 log: PathfinderLoggerAdapter, correlation_id: str):
        self._start_path = start_path
        self._markers = [markers] if isinstance(markers, str) else list(markers)
        self._options = options
        self._log = log
        self._correlation_id = correlation_id

    def run(self) -> Path:
        options = self._options
        if not self._markers:
            raise self._error(PathfinderErrorCode.VALIDATION_FAILED, "At least one repository marker is required",
                              Severity.HIGH)
        if isinstance(options.max_depth, bool) or not isinstance(options.max_depth, int) or options.max_depth < 0:
            raise self._error(PathfinderErrorCode.VALIDATION_FAILED,
                              f"max_depth must be an integer >= 0, got {options.max_depth!r}", Severity.HIGH,
                              max_depth=options.max_depth)

        start = self._validate_start()
        boundary = self._resolve_boundary(start)
        ceiling = self._resolve_ceiling(start)

        visited: set[Path] = set()
        match: Path | None = None
        current = start
        depth = 0

        while depth <= options.max_depth:
            if options.follow_symlinks:
                current = self._real_path(current)
                if current in visited:
                    raise self._error(PathfinderErrorCode.TRAVERSAL_LOOP,
                                      f"Symlink loop detected while searching upward at {current}", Severity.HIGH,
                                      current_dir=str(current), depth=depth)
                visited.add(current)

            if ceiling is not None and not current.is_relative_to(ceiling):
                break

            marker = self._find_marker(current)
            if marker is not None:
                self._log.debug(f"Found repository marker {marker} in {current}",
                                extra={'context': {'marker': marker, 'path': str(current), 'depth': depth}})
                if options.stop_at_first:
                    return current
                match = current

            if current == boundary:
                break

            parent = current.parent
            if parent == current:
                break

            current = parent
            depth += 1

        if match is not None:
            return match

        raise self._error(PathfinderErrorCode.REPOSITORY_NOT_FOUND,
                          f"No repository root found with markers [{', '.join(self._markers)}] from {start}",
                          Severity.MEDIUM, start_path=str(start), markers=list(self._markers),
                          max_depth=options.max_depth, boundary=str(boundary), depth_reached=depth)

    def _validate_start(self) -> Path:
        start = normalize_path(self._start_path)
        try:
            st = os.stat(start) if self._options.follow_symlinks else os.lstat(start)
        except FileNotFoundError as e:
            raise self._error(PathfinderErrorCode.INVALID_START_PATH, f"Start path does not exist: {start}",
                              Severity.HIGH, start_path=str(start)) from e
        except OSError as e:
            if e.errno == errno.ELOOP:
                raise self._error(PathfinderErrorCode.TRAVERSAL_LOOP, f"Symlink loop at start path {start}: {e}",
                                  Severity.HIGH, start_path=str(start)) from e
            raise self._error(PathfinderErrorCode.INVALID_START_PATH, f"Start path is not accessible: {start}: {e}",
                              Severity.HIGH, start_path=str(start)) from e

        if not stat.S_ISDIR(st.st_mode):
            raise self._error(PathfinderErrorCode.INVALID_START_PATH, f"Start path is not a directory: {start}",
                              Severity.HIGH, start_path=str(start))
        return start

    def _resolve_boundary(self, start: Path) -> Path:
        if self._options.boundary:
            boundary = self._comparable(self._options.boundary)
            if not self._comparable(start).is_relative_to(boundary):
                raise self._error(PathfinderErrorCode.INVALID_BOUNDARY,
                                  f"Boundary {boundary} is not an ancestor of start path {start}", Severity.HIGH,
                                  start_path=str(start), boundary=str(boundary))
            return boundary

        home = self._comparable(Path.home())
        if self._comparable(start).is_relative_to(home):
            return home
        return Path(start.anchor)

    def _resolve_ceiling(self, start: Path) -> Path | None:
        constraint = self._options.constraint
        if constraint is None or not constraint.root or constraint.enforcement_level == EnforcementLevel.PERMISSIVE:
            return None

        ceiling = self._comparable(constraint.root)
        if not self._comparable(start).is_relative_to(ceiling):
            raise self._error(PathfinderErrorCode.SECURITY_VIOLATION,
                              f"Start path {start} is outside constraint root {ceiling}", Severity.HIGH,
                              start_path=str(start), constraint_root=str(ceiling))
        return ceiling

    def _comparable(self, path: str | os.PathLike) -> Path:
        """Put a path in the form the walk compares against: real when following symlinks."""
        if self._options.follow_symlinks:
            return Path(os.path.realpath(path))
        return normalize_path(path)

    def _real_path(self, path: Path) -> Path:
        try:
            return Path(os.path.realpath(path, strict=True))
        except OSError as e:
            raise self._error(PathfinderErrorCode.TRAVERSAL_LOOP if e.errno == errno.ELOOP
                              else PathfinderErrorCode.INVALID_START_PATH,
                              f"Cannot resolve {path}: {e}", Severity.HIGH, current_dir=str(path)) from e

    def _find_marker(self, directory: Path) -> str | None:
        for marker in self._markers:
            if os.path.exists(directory / marker):
                return marker
        return None

    def _error(self, code: PathfinderErrorCode, message: str, severity: Severity, **context) -> PathfinderError:
        return PathfinderError(code, message, severity=severity, context={'operation': 'find_repository_root',
                                                                           **context},
                               correlation_id=self._correlation_id)
