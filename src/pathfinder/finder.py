import asyncio
import datetime
import inspect
import logging
import os
import stat
import time
from collections import deque
from pathlib import Path
from typing import Any, Iterator, NamedTuple, Sequence

from pathspec import PathSpec

from . import telemetry
from .checksum import ChecksumMetadata, checksum_with
from .config import PathfinderConfig
from .constants import MAX_PATH_LENGTH
from .errors import PathfinderError, PathfinderErrorCode, Severity
from .ignore import IgnoreMatcher, IgnoreRuleCache
from .repository_root import find_repository_root
from .safety import (
    REAL_PATH_KEY,
    ConstraintEnforcer,
    detect_directory_cycle,
    normalize_path,
    resolve_real_path,
)
from .telemetry import MetricsRegistry, PathfinderLoggerAdapter, generate_correlation_id
from .types import (
    FileMetadata,
    FindRepoOptions,
    PathfinderCallbacks,
    PathfinderQuery,
    PathResult,
)
from .utils.processor import Processor
from .utils.throttler import Throttler
from .utils.walker import FileContext, WalkPolicy, walk_with_policy

logger = logging.getLogger(__name__)

FIND_HISTOGRAM = 'pathfinder_find_ms'
SECURITY_WARNINGS_COUNTER = 'pathfinder_security_warnings'
CHECKSUM_FAILURES_COUNTER = 'pathfinder_checksum_failures'

# FileContext key holding the directory to list when descending into an entry
DESCEND_KEY = 'descend_into'


class NormalizedQuery(NamedTuple):
    """Discovery query with the root resolved, patterns compiled and defaults applied."""
    root: Path
    include_spec: PathSpec | None
    exclude_spec: PathSpec | None
    max_depth: int | None
    follow_symlinks: bool
    include_hidden: bool
    honor_ignore_files: bool


class Candidate(NamedTuple):
    """An entry that passed every check and is waiting for its checksum, if any."""
    relative_path: str
    source_path: Path
    st: os.stat_result
    is_symlink: bool
    symlink_target: str | None
    checksum_path: Path | None


class RecoveredError(NamedTuple):
    error: PathfinderError
    path: str


class Pathfinder:
    """Filesystem discovery under explicit security boundaries.

    A Pathfinder holds an immutable PathfinderConfig, a correlation id stamped on every log
    record, metric and error it produces, and a Processor that runs checksum work when
    checksums are enabled. Each find() call walks the query root in deterministic pre-order,
    applies hidden-file, include/exclude and ignore-file filtering, resolves and validates
    symlinks, enforces the configured constraint, optionally attaches checksums and reports
    results in traversal order.

    Fatal problems (invalid root or query, STRICT constraint violations, timeouts,
    exceptions raised by callbacks) are raised as PathfinderError. Recoverable problems are
    logged and delivered to PathfinderCallbacks.error_callback; the walk continues.

    Usage:
        with Pathfinder(PathfinderConfig(calculate_checksums=True)) as finder:
            for result in finder.find(PathfinderQuery('src', include=['**/*.py'])):
                print(result.relative_path, result.metadata.checksum)
    """

    def __init__(self, config: PathfinderConfig | None = None, *,
                 logger: logging.Logger | logging.LoggerAdapter | None = None,
                 metrics: MetricsRegistry | None = None,
                 correlation_id: str | None = None,
                 processor: Processor | None = None):
        """Initialize a Pathfinder.

        Args:
            config: Configuration; defaults to PathfinderConfig()
            logger: Logger receiving structured records; defaults to this module's logger
            metrics: Metrics sink; defaults to the process-wide registry
            correlation_id: Identifier propagated into logs, metric tags and errors;
                            generated if not given
            processor: Processor for checksum work; created on first use if not given and
                       closed by close()
        """
        self._config = config if config is not None else PathfinderConfig()
        self._correlation_id = correlation_id or generate_correlation_id()
        self._log = PathfinderLoggerAdapter(logger if logger is not None else logging.getLogger(__name__),
                                            self._correlation_id)
        self._metrics = metrics if metrics is not None else telemetry.metrics
        self._tags = {'correlation_id': self._correlation_id}
        self._processor = processor
        self._owns_processor = processor is None
        self._ignore_cache = IgnoreRuleCache(self._config.cache_ttl) if self._config.cache_enabled else None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Shut down the checksum processor if this instance created it."""
        if self._owns_processor and self._processor is not None:
            self._processor.close()
            self._processor = None

    @property
    def config(self) -> PathfinderConfig:
        return self._config

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    def find(self, query: PathfinderQuery, callbacks: PathfinderCallbacks | None = None, *,
             timeout: float | None = None) -> list[PathResult]:
        """Discover entries matching a query and return them in traversal order.

        Args:
            query: Discovery query
            callbacks: Optional result/progress/error observers
            timeout: Seconds after which the call fails with TRAVERSAL_TIMEOUT

        Raises:
            PathfinderError: INVALID_ROOT, VALIDATION_FAILED, CONSTRAINT_VIOLATION (STRICT),
                             TRAVERSAL_TIMEOUT, or TRAVERSAL_FAILED wrapping a callback error
        """
        return asyncio.run(self.find_async(query, callbacks, timeout=timeout))

    async def find_async(self, query: PathfinderQuery, callbacks: PathfinderCallbacks | None = None, *,
                         timeout: float | None = None) -> list[PathResult]:
        """Asynchronous variant of find()."""
        histogram = self._metrics.histogram(FIND_HISTOGRAM, self._tags)
        start = time.perf_counter()

        try:
            async with asyncio.timeout(timeout):
                return await self._find(query, callbacks if callbacks is not None else PathfinderCallbacks())
        except PathfinderError:
            raise
        except TimeoutError as e:
            raise self._fatal(PathfinderError(
                PathfinderErrorCode.TRAVERSAL_TIMEOUT, f"Discovery did not finish within {timeout} seconds",
                severity=Severity.HIGH, context={'operation': 'find', 'timeout': timeout},
                correlation_id=self._correlation_id)) from e
        except Exception as e:
            raise self._fatal(PathfinderError.wrap(
                e, PathfinderErrorCode.TRAVERSAL_FAILED, severity=Severity.HIGH,
                context={'operation': 'find'}, correlation_id=self._correlation_id)) from e
        finally:
            histogram.observe((time.perf_counter() - start) * 1000)

    def find_repository_root(self, start_path: str | os.PathLike, markers: Sequence[str] = ('.git',),
                             options: FindRepoOptions | None = None) -> Path:
        """Locate a repository root using this instance's logger, metrics and correlation id.

        See pathfinder.repository_root.find_repository_root().
        """
        return find_repository_root(start_path, markers, options, logger=self._log.logger,
                                    metrics=self._metrics, correlation_id=self._correlation_id)

    async def _find(self, query: PathfinderQuery, callbacks: PathfinderCallbacks) -> list[PathResult]:
        normalized = self._normalize_query(query)
        enforcer = ConstraintEnforcer(self._config.constraint, self._record_security_warning, self._correlation_id,
                                      on_violation=self._fatal)

        self._log.debug(f"Starting discovery in {normalized.root}",
                        extra={'context': {'root': str(normalized.root), 'operation': 'find'}})

        violation = enforcer.check(normalized.root, operation='validate_root')
        if violation is not None:
            await self._dispatch_error(violation, str(normalized.root), callbacks)
            return []

        matcher = None
        if normalized.honor_ignore_files:
            matcher = IgnoreMatcher(normalized.root, cache=self._ignore_cache)

        traversal = Traversal(normalized, enforcer, matcher, self._config.calculate_checksums, self._recover)
        results: list[PathResult] = []
        pending: deque[tuple[Candidate, asyncio.Task | None]] = deque()
        fatal: Exception | None = None

        async with asyncio.TaskGroup() as tg:
            throttler = Throttler(tg, self._config.max_workers)
            try:
                for item in traversal.items():
                    if isinstance(item, RecoveredError):
                        await self._dispatch_error(item.error, item.path, callbacks)
                        continue

                    task = None
                    if item.checksum_path is not None:
                        task = await throttler.schedule(
                            checksum_with(self._get_processor(), item.checksum_path, self._config.checksum_algorithm))
                    pending.append((item, task))

                    await self._emit_ready(pending, results, callbacks, wait=False)
                    # Suspension point so a deadline can interrupt long synchronous walks
                    await asyncio.sleep(0)

                await self._emit_ready(pending, results, callbacks, wait=True)
            except Exception as e:
                # Raising inside the task group would wrap the error in an ExceptionGroup
                fatal = e
                for _, task in pending:
                    if task is not None:
                        task.cancel()

        if fatal is not None:
            raise fatal

        self._log.debug(f"Discovery in {normalized.root} produced {len(results)} results",
                        extra={'context': {'root': str(normalized.root), 'results': len(results)}})
        return results

    def _normalize_query(self, query: PathfinderQuery) -> NormalizedQuery:
        if query is None or not query.root:
            raise self._fatal(PathfinderError(
                PathfinderErrorCode.VALIDATION_FAILED, "Pathfinder query requires a root directory",
                severity=Severity.HIGH, context={'operation': 'normalize_query'},
                correlation_id=self._correlation_id))

        root = normalize_path(query.root)
        if len(str(root)) > MAX_PATH_LENGTH:
            raise self._fatal(PathfinderError(
                PathfinderErrorCode.VALIDATION_FAILED, f"Pathfinder root exceeds {MAX_PATH_LENGTH} characters",
                severity=Severity.HIGH, context={'root_length': len(str(root))}, correlation_id=self._correlation_id))

        try:
            st = os.stat(root)
            real_root = resolve_real_path(root)
        except OSError as e:
            raise self._fatal(PathfinderError.wrap(
                e, PathfinderErrorCode.INVALID_ROOT, severity=Severity.HIGH,
                context={'root': str(root), 'operation': 'stat'}, correlation_id=self._correlation_id)) from e

        if not stat.S_ISDIR(st.st_mode):
            raise self._fatal(PathfinderError(
                PathfinderErrorCode.INVALID_ROOT, f"Pathfinder root must be a directory: {root}",
                severity=Severity.HIGH, context={'root': str(root)}, correlation_id=self._correlation_id))

        max_depth = query.max_depth
        if max_depth is not None and (isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 0):
            raise self._fatal(PathfinderError(
                PathfinderErrorCode.VALIDATION_FAILED, f"Pathfinder max_depth must be None or >= 0, got {max_depth!r}",
                severity=Severity.HIGH, context={'max_depth': max_depth}, correlation_id=self._correlation_id))

        honor_ignore_files = query.honor_ignore_files
        if honor_ignore_files is None:
            honor_ignore_files = self._config.honor_ignore_files

        return NormalizedQuery(
            root=real_root,
            include_spec=self._compile_patterns(query.include, 'include'),
            exclude_spec=self._compile_patterns(query.exclude, 'exclude'),
            max_depth=max_depth,
            follow_symlinks=bool(query.follow_symlinks),
            include_hidden=bool(query.include_hidden),
            honor_ignore_files=bool(honor_ignore_files),
        )

    def _compile_patterns(self, patterns: Sequence[str] | str | None, field: str) -> PathSpec | None:
        if not patterns:
            return None
        if isinstance(patterns, str):
            patterns = [patterns]

        lines = [_anchor_pattern(pattern) for pattern in patterns if pattern]
        if not lines:
            return None

        try:
            return PathSpec.from_lines('gitignore', lines)
        except (TypeError, ValueError) as e:
            raise self._fatal(PathfinderError.wrap(
                e, PathfinderErrorCode.VALIDATION_FAILED, severity=Severity.HIGH,
                context={field: list(lines)}, correlation_id=self._correlation_id)) from e

    async def _emit_ready(self, pending: deque, results: list[PathResult], callbacks: PathfinderCallbacks,
                          wait: bool):
        """Emit queued candidates from the front of the queue, preserving traversal order.

        With wait=False, stops at the first candidate whose checksum is still running.
        """
        while pending:
            candidate, task = pending[0]
            if task is not None and not task.done():
                if not wait:
                    return
                await task

            pending.popleft()
            checksum: ChecksumMetadata | None = task.result() if task is not None else None
            result = self._build_result(candidate, checksum)
            results.append(result)
            await self._dispatch_result(result, callbacks)

    def _build_result(self, candidate: Candidate, checksum: ChecksumMetadata | None) -> PathResult:
        st = candidate.st
        fields: dict[str, Any] = {
            'size': st.st_size,
            'modified': datetime.datetime.fromtimestamp(st.st_mtime, tz=datetime.UTC)
                .isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'mode': format(stat.S_IMODE(st.st_mode), '04o'),
            'is_symlink': candidate.is_symlink,
            'symlink_target': candidate.symlink_target,
        }

        if checksum is not None:
            fields['checksum_algorithm'] = checksum.checksum_algorithm
            fields['checksum'] = checksum.checksum
            fields['checksum_error'] = checksum.checksum_error
            if checksum.checksum_error is not None:
                self._metrics.counter(CHECKSUM_FAILURES_COUNTER, self._tags).inc()
                self._log.warning(f"Checksum calculation failed for {candidate.source_path}",
                                  extra={'context': {'path': str(candidate.source_path),
                                                     'algorithm': str(checksum.checksum_algorithm),
                                                     'error': checksum.checksum_error}})

        return PathResult(
            relative_path=candidate.relative_path,
            source_path=candidate.source_path,
            loader_type=self._config.loader_type,
            metadata=FileMetadata(**fields),
            logical_path=candidate.relative_path,
        )

    async def _dispatch_result(self, result: PathResult, callbacks: PathfinderCallbacks):
        if callbacks.result_callback is not None:
            await _invoke(callbacks.result_callback, result)

        if callbacks.progress_callback is not None and callbacks.progress_callback is not callbacks.result_callback:
            await _invoke(callbacks.progress_callback, result)

    async def _dispatch_error(self, error: PathfinderError, path: str, callbacks: PathfinderCallbacks):
        if callbacks.error_callback is not None:
            await _invoke(callbacks.error_callback, error, path)

    def _recover(self, code: PathfinderErrorCode, message: str, path: str | os.PathLike,
                 cause: BaseException | None = None, **context) -> RecoveredError:
        """Create, log and return a recoverable error for the error callback."""
        error = PathfinderError(code, message, severity=Severity.MEDIUM,
                                context={'path': str(path), **context}, correlation_id=self._correlation_id)
        error.__cause__ = cause
        self._log.warning(message, extra={'context': {'code': str(code), **error.context}})
        return RecoveredError(error, str(path))

    def _record_security_warning(self, error: PathfinderError, context: dict):
        self._metrics.counter(SECURITY_WARNINGS_COUNTER, self._tags).inc()
        self._log.warning(error.message, extra={'context': {'code': str(error.code), **context}})

    def _fatal(self, error: PathfinderError) -> PathfinderError:
        """Log a fatal error before it is raised."""
        level = logging.ERROR if error.is_fatal else logging.WARNING
        self._log.log(level, error.message, extra={'context': {'code': str(error.code), **error.context}})
        return error

    def _get_processor(self) -> Processor:
        if self._processor is None:
            self._processor = Processor(self._config.max_workers)
            self._owns_processor = True
        return self._processor


class Traversal:
    """Per-call traversal state: walks the tree and evaluates every entry.

    items() yields Candidate values for entries to report and RecoveredError values for
    recoverable problems, both in traversal order. Per-entry order is: hidden-file and
    ignore-file filtering, stat, symlink resolution, include/exclude matching, constraint
    check. STRICT constraint violations propagate out of items().
    """

    def __init__(self, query: NormalizedQuery, enforcer: ConstraintEnforcer, matcher: IgnoreMatcher | None,
                 calculate_checksums: bool, recover):
        self._query = query
        self._enforcer = enforcer
        self._matcher = matcher
        self._calculate_checksums = calculate_checksums
        self._recover = recover
        self._recovered: deque[RecoveredError] = deque()

    def items(self) -> Iterator[Candidate | RecoveredError]:
        root_context = FileContext(None, None, self._query.root)
        root_context[REAL_PATH_KEY] = self._query.root
        policy = WalkPolicy(should_descend=self._should_descend, on_error=self._on_list_error)

        for context in walk_with_policy(self._query.root, policy, root_context):
            yield from self._drain()
            candidate = self._evaluate(context)
            yield from self._drain()
            if candidate is not None:
                yield candidate

        yield from self._drain()

    def _drain(self) -> Iterator[RecoveredError]:
        while self._recovered:
            yield self._recovered.popleft()

    def _should_descend(self, context: FileContext) -> Path | None:
        return context.get(DESCEND_KEY)

    def _on_list_error(self, directory: Path, error: OSError):
        self._recovered.append(self._recover(
            PathfinderErrorCode.TRAVERSAL_FAILED, f"Cannot list directory {directory}: {error}", directory,
            cause=error, operation='listdir'))

    def _mark_descend(self, context: FileContext, real_path: Path):
        context[REAL_PATH_KEY] = real_path
        if self._query.max_depth is None or context.depth < self._query.max_depth:
            context[DESCEND_KEY] = real_path

    def _evaluate(self, context: FileContext) -> Candidate | None:
        query = self._query
        name = context.name
        relative = context.relative_path.as_posix()

        if not query.include_hidden and name.startswith('.'):
            return None

        try:
            st = context.stat
        except OSError as e:
            self._recovered.append(self._recover(
                PathfinderErrorCode.TRAVERSAL_FAILED, f"Cannot stat {context.path}: {e}", context.path,
                cause=e, operation='lstat'))
            return None

        is_dir = stat.S_ISDIR(st.st_mode)
        is_symlink = stat.S_ISLNK(st.st_mode)

        if self._matcher is not None:
            if not is_dir and self._matcher.is_ignore_file(name):
                return None
            if self._is_ignored(context, relative, is_dir):
                return None

        real_path = context.parent[REAL_PATH_KEY] / name
        target_st = st
        symlink_target = None

        if is_dir:
            if not self._is_excluded_directory(relative):
                self._mark_descend(context, real_path)
            return None

        if is_symlink:
            try:
                symlink_target = os.readlink(context.path)
            except OSError as e:
                logger.debug(f"Cannot read symlink {context.path}: {e}")

            if query.follow_symlinks:
                try:
                    real_path = resolve_real_path(context.path)
                    target_st = os.stat(real_path)
                except OSError as e:
                    self._recovered.append(self._recover(
                        PathfinderErrorCode.TRAVERSAL_FAILED, f"Cannot resolve symlink {context.path}: {e}",
                        context.path, cause=e, operation='realpath'))
                    return None

                if stat.S_ISDIR(target_st.st_mode):
                    if self._is_excluded_directory(relative):
                        return None
                    if self._violates_constraint(real_path, context, relative):
                        return None
                    if detect_directory_cycle(real_path, context):
                        self._recovered.append(self._recover(
                            PathfinderErrorCode.TRAVERSAL_LOOP,
                            f"Symlink {context.path} points to its own ancestor {real_path}", context.path,
                            real_path=str(real_path), operation='follow_symlink'))
                        return None
                    self._mark_descend(context, real_path)
                    return None
            else:
                # Unfollowed links are reported where they are, never dereferenced
                real_path = context.path

        if not is_symlink and not stat.S_ISREG(st.st_mode):
            logger.debug(f"Skipping special file {context.path}")
            return None
        if is_symlink and query.follow_symlinks and not stat.S_ISREG(target_st.st_mode):
            logger.debug(f"Skipping symlink {context.path} to special file {real_path}")
            return None

        if query.include_spec is not None and not query.include_spec.match_file(relative):
            return None
        if query.exclude_spec is not None and query.exclude_spec.match_file(relative):
            return None

        if self._violates_constraint(real_path, context, relative):
            return None

        checksum_path = None
        if self._calculate_checksums and stat.S_ISREG(target_st.st_mode):
            checksum_path = real_path

        return Candidate(
            relative_path=relative,
            source_path=query.root / context.relative_path,
            st=target_st,
            is_symlink=is_symlink,
            symlink_target=symlink_target,
            checksum_path=checksum_path,
        )

    def _is_ignored(self, context: FileContext, relative: str, is_dir: bool) -> bool:
        try:
            return self._matcher.is_ignored(relative, is_dir)
        except OSError as e:
            self._recovered.append(self._recover(
                PathfinderErrorCode.IGNORE_FILE_ERROR, f"Cannot read ignore file: {e}",
                getattr(e, 'filename', None) or context.path, cause=e, operation='read_ignore_file'))
            return False

    def _is_excluded_directory(self, relative: str) -> bool:
        exclude_spec = self._query.exclude_spec
        return exclude_spec is not None and exclude_spec.match_file(relative + '/')

    def _violates_constraint(self, real_path: Path, context: FileContext, relative: str) -> bool:
        """Check a resolved path; STRICT violations raise, WARN violations are queued."""
        violation = self._enforcer.check(real_path, relative_path=relative, operation='enforce_constraint')
        if violation is None:
            return False
        self._recovered.append(RecoveredError(violation, str(context.path)))
        return True


async def _invoke(callback, *args):
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _anchor_pattern(pattern: str) -> str:
    """Anchor a glob to the query root, so '*.json' matches top-level files only.

    Patterns that already contain an inner slash are anchored by gitignore rules;
    '**/*.json' matches at any depth.
    """
    negated = pattern.startswith('!')
    body = pattern[1:] if negated else pattern
    if '/' not in body.rstrip('/'):
        body = '/' + body
    return '!' + body if negated else body
