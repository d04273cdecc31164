import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class Processor:
    """Executor-backed evaluator for blocking file work.

    Blocking callables (checksum streaming) run on a pool of worker threads and are
    returned to the caller as awaitables bound to the running event loop. The pool size
    is the hard upper bound of concurrently executing operations.

    Usage:
        with Processor(4) as processor:
            digest = await processor.evaluate(compute, path, label='checksum')
    """

    def __init__(self, concurrency: int | None = None):
        if concurrency is None:
            concurrency = os.cpu_count() or 1

        self._concurrency = max(1, concurrency)
        self._executor = ThreadPoolExecutor(max_workers=self._concurrency,
                                            thread_name_prefix='pathfinder-processor')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Stop accepting work, drop queued work and wait for running work to finish."""
        self._executor.shutdown(wait=True, cancel_futures=True)

    @property
    def concurrency(self):
        return self._concurrency

    def evaluate(self, func: Callable[..., Any], *args, label: str | None = None) -> Awaitable[Any]:
        """Run func(*args) on the pool.

        Must be called from a coroutine running in an event loop.

        Args:
            func: Blocking callable
            args: Positional arguments for func
            label: Operation name used in log messages; defaults to func's name
        """
        label = label or getattr(func, '__name__', 'operation')
        logger.debug(f"Starting {label}: {args[0] if args else ''}")

        async def log_and_evaluate():
            result = await self._evaluate(func, *args)
            logger.debug(f"Completed {label}: {args[0] if args else ''}")
            return result

        return log_and_evaluate()

    def _evaluate(self, func, *args) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)
