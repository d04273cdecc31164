import asyncio
import threading
from asyncio import TaskGroup, Semaphore


class Throttler:
    """Concurrency throttler that limits the number of simultaneously running tasks.

    Uses a semaphore to control how many tasks can execute concurrently. Each task owns a
    slot that releases its permit exactly once, when the task finishes or is cancelled.
    """

    def __init__(self, task_group: TaskGroup, concurrency: int):
        """Initialize the throttler.

        Args:
            task_group: The TaskGroup to which tasks will be added
            concurrency: Maximum number of tasks that can run concurrently
        """
        self._task_group = task_group
        self._concurrency = concurrency
        self._semaphore = Semaphore(concurrency)
        self._running = 0
        self._peak = 0

    @property
    def running(self) -> int:
        """Number of tasks currently holding a permit."""
        return self._running

    @property
    def peak(self) -> int:
        """Highest number of tasks that held a permit at the same time."""
        return self._peak

    async def schedule(self, coro, name=None) -> asyncio.Task:
        """Schedule a coroutine to run with concurrency control.

        Waits for a semaphore permit before creating the task, so a caller producing work
        faster than it completes is suspended here.

        Args:
            coro: The coroutine to execute
            name: Optional name for the task

        Returns:
            The created asyncio.Task
        """
        try:
            await self._semaphore.acquire()
        except BaseException:
            coro.close()
            raise

        slot = Throttler._Slot(self._release)
        self._running += 1
        self._peak = max(self._peak, self._running)

        async def wrapper():
            try:
                return await coro
            finally:
                slot.release()

        try:
            task = self._task_group.create_task(wrapper(), name=name)
        except BaseException:
            slot.release()
            coro.close()
            raise

        # A task cancelled before it starts never runs the wrapper's finally block
        task.add_done_callback(lambda _: slot.release())
        return task

    def _release(self):
        self._running -= 1
        self._semaphore.release()

    class _Slot:
        """Tracks ownership of a semaphore permit for a single task.

        Ensures the permit is released exactly once, even if multiple release attempts
        occur (e.g., a task cancelled before it started and its wrapper's finally block).
        """

        def __init__(self, release_callback):
            self._lock = threading.Lock()
            self._released = False
            self._release_callback = release_callback

        def release(self):
            with self._lock:
                if not self._released:
                    self._release_callback()
                    self._released = True
