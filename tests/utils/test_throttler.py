import asyncio
import unittest

from pathfinder.utils.throttler import Throttler


class ThrottlerTest(unittest.TestCase):
    def test_concurrency_bound(self):
        active = 0
        peak = 0

        async def job():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return True

        async def run():
            async with asyncio.TaskGroup() as tg:
                throttler = Throttler(tg, 3)
                tasks = [await throttler.schedule(job()) for _ in range(10)]
            return throttler, tasks

        throttler, tasks = asyncio.run(run())

        self.assertTrue(all(task.result() for task in tasks))
        self.assertLessEqual(peak, 3)
        self.assertEqual(3, throttler.peak)
        self.assertEqual(0, throttler.running)

    def test_cancelled_tasks_release_permits(self):
        async def job():
            await asyncio.sleep(10)

        async def run():
            async with asyncio.TaskGroup() as tg:
                throttler = Throttler(tg, 1)
                first = await throttler.schedule(job(), name='first')
                first.cancel()
                second = await throttler.schedule(asyncio.sleep(0, 'done'), name='second')
            return throttler, second

        throttler, second = asyncio.run(asyncio.wait_for(run(), 5))

        self.assertEqual('done', second.result())
        self.assertEqual(0, throttler.running)


if __name__ == '__main__':
    unittest.main()
