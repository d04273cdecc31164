import asyncio
import hashlib
import tempfile
import threading
import unittest
from pathlib import Path

from pathfinder.checksum import compute_checksum_for_path
from pathfinder.types import ChecksumAlgorithm
from pathfinder.utils.processor import Processor


class ProcessorTest(unittest.TestCase):
    def test_simple_hashing(self):
        completed = False

        with tempfile.NamedTemporaryFile() as f:
            f.write(b'pathfinder')
            f.flush()

            with Processor() as processor:
                async def verify():
                    checksum = await processor.evaluate(compute_checksum_for_path, Path(f.name),
                                                        ChecksumAlgorithm.SHA256)

                    nonlocal completed
                    self.assertEqual('sha256:' + hashlib.sha256(b'pathfinder').hexdigest(), checksum)
                    completed = True

                asyncio.run(verify())

        self.assertTrue(completed)

    def test_runs_on_worker_threads(self):
        with Processor(2) as processor:
            async def run():
                return await asyncio.gather(*(processor.evaluate(lambda: threading.current_thread().name)
                                              for _ in range(4)))

            names = asyncio.run(run())

        self.assertTrue(all(name.startswith('pathfinder-processor') for name in names))

    def test_exceptions_propagate(self):
        def fail():
            raise ValueError('boom')

        with Processor(1) as processor:
            with self.assertRaises(ValueError):
                asyncio.run(processor.evaluate(fail))

    def test_concurrency(self):
        self.assertEqual(3, Processor(3).concurrency)
        self.assertEqual(1, Processor(0).concurrency)
        self.assertGreaterEqual(Processor().concurrency, 1)


if __name__ == '__main__':
    unittest.main()
