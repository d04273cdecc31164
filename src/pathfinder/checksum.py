"""Streaming file checksums.

Checksums are formatted as "<algorithm>:<hex digest>", e.g. "xxh3-128:ab12...". Files are
streamed through the hasher in fixed-size chunks, so memory use is bounded by the chunk
size rather than the file size. Checksum failures are never raised; they are reported in
ChecksumMetadata.checksum_error.
"""
import asyncio
import hashlib
import itertools
import logging
import os
from typing import Awaitable, NamedTuple, Sequence

import xxhash

from .constants import DEFAULT_BUFFER_SIZE
from .types import ChecksumAlgorithm
from .utils.processor import Processor

logger = logging.getLogger(__name__)


class ChecksumMetadata(NamedTuple):
    checksum_algorithm: ChecksumAlgorithm
    checksum: str | None = None
    checksum_error: str | None = None


def create_stream_hasher(algorithm: ChecksumAlgorithm):
    """Create an incremental hasher exposing update(bytes) and hexdigest()."""
    match ChecksumAlgorithm(algorithm):
        case ChecksumAlgorithm.XXH3_128:
            return xxhash.xxh3_128()
        case ChecksumAlgorithm.SHA256:
            return hashlib.sha256()


def compute_checksum_for_path(path: str | os.PathLike, algorithm: ChecksumAlgorithm,
                              chunk_size: int = DEFAULT_BUFFER_SIZE) -> str:
    """Stream a file through a hasher and return the formatted checksum.

    Raises:
        OSError: the file cannot be opened or read
    """
    hasher = create_stream_hasher(algorithm)
    with open(path, 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return f"{ChecksumAlgorithm(algorithm)}:{hasher.hexdigest()}"


def calculate_checksum(path: str | os.PathLike, algorithm: ChecksumAlgorithm) -> ChecksumMetadata:
    """Calculate the checksum of a single file without raising.

    Returns:
        ChecksumMetadata with either checksum or checksum_error set
    """
    try:
        algorithm = ChecksumAlgorithm(algorithm)
        return ChecksumMetadata(algorithm, checksum=compute_checksum_for_path(os.path.abspath(path), algorithm))
    except (OSError, ValueError) as e:
        logger.debug(f"Checksum calculation failed for {path}: {e}")
        return ChecksumMetadata(algorithm, checksum_error=str(e) or type(e).__name__)


def checksum_with(processor: Processor, path: str | os.PathLike,
                  algorithm: ChecksumAlgorithm) -> Awaitable[ChecksumMetadata]:
    """Run calculate_checksum() on a processor's pool."""
    return processor.evaluate(calculate_checksum, path, algorithm, label='checksum computation')


async def calculate_checksums_batch_async(paths: Sequence[str | os.PathLike], algorithm: ChecksumAlgorithm,
                                          concurrency: int = 1,
                                          processor: Processor | None = None) -> dict[str | os.PathLike, ChecksumMetadata]:
    """Calculate checksums for many files with bounded concurrency.

    min(concurrency, len(paths)) workers pull unclaimed indices from a shared cursor until
    the list is exhausted. Each result slot is written by exactly one worker. The returned
    dictionary follows the input order.

    Args:
        paths: Files to checksum
        algorithm: Hash algorithm
        concurrency: Maximum number of files hashed at the same time; values below 1 mean 1
        processor: Processor to run hashing on; a private one is created if not given
    """
    concurrency = max(1, int(concurrency))
    if not paths:
        return {}

    if processor is None:
        with Processor(min(concurrency, len(paths))) as owned:
            return await calculate_checksums_batch_async(paths, algorithm, concurrency, owned)

    slots: list[ChecksumMetadata | None] = [None] * len(paths)
    cursor = itertools.count()

    async def worker():
        while (index := next(cursor)) < len(paths):
            slots[index] = await checksum_with(processor, paths[index], algorithm)

    async with asyncio.TaskGroup() as tg:
        for _ in range(min(concurrency, len(paths))):
            tg.create_task(worker())

    return {path: slot for path, slot in zip(paths, slots)}


def calculate_checksums_batch(paths: Sequence[str | os.PathLike], algorithm: ChecksumAlgorithm,
                              concurrency: int = 1) -> dict[str | os.PathLike, ChecksumMetadata]:
    """Synchronous wrapper around calculate_checksums_batch_async()."""
    return asyncio.run(calculate_checksums_batch_async(paths, algorithm, concurrency))
