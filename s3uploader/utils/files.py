"""File helpers."""
import asyncio
from pathlib import Path
from typing import AsyncIterator, Union


async def iter_file(path: Union[str, Path], chunk_size: int = 65536) -> AsyncIterator[bytes]:
    """
    Read a local file in chunks without blocking the event loop.

    Each read runs in the default thread pool; the file stays open until the
    generator is exhausted or closed.
    """
    f = await asyncio.to_thread(open, Path(path), "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        f.close()
