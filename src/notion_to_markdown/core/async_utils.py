"""Thread offloading and concurrency limits for the sync engine.

The Notion client and the filesystem helpers are blocking. The engine calls
them through ``run_sync`` (local work) or ``run_sync_limited`` (network work,
capped by ``notion.max_parallel_requests``).
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Shared cap on in-flight Notion requests; set by init_semaphore()
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 2) -> None:
    """Set the request cap for the current event loop.

    ``SyncEngine.run`` calls this at the start of every run.
    """
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.debug("Request cap set to %d", max_parallel)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Await ``func(*args, **kwargs)`` in a worker thread, uncapped.

    Example:
        entries = await run_sync(builder.build, content_root)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Like ``run_sync`` but waits for a free request slot first.

    Without ``init_semaphore`` there is no cap.
    """
    semaphore = _semaphore
    if semaphore is None:
        return await run_sync(func, *args, **kwargs)
    async with semaphore:
        return await run_sync(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Await *coros* together and return their results in input order.

    The cap applies inside each coroutine (via ``run_sync_limited``), so
    any number may be passed. The first exception propagates.
    """
    if not coros:
        return []
    return list(await asyncio.gather(*coros))


class KeyedLocks:
    """One ``asyncio.Lock`` per key, created on first use.

    The engine keys these by asset content identity so that checking,
    downloading and recording one asset is never interleaved with another
    task handling the same asset.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def __len__(self) -> int:
        return len(self._locks)
