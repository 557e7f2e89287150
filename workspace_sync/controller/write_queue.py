import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional


class WriteQueue:
    """Per-entity write serialization.

    Writes holding the same key run one after another in arrival order; writes on
    different keys run concurrently. Keys are acquired in sorted order so two writes
    that share several keys cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: Optional[str]) -> AsyncIterator[None]:
        ordered = sorted({key for key in keys if key})
        for key in ordered:
            self._holders[key] = self._holders.get(key, 0) + 1
            self._locks.setdefault(key, asyncio.Lock())
        acquired = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]
