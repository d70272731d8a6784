import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.types.exceptions import BayLockTimeoutError

bayplan_error_logger = logging.getLogger("bayplan.error")


class BayLockManager:
    """
    Serialize check-and-write operations of a bay within this process.

    Operations holding the lock of a bay should also lock the bay row in the database
    and commit before releasing the lock, so that other workers sharing the database are serialized too.

    This class should only be instantiated once, it is stored in the application state.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def is_locked(self, bay_id: uuid.UUID) -> bool:
        return bay_id in self._locks and self._locks[bay_id].locked()

    @asynccontextmanager
    async def hold(self, bay_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks[bay_id]
        try:
            async with asyncio.timeout(self.timeout):
                await lock.acquire()
        except TimeoutError:
            bayplan_error_logger.warning(
                f"Bay lock: timed out after {self.timeout}s waiting for bay {bay_id}",
            )
            raise BayLockTimeoutError(bay_id=bay_id, timeout=self.timeout) from None
        try:
            yield
        finally:
            lock.release()
