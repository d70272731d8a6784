import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.modules.service_bay.locks_service_bay import committing
from app.types.exceptions import BayLockTimeoutError, SchedulingPersistenceError
from app.utils.locks import BayLockManager
from tests.commons import TestingSessionLocal


async def test_operations_on_a_bay_are_serialized():
    lock_manager = BayLockManager(timeout=1)
    bay_id = uuid.uuid4()
    order: list[str] = []

    async def operation(name: str) -> None:
        async with lock_manager.hold(bay_id):
            order.append(f"{name} start")
            await asyncio.sleep(0.01)
            order.append(f"{name} end")

    await asyncio.gather(operation("first"), operation("second"))
    assert order == ["first start", "first end", "second start", "second end"]
    assert not lock_manager.is_locked(bay_id)


async def test_other_bays_are_not_blocked():
    lock_manager = BayLockManager(timeout=0.05)
    async with lock_manager.hold(uuid.uuid4()), lock_manager.hold(uuid.uuid4()):
        pass


async def test_lock_timeout():
    lock_manager = BayLockManager(timeout=0.05)
    bay_id = uuid.uuid4()
    async with lock_manager.hold(bay_id):
        with pytest.raises(BayLockTimeoutError):
            async with lock_manager.hold(bay_id):
                pass
    assert not lock_manager.is_locked(bay_id)


async def test_database_failure_is_rolled_back():
    async with TestingSessionLocal() as db:
        with pytest.raises(SchedulingPersistenceError):
            async with committing(db):
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
