import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.types.exceptions import SchedulingPersistenceError
from app.utils.locks import BayLockManager

bayplan_error_logger = logging.getLogger("bayplan.error")


@asynccontextmanager
async def committing(db: AsyncSession) -> AsyncIterator[None]:
    """
    Commit the changes made in the block. A database failure rolls the whole block back
    and is raised as a `SchedulingPersistenceError`.
    """
    try:
        yield
        await db.commit()
    except SQLAlchemyError as error:
        await db.rollback()
        bayplan_error_logger.exception("Scheduling: database failure, rolled back")
        raise SchedulingPersistenceError from error


@asynccontextmanager
async def bay_transaction(
    db: AsyncSession,
    lock_manager: BayLockManager,
    bay_id: uuid.UUID,
) -> AsyncIterator[None]:
    """
    Run the block as a single atomic unit for the bay: no other operation on the same bay can
    read or write between the checks and the commit made at the end of the block.

    The bay row should be locked inside the block with `cruds_service_bay.lock_bay`.
    """
    async with lock_manager.hold(bay_id), committing(db):
        yield
