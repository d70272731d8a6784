from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.utils.config import Settings
from app.dependencies import (
    get_bay_lock_manager,
    get_clock,
    get_db,
    get_notification_tool,
    get_settings,
)
from app.modules.service_bay.holidays_service_bay import HolidayManager
from app.modules.service_bay.scheduling_service_bay import SchedulingService
from app.types.clock import Clock
from app.utils.communication.notifications import NotificationTool
from app.utils.locks import BayLockManager


def get_scheduling_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    lock_manager: BayLockManager = Depends(get_bay_lock_manager),
    settings: Settings = Depends(get_settings),
    notification_tool: NotificationTool = Depends(get_notification_tool),
) -> SchedulingService:
    """
    Dependency that returns the scheduling service bound to the request database session
    """
    return SchedulingService(
        db=db,
        clock=clock,
        lock_manager=lock_manager,
        settings=settings,
        notification_tool=notification_tool,
    )


def get_holiday_manager(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    lock_manager: BayLockManager = Depends(get_bay_lock_manager),
    notification_tool: NotificationTool = Depends(get_notification_tool),
) -> HolidayManager:
    return HolidayManager(
        db=db,
        clock=clock,
        lock_manager=lock_manager,
        notification_tool=notification_tool,
    )
