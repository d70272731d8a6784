import uuid
from collections.abc import Sequence
from datetime import date

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.service_bay import models_service_bay
from app.modules.service_bay.types_service_bay import BookingStatus, VehicleType

OPEN_STATUSES = [status for status in BookingStatus if not status.is_terminal]


async def get_bays(
    db: AsyncSession,
    company_id: str,
    dealership_id: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> Sequence[models_service_bay.ServiceBay]:
    query = select(models_service_bay.ServiceBay).where(
        models_service_bay.ServiceBay.company_id == company_id,
    )
    if dealership_id is not None:
        query = query.where(
            models_service_bay.ServiceBay.dealership_id == dealership_id,
        )
    if is_active is not None:
        query = query.where(models_service_bay.ServiceBay.is_active == is_active)
    if search:
        query = query.where(
            models_service_bay.ServiceBay.name.ilike(f"%{search}%"),
        )
    result = await db.execute(query.order_by(models_service_bay.ServiceBay.name))
    return result.scalars().all()


async def get_bays_for_user(
    db: AsyncSession,
    company_id: str,
    user_id: str,
    bay_id: uuid.UUID | None = None,
) -> Sequence[models_service_bay.ServiceBay]:
    """
    Return the bays of the company where `user_id` is a bay user or the primary admin
    """
    query = select(models_service_bay.ServiceBay).where(
        models_service_bay.ServiceBay.company_id == company_id,
        (models_service_bay.ServiceBay.primary_admin_id == user_id)
        | models_service_bay.ServiceBay.users.any(
            models_service_bay.ServiceBayUser.user_id == user_id,
        ),
    )
    if bay_id is not None:
        query = query.where(models_service_bay.ServiceBay.id == bay_id)
    result = await db.execute(query.order_by(models_service_bay.ServiceBay.name))
    return result.scalars().all()


async def get_bay_by_id(
    db: AsyncSession,
    bay_id: uuid.UUID,
) -> models_service_bay.ServiceBay | None:
    result = await db.execute(
        select(models_service_bay.ServiceBay).where(
            models_service_bay.ServiceBay.id == bay_id,
        ),
    )
    return result.scalars().first()


async def lock_bay(
    db: AsyncSession,
    bay_id: uuid.UUID,
) -> models_service_bay.ServiceBay | None:
    """
    Select the bay row `FOR UPDATE`. The row stays locked until the end of the transaction.

    Attributes of an already loaded bay are refreshed.
    """
    result = await db.execute(
        select(models_service_bay.ServiceBay)
        .where(models_service_bay.ServiceBay.id == bay_id)
        .with_for_update()
        .execution_options(populate_existing=True),
    )
    return result.scalars().first()


async def create_bay(
    db: AsyncSession,
    bay: models_service_bay.ServiceBay,
) -> None:
    db.add(bay)
    await db.flush()


async def delete_bay(
    db: AsyncSession,
    bay: models_service_bay.ServiceBay,
) -> None:
    """
    Delete the bay with its holidays and bookings
    """
    booking_ids = select(models_service_bay.ServiceBayBooking.id).where(
        models_service_bay.ServiceBayBooking.bay_id == bay.id,
    )
    await db.execute(
        delete(models_service_bay.ServiceBayWorkSubmission).where(
            models_service_bay.ServiceBayWorkSubmission.booking_id.in_(booking_ids),
        ),
    )
    await db.execute(
        delete(models_service_bay.ServiceBayBooking).where(
            models_service_bay.ServiceBayBooking.bay_id == bay.id,
        ),
    )
    await db.execute(
        delete(models_service_bay.ServiceBayHoliday).where(
            models_service_bay.ServiceBayHoliday.bay_id == bay.id,
        ),
    )
    await db.delete(bay)
    await db.flush()


def set_bay_users(
    bay: models_service_bay.ServiceBay,
    user_ids: list[str],
) -> None:
    """
    Replace the users of the bay, keeping existing rows of users who stay
    """
    wanted = list(dict.fromkeys(user_ids))
    bay.users = [
        bay_user for bay_user in bay.users if bay_user.user_id in wanted
    ] + [
        models_service_bay.ServiceBayUser(bay_id=bay.id, user_id=user_id)
        for user_id in wanted
        if user_id not in bay.bay_user_ids
    ]


async def count_open_bookings(
    db: AsyncSession,
    bay_id: uuid.UUID,
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(models_service_bay.ServiceBayBooking)
        .where(
            models_service_bay.ServiceBayBooking.bay_id == bay_id,
            models_service_bay.ServiceBayBooking.status.in_(OPEN_STATUSES),
        ),
    )
    return result.scalar_one()


async def get_holidays(
    db: AsyncSession,
    bay_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Sequence[models_service_bay.ServiceBayHoliday]:
    query = select(models_service_bay.ServiceBayHoliday).where(
        models_service_bay.ServiceBayHoliday.bay_id == bay_id,
    )
    if start_date is not None:
        query = query.where(
            models_service_bay.ServiceBayHoliday.holiday_date >= start_date,
        )
    if end_date is not None:
        query = query.where(
            models_service_bay.ServiceBayHoliday.holiday_date <= end_date,
        )
    result = await db.execute(
        query.order_by(
            models_service_bay.ServiceBayHoliday.holiday_date,
            models_service_bay.ServiceBayHoliday.start_time,
        ),
    )
    return result.scalars().all()


async def get_holiday_by_id(
    db: AsyncSession,
    holiday_id: uuid.UUID,
) -> models_service_bay.ServiceBayHoliday | None:
    result = await db.execute(
        select(models_service_bay.ServiceBayHoliday).where(
            models_service_bay.ServiceBayHoliday.id == holiday_id,
        ),
    )
    return result.scalars().first()


async def create_holiday(
    db: AsyncSession,
    holiday: models_service_bay.ServiceBayHoliday,
) -> None:
    db.add(holiday)
    await db.flush()


async def delete_holiday(
    db: AsyncSession,
    holiday_id: uuid.UUID,
) -> None:
    await db.execute(
        delete(models_service_bay.ServiceBayHoliday).where(
            models_service_bay.ServiceBayHoliday.id == holiday_id,
        ),
    )
    await db.flush()


async def get_bookings(
    db: AsyncSession,
    bay_ids: list[uuid.UUID],
    start_date: date | None = None,
    end_date: date | None = None,
    status: BookingStatus | None = None,
) -> Sequence[models_service_bay.ServiceBayBooking]:
    query = select(models_service_bay.ServiceBayBooking).where(
        models_service_bay.ServiceBayBooking.bay_id.in_(bay_ids),
    )
    if start_date is not None:
        query = query.where(
            models_service_bay.ServiceBayBooking.booking_date >= start_date,
        )
    if end_date is not None:
        query = query.where(
            models_service_bay.ServiceBayBooking.booking_date <= end_date,
        )
    if status is not None:
        query = query.where(models_service_bay.ServiceBayBooking.status == status)
    result = await db.execute(
        query.order_by(
            models_service_bay.ServiceBayBooking.booking_date,
            models_service_bay.ServiceBayBooking.start_time,
        ),
    )
    return result.scalars().all()


async def get_booking_by_id(
    db: AsyncSession,
    booking_id: uuid.UUID,
    for_update: bool = False,
) -> models_service_bay.ServiceBayBooking | None:
    query = select(models_service_bay.ServiceBayBooking).where(
        models_service_bay.ServiceBayBooking.id == booking_id,
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().first()


async def get_active_booking_for_field(
    db: AsyncSession,
    company_id: str,
    vehicle_type: VehicleType,
    vehicle_stock_id: int,
    field_id: str,
) -> models_service_bay.ServiceBayBooking | None:
    """
    Return a booking which was not rejected for the given vehicle field, on any bay of the company
    """
    result = await db.execute(
        select(models_service_bay.ServiceBayBooking).where(
            models_service_bay.ServiceBayBooking.company_id == company_id,
            models_service_bay.ServiceBayBooking.vehicle_type == vehicle_type,
            models_service_bay.ServiceBayBooking.vehicle_stock_id == vehicle_stock_id,
            models_service_bay.ServiceBayBooking.field_id == field_id,
            models_service_bay.ServiceBayBooking.status
            != BookingStatus.booking_rejected,
        ),
    )
    return result.scalars().first()


async def get_latest_booking_for_field(
    db: AsyncSession,
    company_id: str,
    vehicle_type: VehicleType,
    vehicle_stock_id: int,
    field_id: str,
) -> models_service_bay.ServiceBayBooking | None:
    result = await db.execute(
        select(models_service_bay.ServiceBayBooking)
        .where(
            models_service_bay.ServiceBayBooking.company_id == company_id,
            models_service_bay.ServiceBayBooking.vehicle_type == vehicle_type,
            models_service_bay.ServiceBayBooking.vehicle_stock_id == vehicle_stock_id,
            models_service_bay.ServiceBayBooking.field_id == field_id,
        )
        .order_by(models_service_bay.ServiceBayBooking.created_at.desc())
        .limit(1),
    )
    return result.scalars().first()


async def create_booking(
    db: AsyncSession,
    booking: models_service_bay.ServiceBayBooking,
) -> None:
    db.add(booking)
    await db.flush()
