import asyncio
from datetime import datetime, time

import pytest_asyncio

from app.core.auth.schemas_auth import Actor
from app.core.auth.types_auth import CompanyRole
from app.modules.service_bay import cruds_service_bay, models_service_bay
from app.modules.service_bay.holidays_service_bay import HolidayManager
from app.modules.service_bay.schemas_service_bay import (
    AcceptBooking,
    ApproveWork,
    BayBase,
    BookingBase,
    DayTimingBase,
    HolidayBase,
    RejectBooking,
    Rejection,
    RequestRework,
    ResubmitWork,
    StartWork,
    SubmitWork,
    WeeklyTimingUpdate,
    WorkSubmissionBase,
)
from app.modules.service_bay.timing_service_bay import WeeklyTimingTable
from app.modules.service_bay.types_service_bay import (
    BookingEvent,
    BookingStatus,
    RejectionReason,
    VehicleType,
    Weekday,
)
from app.utils.locks import BayLockManager
from tests.commons import (
    MONDAY,
    SATURDAY,
    SUNDAY,
    TUESDAY,
    TestingSessionLocal,
    create_bay_in_db,
    create_booking_in_db,
    create_holiday_in_db,
    make_actor,
    new_company_id,
    new_user_id,
    scheduling_service,
    settings,
    test_clock,
)

company_id: str
super_admin: Actor
primary_admin: Actor
bay_user: Actor
requester: Actor
outsider: Actor

bay: models_service_bay.ServiceBay
holiday_bay: models_service_bay.ServiceBay


@pytest_asyncio.fixture(scope="module", autouse=True)
async def init_objects() -> None:
    global company_id
    company_id = new_company_id()

    global super_admin, primary_admin, bay_user, requester, outsider
    super_admin = make_actor(new_user_id(), company_id, CompanyRole.company_super_admin)
    primary_admin = make_actor(new_user_id(), company_id)
    bay_user = make_actor(new_user_id(), company_id)
    requester = make_actor(new_user_id(), company_id)
    outsider = make_actor(
        new_user_id(),
        new_company_id(),
        CompanyRole.company_super_admin,
    )

    global bay
    bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        bay_user_ids=[bay_user.user_id],
    )

    global holiday_bay
    holiday_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Holiday bay",
    )


def booking_request(
    start: datetime,
    end: datetime,
    field_id: str,
) -> BookingBase:
    return BookingBase(
        vehicle_type=VehicleType.inspection,
        vehicle_stock_id=1001,
        field_id=field_id,
        field_name="Paint",
        start=start,
        end=end,
    )


def at(day, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


SUBMISSION = WorkSubmissionBase(
    final_price="200.00",
    gst_amount="36.00",
    total_amount="236.00",
    supplier_comments="Panel repainted",
)


async def test_scenario_a_overlapping_booking_is_refused():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        first = await service.create_booking(
            bay.id,
            booking_request(at(MONDAY, 10), at(MONDAY, 11), "scenario-a-1"),
            requester,
        )
        assert not isinstance(first, Rejection)
        assert first.status == BookingStatus.booking_request
        assert first.booking_date == MONDAY

        second = await service.create_booking(
            bay.id,
            booking_request(at(MONDAY, 10, 30), at(MONDAY, 11, 30), "scenario-a-2"),
            requester,
        )
        assert isinstance(second, Rejection)
        assert second.reason == RejectionReason.BOOKING_CONFLICT
        assert second.detail["conflicting_id"] == str(first.id)


async def test_scenario_b_holiday_on_a_closed_day():
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        result = await manager.create(
            holiday_bay.id,
            HolidayBase(start=at(SUNDAY, 10), end=at(SUNDAY, 11)),
            primary_admin,
        )
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.NON_WORKING_DAY


async def test_scenario_c_rejected_booking_can_not_start():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        booking = await service.create_booking(
            bay.id,
            booking_request(at(TUESDAY, 9), at(TUESDAY, 10), "scenario-c"),
            requester,
        )
        assert not isinstance(booking, Rejection)

        rejected = await service.apply_transition(
            booking.id,
            RejectBooking(event=BookingEvent.reject, reason="not available"),
            bay_user,
        )
        assert not isinstance(rejected, Rejection)
        assert rejected.status == BookingStatus.booking_rejected

        result = await service.apply_transition(
            booking.id,
            StartWork(event=BookingEvent.start_work),
            bay_user,
        )
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.INVALID_TRANSITION

    async with TestingSessionLocal() as db:
        stored = await cruds_service_bay.get_booking_by_id(db, booking.id)
        assert stored is not None
        assert stored.status == BookingStatus.booking_rejected


async def test_rejected_booking_frees_its_slot():
    async with TestingSessionLocal() as db:
        booking = await scheduling_service(db).create_booking(
            bay.id,
            booking_request(at(TUESDAY, 9), at(TUESDAY, 10), "after-rejection"),
            requester,
        )
        assert not isinstance(booking, Rejection)


async def test_scenario_d_rework_keeps_company_feedback():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        booking = await service.create_booking(
            bay.id,
            booking_request(at(TUESDAY, 14), at(TUESDAY, 15), "scenario-d"),
            requester,
        )
        assert not isinstance(booking, Rejection)

        for request in [
            AcceptBooking(event=BookingEvent.accept),
            StartWork(event=BookingEvent.start_work),
            SubmitWork(event=BookingEvent.submit_work, submission=SUBMISSION),
        ]:
            result = await service.apply_transition(booking.id, request, bay_user)
            assert not isinstance(result, Rejection)
        assert result.status == BookingStatus.work_review
        assert result.accepted_by == bay_user.user_id

        result = await service.apply_transition(
            booking.id,
            RequestRework(event=BookingEvent.request_rework, feedback="redo paint"),
            requester,
        )
        assert not isinstance(result, Rejection)
        assert result.status == BookingStatus.rework

        result = await service.apply_transition(
            booking.id,
            ResubmitWork(
                event=BookingEvent.resubmit_work,
                submission=SUBMISSION,
                draft=False,
            ),
            bay_user,
        )
        assert not isinstance(result, Rejection)

    async with TestingSessionLocal() as db:
        stored = await cruds_service_bay.get_booking_by_id(db, booking.id)
        assert stored is not None
        assert stored.status == BookingStatus.work_review
        assert stored.work_submission is not None
        assert stored.work_submission.company_feedback == "redo paint"
        assert stored.work_submission.supplier_comments == "Panel repainted"


async def test_scenario_e_booking_touching_a_holiday():
    scenario_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Scenario E",
    )
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        holiday = await manager.create(
            scenario_bay.id,
            HolidayBase(start=at(MONDAY, 9), end=at(MONDAY, 12)),
            primary_admin,
        )
        assert not isinstance(holiday, Rejection)

        service = scheduling_service(db)
        conflict = await service.create_booking(
            scenario_bay.id,
            booking_request(at(MONDAY, 11), at(MONDAY, 13), "scenario-e-1"),
            requester,
        )
        assert isinstance(conflict, Rejection)
        assert conflict.reason == RejectionReason.HOLIDAY_CONFLICT

        booking = await service.create_booking(
            scenario_bay.id,
            booking_request(at(MONDAY, 12), at(MONDAY, 13), "scenario-e-2"),
            requester,
        )
        assert not isinstance(booking, Rejection)


async def test_holiday_requires_the_primary_admin():
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        for actor in [bay_user, super_admin, outsider]:
            result = await manager.create(
                holiday_bay.id,
                HolidayBase(start=at(SATURDAY, 9), end=at(SATURDAY, 10)),
                actor,
            )
            assert isinstance(result, Rejection)
            assert result.reason == RejectionReason.FORBIDDEN

        holiday = await manager.create(
            holiday_bay.id,
            HolidayBase(start=at(SATURDAY, 9), end=at(SATURDAY, 10)),
            primary_admin,
        )
        assert not isinstance(holiday, Rejection)
        assert holiday.reason == "Holiday"

        removal = await manager.remove(holiday_bay.id, holiday.id, bay_user)
        assert isinstance(removal, Rejection)
        assert removal.reason == RejectionReason.FORBIDDEN

        holidays = await manager.list_holidays(holiday_bay.id, bay_user)
        assert not isinstance(holidays, Rejection)
        assert [existing.id for existing in holidays] == [holiday.id]

        removed = await manager.remove(holiday_bay.id, holiday.id, primary_admin)
        assert not isinstance(removed, Rejection)
        assert removed.id == holiday.id


async def test_overlapping_holidays_are_refused():
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        first = await manager.create(
            holiday_bay.id,
            HolidayBase(start=at(TUESDAY, 9), end=at(TUESDAY, 12), reason="Audit"),
            primary_admin,
        )
        assert not isinstance(first, Rejection)
        second = await manager.create(
            holiday_bay.id,
            HolidayBase(start=at(TUESDAY, 11), end=at(TUESDAY, 13)),
            primary_admin,
        )
        assert isinstance(second, Rejection)
        assert second.reason == RejectionReason.HOLIDAY_CONFLICT


async def test_holiday_over_a_booking_is_refused():
    booked_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Booked bay",
    )
    booking = await create_booking_in_db(
        bay=booked_bay,
        created_by=requester.user_id,
        booking_date=MONDAY,
        start_time=time(10, 0),
        end_time=time(11, 0),
    )
    await create_booking_in_db(
        bay=booked_bay,
        created_by=requester.user_id,
        booking_date=MONDAY,
        start_time=time(14, 0),
        end_time=time(15, 0),
        status=BookingStatus.booking_rejected,
    )
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        conflict = await manager.create(
            booked_bay.id,
            HolidayBase(start=at(MONDAY, 9), end=at(MONDAY, 12)),
            primary_admin,
        )
        assert isinstance(conflict, Rejection)
        assert conflict.reason == RejectionReason.BOOKING_CONFLICT
        assert conflict.detail["conflicting_id"] == str(booking.id)

        holidays = await manager.list_holidays(booked_bay.id, primary_admin)
        assert not isinstance(holidays, Rejection)
        assert list(holidays) == []

        # A rejected booking does not occupy its slot
        holiday = await manager.create(
            booked_bay.id,
            HolidayBase(start=at(MONDAY, 13), end=at(MONDAY, 16)),
            primary_admin,
        )
        assert not isinstance(holiday, Rejection)


async def test_holiday_in_the_past_is_refused():
    async with TestingSessionLocal() as db:
        manager = HolidayManager(
            db=db,
            clock=test_clock,
            lock_manager=BayLockManager(timeout=1),
        )
        # The test clock is at 08:00 on Monday, before the bay opens
        result = await manager.create(
            holiday_bay.id,
            HolidayBase(
                start=datetime(2030, 1, 4, 9, 0),
                end=datetime(2030, 1, 4, 10, 0),
            ),
            primary_admin,
        )
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.PAST_INTERVAL


async def test_booking_requires_an_admin_of_the_bay_company():
    async with TestingSessionLocal() as db:
        result = await scheduling_service(db).create_booking(
            bay.id,
            booking_request(at(SATURDAY, 9), at(SATURDAY, 10), "forbidden"),
            outsider,
        )
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.FORBIDDEN


async def test_duplicate_booking_for_a_field():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        first = await service.create_booking(
            bay.id,
            booking_request(at(SATURDAY, 9), at(SATURDAY, 10), "duplicate"),
            requester,
        )
        assert not isinstance(first, Rejection)
        second = await service.create_booking(
            bay.id,
            booking_request(at(SATURDAY, 11), at(SATURDAY, 12), "duplicate"),
            requester,
        )
        assert isinstance(second, Rejection)
        assert second.reason == RejectionReason.DUPLICATE_BOOKING
        assert second.detail["booking_id"] == str(first.id)

        latest = await service.get_booking_for_field(
            requester,
            vehicle_type=VehicleType.inspection,
            vehicle_stock_id=1001,
            field_id="duplicate",
        )
        assert not isinstance(latest, Rejection)
        assert latest.id == first.id


async def test_inactive_bay_accepts_no_booking():
    inactive_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        is_active=False,
        name="Inactive",
    )
    async with TestingSessionLocal() as db:
        result = await scheduling_service(db).create_booking(
            inactive_bay.id,
            booking_request(at(MONDAY, 10), at(MONDAY, 11), "inactive"),
            requester,
        )
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.BAY_INACTIVE


async def test_reviewer_guard_for_approval():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        booking = await service.create_booking(
            bay.id,
            booking_request(at(TUESDAY, 16), at(TUESDAY, 17), "reviewer"),
            requester,
        )
        assert not isinstance(booking, Rejection)
        for request in [
            AcceptBooking(event=BookingEvent.accept),
            StartWork(event=BookingEvent.start_work),
            SubmitWork(event=BookingEvent.submit_work, submission=SUBMISSION),
        ]:
            assert not isinstance(
                await service.apply_transition(booking.id, request, primary_admin),
                Rejection,
            )

        refused = await service.apply_transition(
            booking.id,
            ApproveWork(event=BookingEvent.approve),
            bay_user,
        )
        assert isinstance(refused, Rejection)
        assert refused.reason == RejectionReason.FORBIDDEN

        approved = await service.apply_transition(
            booking.id,
            ApproveWork(event=BookingEvent.approve),
            super_admin,
        )
        assert not isinstance(approved, Rejection)
        assert approved.status == BookingStatus.completed_jobs


async def test_concurrent_overlapping_requests_create_a_single_booking():
    concurrent_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Concurrent",
    )
    lock_manager = BayLockManager(timeout=settings.BAY_LOCK_TIMEOUT_SECONDS)

    async def request_booking(index: int) -> models_service_bay.ServiceBayBooking | Rejection:
        async with TestingSessionLocal() as db:
            return await scheduling_service(db, lock_manager).create_booking(
                concurrent_bay.id,
                booking_request(
                    at(MONDAY, 10, index * 10),
                    at(MONDAY, 11, index * 10),
                    f"concurrent-{index}",
                ),
                requester,
            )

    results = await asyncio.gather(*(request_booking(index) for index in range(4)))

    created = [result for result in results if not isinstance(result, Rejection)]
    refused = [result for result in results if isinstance(result, Rejection)]
    assert len(created) == 1
    assert all(result.reason == RejectionReason.BOOKING_CONFLICT for result in refused)

    async with TestingSessionLocal() as db:
        stored = await cruds_service_bay.get_bookings(db, bay_ids=[concurrent_bay.id])
        assert len(stored) == 1


async def test_weekly_timing_update_keeps_live_records_within_opening_hours():
    timing_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Timings",
    )
    booking = await create_booking_in_db(
        timing_bay,
        created_by=requester.user_id,
        booking_date=SATURDAY,
        start_time=time(12, 0),
        end_time=time(13, 0),
    )
    # Past records are not checked
    await create_holiday_in_db(
        timing_bay,
        holiday_date=datetime(2030, 1, 1).date(),
        start_time=time(9, 0),
        end_time=time(10, 0),
    )

    def update(saturday: DayTimingBase) -> WeeklyTimingUpdate:
        return WeeklyTimingUpdate(
            weekly_timing=[
                DayTimingBase.from_day_timing(entry)
                for entry in WeeklyTimingTable.default()
                if entry.day_of_week != Weekday.saturday
            ]
            + [saturday],
        )

    async with TestingSessionLocal() as db:
        service = scheduling_service(db)

        closed = await service.update_weekly_timing(
            timing_bay.id,
            update(DayTimingBase(day_of_week=Weekday.saturday, is_working_day=False)),
            primary_admin,
        )
        assert isinstance(closed, Rejection)
        assert closed.reason == RejectionReason.NON_WORKING_DAY
        assert closed.detail["booking_ids"] == [str(booking.id)]
        assert closed.detail["holiday_ids"] == []

        shorter = await service.update_weekly_timing(
            timing_bay.id,
            update(
                DayTimingBase(
                    day_of_week=Weekday.saturday,
                    is_working_day=True,
                    start_time=time(9, 0),
                    end_time=time(12, 0),
                ),
            ),
            primary_admin,
        )
        assert isinstance(shorter, Rejection)
        assert shorter.reason == RejectionReason.OUTSIDE_WORKING_HOURS

        forbidden = await service.update_weekly_timing(
            timing_bay.id,
            update(DayTimingBase(day_of_week=Weekday.saturday, is_working_day=False)),
            bay_user,
        )
        assert isinstance(forbidden, Rejection)
        assert forbidden.reason == RejectionReason.FORBIDDEN

        longer = await service.update_weekly_timing(
            timing_bay.id,
            update(
                DayTimingBase(
                    day_of_week=Weekday.saturday,
                    is_working_day=True,
                    start_time=time(8, 0),
                    end_time=time(16, 0),
                ),
            ),
            super_admin,
        )
        assert not isinstance(longer, Rejection)
        assert longer.timing_table()[Weekday.saturday].window is not None
        assert longer.timing_table()[Weekday.saturday].window.end == time(16, 0)


async def test_delete_bay_with_open_bookings():
    busy_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Busy",
    )
    booking = await create_booking_in_db(
        busy_bay,
        created_by=requester.user_id,
        booking_date=MONDAY,
        start_time=time(15, 0),
        end_time=time(16, 0),
        status=BookingStatus.work_in_progress,
    )
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        result = await service.delete_bay(busy_bay.id, super_admin)
        assert isinstance(result, Rejection)
        assert result.reason == RejectionReason.BOOKING_CONFLICT
        assert result.detail["open_bookings"] == 1

        forbidden = await service.delete_bay(busy_bay.id, primary_admin)
        assert isinstance(forbidden, Rejection)
        assert forbidden.reason == RejectionReason.FORBIDDEN

    async with TestingSessionLocal() as db:
        stored = await cruds_service_bay.get_booking_by_id(db, booking.id)
        assert stored is not None
        stored.status = BookingStatus.completed_jobs
        await db.commit()

    async with TestingSessionLocal() as db:
        assert await scheduling_service(db).delete_bay(busy_bay.id, super_admin) is None

    async with TestingSessionLocal() as db:
        assert await cruds_service_bay.get_bay_by_id(db, busy_bay.id) is None
        assert await cruds_service_bay.get_booking_by_id(db, booking.id) is None


async def test_create_bay_with_default_timing():
    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        created = await service.create_bay(
            BayBase(
                name="New bay",
                dealership_id="dealership-2",
                primary_admin_id=primary_admin.user_id,
                bay_user_ids=[bay_user.user_id, bay_user.user_id],
                timezone="Asia/Kolkata",
            ),
            super_admin,
        )
        assert not isinstance(created, Rejection)
        assert created.company_id == company_id
        assert created.bay_user_ids == [bay_user.user_id]
        assert created.timing_table() == WeeklyTimingTable.default()

        refused = await service.create_bay(
            BayBase(
                name="Refused",
                dealership_id="dealership-2",
                primary_admin_id=primary_admin.user_id,
            ),
            primary_admin,
        )
        assert isinstance(refused, Rejection)
        assert refused.reason == RejectionReason.FORBIDDEN

        unknown_zone = await service.create_bay(
            BayBase(
                name="Unknown zone",
                dealership_id="dealership-2",
                primary_admin_id=primary_admin.user_id,
                timezone="Mars/Olympus_Mons",
            ),
            super_admin,
        )
        assert isinstance(unknown_zone, Rejection)
        assert unknown_zone.reason == RejectionReason.INVALID_PAYLOAD


async def test_availability_projection():
    projection_bay = await create_bay_in_db(
        company_id=company_id,
        primary_admin_id=primary_admin.user_id,
        name="Projection",
    )
    await create_holiday_in_db(
        projection_bay,
        holiday_date=MONDAY,
        start_time=time(9, 0),
        end_time=time(10, 0),
    )
    accepted = await create_booking_in_db(
        projection_bay,
        created_by=requester.user_id,
        booking_date=MONDAY,
        start_time=time(12, 0),
        end_time=time(13, 0),
        status=BookingStatus.booking_accepted,
    )
    rejected = await create_booking_in_db(
        projection_bay,
        created_by=requester.user_id,
        booking_date=MONDAY,
        start_time=time(14, 0),
        end_time=time(15, 0),
        status=BookingStatus.booking_rejected,
    )

    async with TestingSessionLocal() as db:
        service = scheduling_service(db)
        days = await service.list_availability(
            projection_bay.id,
            start_date=MONDAY,
            end_date=SUNDAY,
            actor=requester,
            include_rejected=True,
        )
        assert not isinstance(days, Rejection)
        assert len(days) == 7

        monday = days[0]
        assert monday.day_of_week == Weekday.monday
        assert [booking.id for booking in monday.bookings] == [accepted.id]
        assert [booking.id for booking in monday.rejected_bookings or []] == [rejected.id]
        assert [(window.start, window.end) for window in monday.free_windows] == [
            (time(10, 0), time(12, 0)),
            (time(13, 0), time(18, 0)),
        ]

        sunday = days[-1]
        assert sunday.open_window is None
        assert sunday.free_windows == []

        inverted = await service.list_availability(
            projection_bay.id,
            start_date=SUNDAY,
            end_date=MONDAY,
            actor=requester,
        )
        assert isinstance(inverted, Rejection)
        assert inverted.reason == RejectionReason.INVALID_INTERVAL

        forbidden = await service.list_availability(
            projection_bay.id,
            start_date=MONDAY,
            end_date=SUNDAY,
            actor=outsider,
        )
        assert isinstance(forbidden, Rejection)
        assert forbidden.reason == RejectionReason.FORBIDDEN


async def test_bay_calendar_lists_bays_of_the_user():
    async with TestingSessionLocal() as db:
        calendar = await scheduling_service(db).get_bay_calendar(
            bay_user,
            start_date=MONDAY,
            end_date=SUNDAY,
        )
        assert not isinstance(calendar, Rejection)
        calendar_bay_ids = [calendar_bay.id for calendar_bay in calendar.bays]
        assert bay.id in calendar_bay_ids
        assert holiday_bay.id not in calendar_bay_ids
        assert all(booking.bay_id in calendar_bay_ids for booking in calendar.bookings)
        assert any(booking.bay_id == bay.id for booking in calendar.bookings)
