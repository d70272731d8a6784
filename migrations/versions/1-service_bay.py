"""service bay scheduling

Create Date: 2026-10-19 09:12:40.518230
"""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pytest_alembic import MigrationContext

import sqlalchemy as sa
from alembic import op

from app.types.sqlalchemy import TZDateTime

# revision identifiers, used by Alembic.
revision: str = "6c1f0e2b9a4d"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

weekday_enum = sa.Enum(
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
    name="weekday",
)
booking_status_enum = sa.Enum(
    "booking_request",
    "booking_accepted",
    "booking_rejected",
    "work_in_progress",
    "work_review",
    "rework",
    "completed_jobs",
    name="bookingstatus",
)
vehicle_type_enum = sa.Enum("inspection", "tradein", name="vehicletype")


def upgrade() -> None:
    op.create_table(
        "service_bay",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("dealership_id", sa.String(), nullable=False),
        sa.Column("primary_admin_id", sa.String(), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", TZDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_service_bay_company_id"),
        "service_bay",
        ["company_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_service_bay_dealership_id"),
        "service_bay",
        ["dealership_id"],
        unique=False,
    )
    op.create_table(
        "service_bay_user",
        sa.Column("bay_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bay.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("bay_id", "user_id"),
    )
    op.create_index(
        op.f("ix_service_bay_user_user_id"),
        "service_bay_user",
        ["user_id"],
        unique=False,
    )
    op.create_table(
        "service_bay_timing",
        sa.Column("bay_id", sa.Uuid(), nullable=False),
        sa.Column("day_of_week", weekday_enum, nullable=False),
        sa.Column("is_working_day", sa.Boolean(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.CheckConstraint(
            "(is_working_day AND start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time) "
            "OR (NOT is_working_day AND start_time IS NULL AND end_time IS NULL)",
            name="ck_service_bay_timing_window",
        ),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bay.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("bay_id", "day_of_week"),
    )
    op.create_table(
        "service_bay_holiday",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("bay_id", sa.Uuid(), nullable=False),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("marked_by", sa.String(), nullable=False),
        sa.Column("marked_at", TZDateTime(), nullable=False),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bay.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_service_bay_holiday_bay_id_holiday_date",
        "service_bay_holiday",
        ["bay_id", "holiday_date"],
        unique=False,
    )
    op.create_table(
        "service_bay_booking",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("bay_id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.String(), nullable=False),
        sa.Column("vehicle_type", vehicle_type_enum, nullable=False),
        sa.Column("vehicle_stock_id", sa.Integer(), nullable=False),
        sa.Column("field_id", sa.String(), nullable=False),
        sa.Column("field_name", sa.String(), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", TZDateTime(), nullable=False),
        sa.Column("updated_at", TZDateTime(), nullable=False),
        sa.Column("quote_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("booking_description", sa.String(), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("videos", sa.JSON(), nullable=False),
        sa.Column("accepted_by", sa.String(), nullable=True),
        sa.Column("accepted_at", TZDateTime(), nullable=True),
        sa.Column("rejected_reason", sa.String(), nullable=True),
        sa.Column("work_started_at", TZDateTime(), nullable=True),
        sa.Column("work_submitted_at", TZDateTime(), nullable=True),
        sa.Column("work_completed_at", TZDateTime(), nullable=True),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bay.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_service_bay_booking_bay_id_booking_date",
        "service_bay_booking",
        ["bay_id", "booking_date"],
        unique=False,
    )
    op.create_index(
        "ix_service_bay_booking_company_id_status",
        "service_bay_booking",
        ["company_id", "status"],
        unique=False,
    )
    op.create_table(
        "service_bay_work_submission",
        sa.Column("booking_id", sa.Uuid(), nullable=False),
        sa.Column("draft_status", sa.Boolean(), nullable=False),
        sa.Column("final_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("gst_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("supplier_comments", sa.String(), nullable=True),
        sa.Column("work_images", sa.JSON(), nullable=False),
        sa.Column("work_videos", sa.JSON(), nullable=False),
        sa.Column("company_feedback", sa.String(), nullable=True),
        sa.Column("submitted_at", TZDateTime(), nullable=True),
        sa.Column("reviewed_at", TZDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["booking_id"],
            ["service_bay_booking.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("booking_id"),
    )


def downgrade() -> None:
    op.drop_table("service_bay_work_submission")
    op.drop_index(
        "ix_service_bay_booking_company_id_status",
        table_name="service_bay_booking",
    )
    op.drop_index(
        "ix_service_bay_booking_bay_id_booking_date",
        table_name="service_bay_booking",
    )
    op.drop_table("service_bay_booking")
    op.drop_index(
        "ix_service_bay_holiday_bay_id_holiday_date",
        table_name="service_bay_holiday",
    )
    op.drop_table("service_bay_holiday")
    op.drop_table("service_bay_timing")
    op.drop_index(op.f("ix_service_bay_user_user_id"), table_name="service_bay_user")
    op.drop_table("service_bay_user")
    op.drop_index(op.f("ix_service_bay_dealership_id"), table_name="service_bay")
    op.drop_index(op.f("ix_service_bay_company_id"), table_name="service_bay")
    op.drop_table("service_bay")

    # PostgreSQL keeps enum types after their tables were dropped
    weekday_enum.drop(op.get_bind(), checkfirst=True)
    booking_status_enum.drop(op.get_bind(), checkfirst=True)
    vehicle_type_enum.drop(op.get_bind(), checkfirst=True)


def pre_test_upgrade(
    alembic_runner: "MigrationContext",
    alembic_connection: sa.Connection,
) -> None:
    # First revision, the database is empty
    pass


def test_upgrade(
    alembic_runner: "MigrationContext",
    alembic_connection: sa.Connection,
) -> None:
    inspector = sa.inspect(alembic_connection)
    assert {
        "service_bay",
        "service_bay_user",
        "service_bay_timing",
        "service_bay_holiday",
        "service_bay_booking",
        "service_bay_work_submission",
    } <= set(inspector.get_table_names())

    # The overlap scans filter on (bay_id, date)
    holiday_indexes = {
        index["name"]: index["column_names"]
        for index in inspector.get_indexes("service_bay_holiday")
    }
    assert holiday_indexes["ix_service_bay_holiday_bay_id_holiday_date"] == [
        "bay_id",
        "holiday_date",
    ]
    booking_indexes = {
        index["name"]: index["column_names"]
        for index in inspector.get_indexes("service_bay_booking")
    }
    assert booking_indexes["ix_service_bay_booking_bay_id_booking_date"] == [
        "bay_id",
        "booking_date",
    ]

    bay_id = uuid.uuid4()
    bay_table = sa.table(
        "service_bay",
        sa.column("id", sa.Uuid()),
        sa.column("company_id", sa.String()),
        sa.column("name", sa.String()),
        sa.column("dealership_id", sa.String()),
        sa.column("primary_admin_id", sa.String()),
        sa.column("timezone", sa.String()),
        sa.column("is_active", sa.Boolean()),
        sa.column("created_by", sa.String()),
        sa.column("created_at", TZDateTime()),
    )
    alembic_connection.execute(
        bay_table.insert(),
        {
            "id": bay_id,
            "company_id": "company",
            "name": "Bay",
            "dealership_id": "dealership",
            "primary_admin_id": "admin",
            "timezone": "UTC",
            "is_active": True,
            "created_by": "admin",
            "created_at": datetime(2030, 1, 1, tzinfo=UTC),
        },
    )
    timing_table = sa.table(
        "service_bay_timing",
        sa.column("bay_id", sa.Uuid()),
        sa.column("day_of_week", weekday_enum),
        sa.column("is_working_day", sa.Boolean()),
        sa.column("start_time", sa.Time()),
        sa.column("end_time", sa.Time()),
    )
    alembic_connection.execute(
        timing_table.insert(),
        [
            {
                "bay_id": bay_id,
                "day_of_week": "monday",
                "is_working_day": True,
                "start_time": time(9, 0),
                "end_time": time(18, 0),
            },
            {
                "bay_id": bay_id,
                "day_of_week": "sunday",
                "is_working_day": False,
                "start_time": None,
                "end_time": None,
            },
        ],
    )

    # A closed day with opening hours, or an inverted window, is refused by the database
    for invalid_timing in [
        {
            "day_of_week": "saturday",
            "is_working_day": False,
            "start_time": time(9, 0),
            "end_time": time(14, 0),
        },
        {
            "day_of_week": "friday",
            "is_working_day": True,
            "start_time": time(18, 0),
            "end_time": time(9, 0),
        },
    ]:
        savepoint = alembic_connection.begin_nested()
        try:
            alembic_connection.execute(
                timing_table.insert(),
                {"bay_id": bay_id, **invalid_timing},
            )
        except sa.exc.IntegrityError:
            savepoint.rollback()
        else:
            savepoint.rollback()
            raise AssertionError(  # noqa: TRY003
                f"service_bay_timing accepted {invalid_timing}",
            )

    alembic_connection.execute(
        timing_table.delete().where(timing_table.c.bay_id == bay_id),
    )
    alembic_connection.execute(bay_table.delete().where(bay_table.c.id == bay_id))
