"""
Booking state machine.

A booking is created as `booking_request` and can only change through the transitions of `TRANSITIONS`.
`booking_rejected` and `completed_jobs` are terminal.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.modules.service_bay import models_service_bay
from app.modules.service_bay.schemas_service_bay import (
    RejectBooking,
    Rejection,
    RequestRework,
    ResubmitWork,
    SaveDraft,
    SubmitWork,
    TransitionRequest,
    WorkSubmissionBase,
)
from app.modules.service_bay.types_service_bay import (
    BookingEvent,
    BookingStatus,
    RejectionReason,
)


class TransitionGuard(str, Enum):
    # The actor is a user of the bay, or its primary admin
    bay_user = "bay_user"
    # The actor is the company user who requested the booking, or a super admin of its company
    company_reviewer = "company_reviewer"


@dataclass(frozen=True)
class Transition:
    source: BookingStatus
    event: BookingEvent
    target: BookingStatus
    guard: TransitionGuard


TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], Transition] = {
    (transition.source, transition.event): transition
    for transition in [
        Transition(
            BookingStatus.booking_request,
            BookingEvent.accept,
            BookingStatus.booking_accepted,
            TransitionGuard.bay_user,
        ),
        Transition(
            BookingStatus.booking_request,
            BookingEvent.reject,
            BookingStatus.booking_rejected,
            TransitionGuard.bay_user,
        ),
        Transition(
            BookingStatus.booking_accepted,
            BookingEvent.start_work,
            BookingStatus.work_in_progress,
            TransitionGuard.bay_user,
        ),
        Transition(
            BookingStatus.work_in_progress,
            BookingEvent.submit_work,
            BookingStatus.work_review,
            TransitionGuard.bay_user,
        ),
        Transition(
            BookingStatus.work_in_progress,
            BookingEvent.save_draft,
            BookingStatus.work_in_progress,
            TransitionGuard.bay_user,
        ),
        Transition(
            BookingStatus.work_review,
            BookingEvent.approve,
            BookingStatus.completed_jobs,
            TransitionGuard.company_reviewer,
        ),
        Transition(
            BookingStatus.work_review,
            BookingEvent.request_rework,
            BookingStatus.rework,
            TransitionGuard.company_reviewer,
        ),
        Transition(
            BookingStatus.rework,
            BookingEvent.resubmit_work,
            BookingStatus.work_review,
            TransitionGuard.bay_user,
        ),
    ]
}


def plan_transition(
    status: BookingStatus,
    request: TransitionRequest,
    is_bay_user: bool,
    is_company_reviewer: bool,
) -> Transition | Rejection:
    """
    Find the transition matching `request` from `status` and check the actor may use it.

    Checks are made in the following order: the transition must exist, then the actor must satisfy its guard,
    then the request payload must be usable.
    """
    transition = TRANSITIONS.get((status, request.event))
    if transition is None:
        return Rejection(
            reason=RejectionReason.INVALID_TRANSITION,
            message=f"Event {request.event.value} is not allowed for a booking in status {status.value}",
            detail={"status": status, "event": request.event},
        )

    allowed = (
        is_bay_user
        if transition.guard == TransitionGuard.bay_user
        else is_company_reviewer
    )
    if not allowed:
        return Rejection(
            reason=RejectionReason.FORBIDDEN,
            message=f"Event {request.event.value} requires a {transition.guard.value}",
            detail={"event": request.event, "guard": transition.guard},
        )

    if isinstance(request, RejectBooking) and not request.reason.strip():
        return Rejection(
            reason=RejectionReason.INVALID_PAYLOAD,
            message="A rejection reason is required",
        )
    if isinstance(request, RequestRework) and not request.feedback.strip():
        return Rejection(
            reason=RejectionReason.INVALID_PAYLOAD,
            message="Feedback is required to request a rework",
        )

    # A draft resubmission keeps the booking in rework
    if isinstance(request, ResubmitWork) and request.draft:
        return Transition(
            source=transition.source,
            event=transition.event,
            target=BookingStatus.rework,
            guard=transition.guard,
        )
    return transition


def _write_submission(
    booking: models_service_bay.ServiceBayBooking,
    submission: WorkSubmissionBase,
    draft: bool,
    now: datetime,
) -> None:
    """
    Create or overwrite the work submission. Company feedback of a previous review is kept.
    """
    if booking.work_submission is None:
        booking.work_submission = models_service_bay.ServiceBayWorkSubmission(
            booking_id=booking.id,
            draft_status=draft,
            final_price=submission.final_price,
            gst_amount=submission.gst_amount,
            total_amount=submission.total_amount,
            supplier_comments=submission.supplier_comments,
            work_images=list(submission.work_images),
            work_videos=list(submission.work_videos),
            submitted_at=None if draft else now,
        )
        return

    work_submission = booking.work_submission
    work_submission.draft_status = draft
    work_submission.final_price = submission.final_price
    work_submission.gst_amount = submission.gst_amount
    work_submission.total_amount = submission.total_amount
    work_submission.supplier_comments = submission.supplier_comments
    work_submission.work_images = list(submission.work_images)
    work_submission.work_videos = list(submission.work_videos)
    if not draft:
        work_submission.submitted_at = now


def apply_transition(
    booking: models_service_bay.ServiceBayBooking,
    transition: Transition,
    request: TransitionRequest,
    actor_id: str,
    now: datetime,
) -> None:
    """
    Write the new status and the side effects of an already planned transition on `booking`
    """
    match request:
        case RejectBooking():
            booking.rejected_reason = request.reason.strip()
        case SubmitWork():
            _write_submission(booking, request.submission, draft=False, now=now)
            booking.work_submitted_at = now
        case SaveDraft():
            _write_submission(booking, request.submission, draft=True, now=now)
        case ResubmitWork():
            _write_submission(
                booking,
                request.submission,
                draft=request.draft,
                now=now,
            )
            if not request.draft:
                booking.work_submitted_at = now
        case RequestRework():
            if booking.work_submission is not None:
                booking.work_submission.company_feedback = request.feedback.strip()
                booking.work_submission.reviewed_at = now

    match transition.event:
        case BookingEvent.accept:
            booking.accepted_by = actor_id
            booking.accepted_at = now
        case BookingEvent.start_work:
            booking.work_started_at = now
        case BookingEvent.approve:
            booking.work_completed_at = now
            if booking.work_submission is not None:
                booking.work_submission.reviewed_at = now

    booking.status = transition.target
    booking.updated_at = now
