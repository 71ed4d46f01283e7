"""Swap negotiation — a requester asks a booker to give up overlapping dates.

The requester's leave points at the booker's leave through
``requested_swap_with_leave_id`` and stays pending. The booker answers once
(accept / reject); when the booker later moves or drops the conflicting leave,
every pending requester that no longer overlaps is released. Requests nobody
answers within the SLA surface in the admin acknowledgment queue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from leavedesk.common.audit import create_audit_entry, utcnow
from leavedesk.common.constants import (
    ApprovalOutcome,
    BLOCK_EMPLOYEE_ID,
    LeaveStatus,
    RefusalKind,
    SwapState,
)
from leavedesk.common.exceptions import NotFoundException
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from leavedesk.leave.balance import debit_paid
from leavedesk.leave.models import LeaveRequest
from leavedesk.leave.schemas import (
    AcknowledgementOut,
    LeaveRefusal,
    PendingActionsOut,
    RejectedLeaveNoticeOut,
    RejectedSwapNoticeOut,
    SwapAsBookerOut,
    SwapAsRequesterOut,
    SwapRequestsOut,
)

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def response_overdue(leave: LeaveRequest, now: Optional[datetime] = None) -> bool:
    """Swap asked, never answered, and older than the response SLA."""
    if leave.requested_swap_with_leave_id is None or leave.swap_responded_at is not None:
        return False
    created = _as_utc(leave.created_at)
    if created is None:
        return False
    now = now or utcnow()
    return now - created > timedelta(hours=settings.LEAVE_SWAP_RESPONSE_SLA_HOURS)


def swap_state(leave: LeaveRequest, now: Optional[datetime] = None) -> SwapState:
    """Derive the negotiation state of a requesting leave."""

    if leave.status == LeaveStatus.approved and leave.approved_via_swap:
        return SwapState.swapped
    if leave.requested_swap_with_leave_id is None:
        return SwapState.no_swap
    if leave.status == LeaveStatus.rejected:
        return SwapState.rejected_by_admin
    if leave.swap_responded_at is not None:
        return SwapState.swap_accepted if leave.swap_accepted else SwapState.rejected_by_booker
    if response_overdue(leave, now):
        return SwapState.booker_did_not_respond
    return SwapState.swap_requested


def needs_acknowledgment(leave: LeaveRequest, now: Optional[datetime] = None) -> bool:
    """Whether a pending leave belongs in the admin acknowledgment queue."""

    if leave.status != LeaveStatus.pending or leave.employee_id == BLOCK_EMPLOYEE_ID:
        return False
    if leave.is_important_date_override:
        return True
    has_swap = leave.requested_swap_with_leave_id is not None
    if has_swap and leave.swap_responded_at is not None:
        return True
    if response_overdue(leave, now):
        return True
    has_policy_form = (
        leave.policy_reason_detail is not None or leave.expected_return_date is not None
    )
    return has_policy_form and (not has_swap or leave.swap_responded_at is not None)


def clear_swap(leave: LeaveRequest) -> None:
    leave.requested_swap_with_leave_id = None
    leave.swap_responded_at = None
    leave.swap_accepted = None
    leave.updated_at = utcnow()


async def _lock_leave(db: AsyncSession, leave_id: int) -> Optional[LeaveRequest]:
    result = await db.execute(
        select(LeaveRequest).where(LeaveRequest.id == leave_id).with_for_update()
    )
    return result.scalars().first()


def _closed_request(requester: LeaveRequest) -> Optional[LeaveRefusal]:
    """Refusal when ``requester`` is no longer an open swap negotiation."""
    if requester.status != LeaveStatus.pending:
        return LeaveRefusal(
            kind=RefusalKind.not_pending,
            message=f"Leave request is already {requester.status.value}.",
            existing_leave_id=requester.id,
        )
    if requester.requested_swap_with_leave_id is None:
        return LeaveRefusal(
            kind=RefusalKind.no_swap, message="This leave has no swap request.",
        )
    return None


async def _booker_check(
    db: AsyncSession,
    requester: LeaveRequest,
    booker_id: int,
) -> Optional[LeaveRefusal]:
    booker_leave = await db.get(LeaveRequest, requester.requested_swap_with_leave_id)
    if booker_leave is None or booker_leave.employee_id != booker_id:
        return LeaveRefusal(
            kind=RefusalKind.not_booker,
            message="You are not the booker for this swap request.",
        )
    return None


# ─────────────────────────────────────────────────────────────────────
# Booker response
# ─────────────────────────────────────────────────────────────────────


async def respond_swap(
    db: AsyncSession,
    requesting_leave_id: int,
    booker_id: int,
    accept: bool,
) -> Union[LeaveRequest, LeaveRefusal]:
    """Record the booker's one-time answer to a swap request."""

    requester = await _lock_leave(db, requesting_leave_id)
    if requester is None:
        raise NotFoundException("LeaveRequest", requesting_leave_id)

    refusal = _closed_request(requester)
    if refusal is not None:
        return refusal
    if requester.swap_responded_at is not None:
        return LeaveRefusal(
            kind=RefusalKind.already_responded,
            message="This swap request has already been answered.",
        )
    refusal = await _booker_check(db, requester, booker_id)
    if refusal is not None:
        return refusal

    now = utcnow()
    requester.swap_responded_at = now
    requester.swap_accepted = accept
    requester.updated_at = now
    await db.flush()

    await create_audit_entry(
        db,
        action="respond_swap",
        entity_type="leave_request",
        entity_id=requester.id,
        actor_id=booker_id,
        new_values={"swap_accepted": accept},
    )
    logger.info(
        "Booker %s %s swap request on leave %s",
        booker_id, "accepted" if accept else "rejected", requester.id,
    )
    return requester


async def reject_swap_after_accept(
    db: AsyncSession,
    requesting_leave_id: int,
    booker_id: int,
) -> Union[LeaveRequest, LeaveRefusal]:
    """Booker withdraws; the requester stays pending for admin acknowledgment."""

    requester = await _lock_leave(db, requesting_leave_id)
    if requester is None:
        raise NotFoundException("LeaveRequest", requesting_leave_id)

    refusal = _closed_request(requester) or await _booker_check(db, requester, booker_id)
    if refusal is not None:
        return refusal

    old_target = requester.requested_swap_with_leave_id
    clear_swap(requester)
    await db.flush()

    await create_audit_entry(
        db,
        action="reject_swap_after_accept",
        entity_type="leave_request",
        entity_id=requester.id,
        actor_id=booker_id,
        old_values={"requested_swap_with_leave_id": old_target},
        new_values={"requested_swap_with_leave_id": None},
    )
    logger.info("Booker %s withdrew from swap on leave %s", booker_id, requester.id)
    return requester


# ─────────────────────────────────────────────────────────────────────
# Resolution after the booker moves or drops their leave
# ─────────────────────────────────────────────────────────────────────


async def resolve_swaps_for(
    db: AsyncSession,
    booker_leave: LeaveRequest,
    *,
    removed: bool = False,
    actor_id: Optional[int] = None,
) -> list[LeaveRequest]:
    """Release requesters of ``booker_leave`` whose dates are now free.

    ``booker_leave`` carries its new range (or ``removed=True`` when it is about
    to be deleted). A released paid requester is debited and approved like any
    approval; a regular one stays pending for admin acknowledgment.
    """

    result = await db.execute(
        select(LeaveRequest)
        .where(LeaveRequest.requested_swap_with_leave_id == booker_leave.id)
        .order_by(LeaveRequest.created_at.asc(), LeaveRequest.id.asc())
        .with_for_update()
    )
    released: list[LeaveRequest] = []
    for requester in result.scalars().all():
        if requester.status != LeaveStatus.pending:
            if removed:
                requester.requested_swap_with_leave_id = None
            continue
        if not removed and booker_leave.overlaps(requester.start_date, requester.end_date):
            continue

        clear_swap(requester)
        if requester.is_paid:
            outcome = await debit_paid(
                db, requester.employee_id, requester.start_date, requester.days_requested,
            )
            if outcome == ApprovalOutcome.approved_as_unpaid_over_quota:
                requester.is_paid = False
            requester.status = LeaveStatus.approved
            requester.approved_via_swap = True
            requester.decision_at = utcnow()
            requester.decision_by = actor_id
            logger.info(
                "Leave %s approved via swap with leave %s (%s)",
                requester.id, booker_leave.id, outcome.value,
            )
        else:
            logger.info(
                "Leave %s released from swap with leave %s; awaiting acknowledgment",
                requester.id, booker_leave.id,
            )

        await create_audit_entry(
            db,
            action="swap_resolved",
            entity_type="leave_request",
            entity_id=requester.id,
            actor_id=actor_id,
            old_values={"requested_swap_with_leave_id": booker_leave.id},
            new_values={"status": requester.status.value, "is_paid": requester.is_paid},
        )
        released.append(requester)

    await db.flush()
    return released


# ─────────────────────────────────────────────────────────────────────
# Listings
# ─────────────────────────────────────────────────────────────────────


async def _incoming_requests(
    db: AsyncSession,
    booker_id: int,
    now: datetime,
) -> list[SwapAsBookerOut]:
    mine = aliased(LeaveRequest)
    result = await db.execute(
        select(LeaveRequest, mine, Employee.name)
        .join(mine, mine.id == LeaveRequest.requested_swap_with_leave_id)
        .outerjoin(Employee, Employee.id == LeaveRequest.employee_id)
        .where(
            mine.employee_id == booker_id,
            LeaveRequest.status == LeaveStatus.pending,
        )
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
    )
    return [
        SwapAsBookerOut(
            requesting_leave_id=req.id,
            requester_id=req.employee_id,
            requester_name=name,
            start_date=req.start_date,
            end_date=req.end_date,
            emergency_type=req.emergency_type or req.reason,
            my_leave_id=my_leave.id,
            my_start_date=my_leave.start_date,
            my_end_date=my_leave.end_date,
            state=swap_state(req, now),
        )
        for req, my_leave, name in result.all()
    ]


async def swap_requests(
    db: AsyncSession,
    employee_id: int,
    now: Optional[datetime] = None,
) -> SwapRequestsOut:
    """Swap negotiations the employee takes part in, as booker and as requester."""

    now = now or utcnow()
    as_booker = await _incoming_requests(db, employee_id, now)

    booker_leave = aliased(LeaveRequest)
    result = await db.execute(
        select(LeaveRequest, booker_leave, Employee.name)
        .outerjoin(booker_leave, booker_leave.id == LeaveRequest.requested_swap_with_leave_id)
        .outerjoin(Employee, Employee.id == booker_leave.employee_id)
        .where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_((LeaveStatus.pending, LeaveStatus.approved)),
            or_(
                LeaveRequest.requested_swap_with_leave_id.is_not(None),
                LeaveRequest.approved_via_swap.is_(True),
            ),
        )
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
    )
    as_requester = [
        SwapAsRequesterOut(
            leave_id=req.id,
            start_date=req.start_date,
            end_date=req.end_date,
            booker_leave_id=target.id if target is not None else None,
            booker_name=name,
            state=swap_state(req, now),
        )
        for req, target, name in result.all()
    ]
    return SwapRequestsOut(as_booker=as_booker, as_requester=as_requester)


async def acknowledgment_queue(
    db: AsyncSession,
    now: Optional[datetime] = None,
    limit: int = 50,
) -> list[AcknowledgementOut]:
    """Pending leaves an admin has to acknowledge, newest first."""

    now = now or utcnow()
    result = await db.execute(
        select(LeaveRequest, Employee.name)
        .outerjoin(Employee, Employee.id == LeaveRequest.employee_id)
        .where(
            LeaveRequest.status == LeaveStatus.pending,
            LeaveRequest.employee_id != BLOCK_EMPLOYEE_ID,
            or_(
                LeaveRequest.is_important_date_override.is_(True),
                LeaveRequest.requested_swap_with_leave_id.is_not(None),
                LeaveRequest.policy_reason_detail.is_not(None),
                LeaveRequest.expected_return_date.is_not(None),
            ),
        )
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
    )

    entries: list[AcknowledgementOut] = []
    for leave, name in result.all():
        if not needs_acknowledgment(leave, now):
            continue
        booker_has_swapped = None
        if leave.requested_swap_with_leave_id is not None:
            target = await db.get(LeaveRequest, leave.requested_swap_with_leave_id)
            if target is not None:
                booker_has_swapped = not target.overlaps(leave.start_date, leave.end_date)
        entries.append(
            AcknowledgementOut(
                leave_id=leave.id,
                employee_id=leave.employee_id,
                employee_name=name,
                start_date=leave.start_date,
                end_date=leave.end_date,
                emergency_type=leave.emergency_type or leave.reason,
                reason=leave.reason,
                is_important_date_override=leave.is_important_date_override,
                requested_swap_with_leave_id=leave.requested_swap_with_leave_id,
                policy_reason_detail=leave.policy_reason_detail,
                expected_return_date=leave.expected_return_date,
                booker_has_swapped=booker_has_swapped,
                booker_did_not_respond=response_overdue(leave, now),
                swap_state=swap_state(leave, now),
            )
        )
        if len(entries) >= limit:
            break
    return entries


async def _rejected_swap_notices(
    db: AsyncSession,
    booker_id: int,
    limit: int = 20,
) -> list[RejectedSwapNoticeOut]:
    mine = aliased(LeaveRequest)
    result = await db.execute(
        select(LeaveRequest, mine.id)
        .join(mine, mine.id == LeaveRequest.requested_swap_with_leave_id)
        .where(
            mine.employee_id == booker_id,
            LeaveRequest.status == LeaveStatus.rejected,
        )
        .order_by(LeaveRequest.decision_at.desc(), LeaveRequest.id.desc())
        .limit(limit)
    )
    return [
        RejectedSwapNoticeOut(
            rejected_leave_id=req.id,
            my_leave_id=my_leave_id,
            start_date=req.start_date,
            end_date=req.end_date,
        )
        for req, my_leave_id in result.all()
    ]


async def _rejected_leave_notices(
    db: AsyncSession,
    employee_id: int,
    limit: int = 10,
) -> list[RejectedLeaveNoticeOut]:
    result = await db.execute(
        select(LeaveRequest)
        .where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.rejected,
            LeaveRequest.decision_at.is_not(None),
        )
        .order_by(LeaveRequest.decision_at.desc(), LeaveRequest.id.desc())
        .limit(limit)
    )
    return [
        RejectedLeaveNoticeOut(
            leave_id=leave.id,
            start_date=leave.start_date,
            end_date=leave.end_date,
            decision_at=leave.decision_at,
        )
        for leave in result.scalars().all()
    ]


async def pending_actions(
    db: AsyncSession,
    employee_id: int,
    *,
    include_acknowledgments: bool = False,
    now: Optional[datetime] = None,
) -> PendingActionsOut:
    """What the employee has to act on or hear about: swap requests, accepted
    swaps, rejection notices, and (for admins) the acknowledgment queue."""

    now = now or utcnow()
    incoming = [
        entry for entry in await _incoming_requests(db, employee_id, now)
        if entry.state in (SwapState.swap_requested, SwapState.booker_did_not_respond,
                           SwapState.swap_accepted)
    ]
    return PendingActionsOut(
        swap_requests=[e for e in incoming if e.state != SwapState.swap_accepted],
        accepted_swap_targets=[e for e in incoming if e.state == SwapState.swap_accepted],
        rejected_swap_notifications=await _rejected_swap_notices(db, employee_id),
        rejected_leave_notifications=await _rejected_leave_notices(db, employee_id),
        acknowledge_requests=(
            await acknowledgment_queue(db, now) if include_acknowledgments else []
        ),
    )
