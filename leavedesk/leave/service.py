"""Leave service layer — the request lifecycle over the ledger.

Business logic:
  - Apply with blocked / booked / quota / operator-coverage rules
  - Decision, admin acknowledgment, cancel and admin delete
  - Date moves with swap resolution
  - Uninformed absences and the deduction cascade
  - Reports, availability, calendar and blocked-date management
  - Department, all-employee and acknowledged-history listings

Every method runs inside the caller's session; ``get_db`` commits or rolls
back the whole operation. Policy refusals come back as ``LeaveRefusal``.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any, Optional, Union

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from leavedesk.auth.dependencies import CurrentUser
from leavedesk.common.audit import create_audit_entry, utcnow
from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    BLOCK_EMPLOYEE_ID,
    DEFAULT_UNINFORMED_PENALTY_TEXT,
    HOLIDAY_PREFIX,
    IMPORTANT_EVENT_PREFIX,
    UNINFORMED_DEFAULT_REASON,
    ApprovalOutcome,
    BlockType,
    LeaveKind,
    LeaveListView,
    LeaveStatus,
    LeaveTypeFilter,
    RefusalKind,
)
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.config import settings
from leavedesk.core_hr.models import Department, Employee
from leavedesk.core_hr.service import EmployeeService
from leavedesk.leave import swap
from leavedesk.leave.balance import (
    ZERO,
    add_uninformed,
    credit_paid,
    debit_paid,
    effective_quota,
    get_balance_for_date,
    get_or_create_balance,
    remaining_paid,
    to_days,
)
from leavedesk.leave.cascade import recalculate_deductions
from leavedesk.leave.conflicts import Booking, classify_dates, find_operator_conflict
from leavedesk.leave.models import LeaveBalance, LeavePolicy, LeaveRequest
from leavedesk.leave.schemas import (
    BlockedDateOut,
    BlockedDatesCreate,
    BlockedDatesResult,
    BookedByOut,
    CalendarLeaveOut,
    CalendarOut,
    DateAvailabilityOut,
    DecisionRequest,
    DepartmentLeavesOut,
    FutureDeductionOut,
    LeaveActionResult,
    LeaveApplyRequest,
    LeaveDeleteResult,
    LeaveListingOut,
    LeaveOut,
    LeaveRefusal,
    MarkUninformedRequest,
    MyLeaveOut,
    MyLeavesOut,
    PaidDeductionOut,
    PendingActionsOut,
    PolicyOut,
    ReportOut,
    SwapRequestsOut,
    SwapResponseResult,
    UninformedDetailOut,
    UnmarkBlockedDateResult,
    UpdateDatesRequest,
)

logger = logging.getLogger(__name__)


def _conflict_refusal(booking: Booking) -> LeaveRefusal:
    return LeaveRefusal(
        kind=RefusalKind.conflict,
        message="Another operator from this department is already on leave for these dates.",
        existing_leave_id=booking.leave_id,
        existing_employee_name=booking.employee_name,
        existing_start_date=booking.start_date,
        existing_end_date=booking.end_date,
    )


def _not_pending(leave: LeaveRequest) -> LeaveRefusal:
    return LeaveRefusal(
        kind=RefusalKind.not_pending,
        message=f"Leave request is already {leave.status.value}.",
        existing_leave_id=leave.id,
    )


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, decide, swap, uninformed, reports."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _snapshot(leave: LeaveRequest) -> dict[str, Any]:
        """JSON-safe audit view of a leave row."""
        return {
            "employee_id": leave.employee_id,
            "status": leave.status.value if leave.status else None,
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
            "days_requested": str(leave.days_requested),
            "is_paid": leave.is_paid,
            "is_uninformed": leave.is_uninformed,
        }

    @staticmethod
    async def _get_leave(
        db: AsyncSession,
        leave_id: int,
        *,
        lock: bool = False,
    ) -> LeaveRequest:
        """Load a real employee's leave (blocks excluded), optionally FOR UPDATE."""

        query = select(LeaveRequest).where(
            LeaveRequest.id == leave_id,
            LeaveRequest.employee_id != BLOCK_EMPLOYEE_ID,
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", leave_id)
        return leave

    @staticmethod
    async def _approve_paid(db: AsyncSession, leave: LeaveRequest) -> ApprovalOutcome:
        """Debit the quota month; over quota the leave silently becomes unpaid."""
        outcome = await debit_paid(
            db, leave.employee_id, leave.start_date, leave.days_requested,
        )
        if outcome == ApprovalOutcome.approved_as_unpaid_over_quota:
            leave.is_paid = False
        return outcome

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: int,
        data: LeaveApplyRequest,
    ) -> Union[LeaveActionResult, LeaveRefusal]:
        """Apply for leave.

        Rules, in order: blocked dates are an absolute veto; paid leave on a
        booked date needs an emergency reason; paid leave needs remaining
        quota; operators may not overlap another operator of their
        department. Paid leave on a free date is approved at once; anything
        else waits as pending (booked dates request a swap with the holder).
        """

        employee = await EmployeeService.get_employee(db, employee_id)
        department_id = employee.department_id
        start, end = data.start_date, data.end_date
        days = to_days(data.days_requested)
        wants_paid = data.leave_type == LeaveKind.paid

        availability = await classify_dates(
            db, start, end, department_id=department_id, exclude_employee_id=employee_id,
        )
        if availability.blocked:
            logger.info("Apply refused for employee %s: %s..%s blocked", employee_id, start, end)
            return LeaveRefusal(
                kind=RefusalKind.date_blocked,
                message="Leave cannot be applied on this date due to an event.",
            )

        bookings = availability.bookings
        if bookings and wants_paid and not data.emergency_type:
            logger.info("Apply refused for employee %s: %s..%s booked", employee_id, start, end)
            return LeaveRefusal(
                kind=RefusalKind.date_booked,
                message="This date is already booked. Select an emergency reason to request leave.",
                existing_leave_id=bookings[0].leave_id,
                existing_employee_name=bookings[0].employee_name,
                existing_start_date=bookings[0].start_date,
                existing_end_date=bookings[0].end_date,
            )

        if wants_paid:
            balance = await get_balance_for_date(db, employee_id, start)
            remaining = remaining_paid(balance)
            if days > remaining:
                logger.info(
                    "Apply refused for employee %s: %s paid day(s) requested, %s remaining",
                    employee_id, days, remaining,
                )
                return LeaveRefusal(
                    kind=RefusalKind.paid_not_available,
                    message=(
                        f"You only have {remaining} paid leave day(s) remaining. Please "
                        "select another leave type or reduce the requested range."
                    ),
                    remaining_paid=remaining,
                )

        conflict = await find_operator_conflict(db, employee, department_id, start, end)
        if conflict is not None:
            logger.info(
                "Apply refused for employee %s: operator conflict with leave %s",
                employee_id, conflict.leave_id,
            )
            return _conflict_refusal(conflict)

        swap_target = None
        if bookings:
            booked_ids = [b.leave_id for b in bookings]
            swap_target = (
                data.requested_swap_with_leave_id
                if data.requested_swap_with_leave_id in booked_ids
                else booked_ids[0]
            )

        leave = LeaveRequest(
            employee_id=employee_id,
            department_id=department_id,
            status=LeaveStatus.approved if wants_paid and not bookings else LeaveStatus.pending,
            reason=data.reason,
            start_date=start,
            end_date=end,
            start_segment=data.start_segment,
            end_segment=data.end_segment,
            days_requested=days,
            is_paid=wants_paid,
            is_uninformed=False,
            emergency_type=data.emergency_type,
            requested_swap_with_leave_id=swap_target,
            is_important_date_override=data.is_important_date_override,
            policy_reason_detail=data.policy_reason_detail,
            expected_return_date=data.expected_return_date,
        )
        db.add(leave)
        await db.flush()

        outcome = None
        if leave.status == LeaveStatus.approved:
            outcome = await LeaveService._approve_paid(db, leave)
            leave.decision_at = utcnow()
            await db.flush()

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=employee_id,
            new_values={
                **LeaveService._snapshot(leave),
                "requested_swap_with_leave_id": swap_target,
            },
        )
        logger.info(
            "Leave %s applied by employee %s: %s..%s %s (%s)",
            leave.id, employee_id, start, end, data.leave_type.value, leave.status.value,
        )
        return LeaveActionResult(leave=LeaveOut.model_validate(leave), outcome=outcome)

    # ─────────────────────────────────────────────────────────────────
    # Decision (manager / admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide(
        db: AsyncSession,
        leave_id: int,
        decided_by: int,
        data: DecisionRequest,
    ) -> Union[LeaveActionResult, LeaveRefusal]:
        """Approve or reject a pending request (row locked for the decision)."""

        leave = await LeaveService._get_leave(db, leave_id, lock=True)
        if leave.status != LeaveStatus.pending:
            return _not_pending(leave)

        old_values = LeaveService._snapshot(leave)
        now = utcnow()

        if data.approve:
            applicant = await EmployeeService.find_employee(db, leave.employee_id)
            if applicant is not None:
                conflict = await find_operator_conflict(
                    db, applicant, leave.department_id, leave.start_date, leave.end_date,
                    exclude_leave_id=leave.id,
                )
                if conflict is not None:
                    return _conflict_refusal(conflict)

            leave.status = LeaveStatus.approved
            if leave.requested_swap_with_leave_id is not None:
                swap.clear_swap(leave)
            if leave.is_uninformed:
                leave.is_paid = False
                await add_uninformed(db, leave.employee_id, leave.start_date, leave.days_requested)
                await db.flush()
                await recalculate_deductions(db, leave.employee_id)
                outcome = ApprovalOutcome.approved
            elif leave.is_paid:
                outcome = await LeaveService._approve_paid(db, leave)
            else:
                outcome = ApprovalOutcome.approved
        else:
            leave.status = LeaveStatus.rejected
            outcome = ApprovalOutcome.rejected

        leave.decision_by = decided_by
        leave.decision_at = now
        leave.decision_reason = data.reason
        leave.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="decide",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=decided_by,
            old_values=old_values,
            new_values={**LeaveService._snapshot(leave), "outcome": outcome.value},
        )
        logger.info("Leave %s decided by %s: %s", leave.id, decided_by, outcome.value)
        return LeaveActionResult(leave=LeaveOut.model_validate(leave), outcome=outcome)

    # ─────────────────────────────────────────────────────────────────
    # Acknowledge (admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def acknowledge(
        db: AsyncSession,
        leave_id: int,
        admin_id: int,
        approve: bool,
    ) -> Union[LeaveActionResult, LeaveRefusal]:
        """Settle a pending leave from the acknowledgment queue."""

        leave = await LeaveService._get_leave(db, leave_id, lock=True)
        if leave.status != LeaveStatus.pending:
            return _not_pending(leave)

        old_values = LeaveService._snapshot(leave)
        now = utcnow()

        if approve:
            leave.status = LeaveStatus.approved
            # An admin-settled request leaves swap negotiation for good
            if leave.requested_swap_with_leave_id is not None:
                swap.clear_swap(leave)
            outcome = ApprovalOutcome.approved
            if leave.is_paid:
                outcome = await LeaveService._approve_paid(db, leave)
        else:
            leave.status = LeaveStatus.rejected
            leave.is_paid = False
            outcome = ApprovalOutcome.rejected

        leave.acknowledged_by = admin_id
        leave.acknowledged_at = now
        leave.decision_by = admin_id
        leave.decision_at = now
        leave.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="acknowledge",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=admin_id,
            old_values=old_values,
            new_values={**LeaveService._snapshot(leave), "outcome": outcome.value},
        )
        logger.info("Leave %s acknowledged by admin %s: %s", leave.id, admin_id, outcome.value)
        return LeaveActionResult(leave=LeaveOut.model_validate(leave), outcome=outcome)

    # ─────────────────────────────────────────────────────────────────
    # Cancel (owner) / admin delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _release_ledger(
        db: AsyncSession,
        leave: LeaveRequest,
        actor_id: Optional[int],
    ) -> None:
        """Undo a leave's ledger effects and release its swap requesters, then delete it."""

        if leave.is_uninformed:
            await add_uninformed(
                db, leave.employee_id, leave.start_date, -to_days(leave.days_requested),
            )
        elif leave.status == LeaveStatus.approved and leave.is_paid:
            await credit_paid(db, leave.employee_id, leave.start_date, leave.days_requested)

        await swap.resolve_swaps_for(db, leave, removed=True, actor_id=actor_id)
        await db.delete(leave)
        await db.flush()

        if leave.is_uninformed:
            await recalculate_deductions(db, leave.employee_id)

    @staticmethod
    async def cancel(
        db: AsyncSession,
        leave_id: int,
        employee_id: int,
    ) -> LeaveDeleteResult:
        """Cancel own pending/approved leave that has not ended yet (hard delete)."""

        leave = await LeaveService._get_leave(db, leave_id, lock=True)
        if leave.employee_id != employee_id:
            raise ForbiddenException("You can only cancel your own leave.")
        if leave.is_uninformed:
            raise ValidationException(
                {"leave": ["Uninformed leaves cannot be cancelled here."]}
            )
        if leave.status not in ACTIVE_LEAVE_STATUSES:
            raise ValidationException(
                {"status": ["Only pending or approved leaves can be cancelled."]}
            )
        if leave.end_date < utcnow().date():
            raise ValidationException({"end_date": ["Past leaves cannot be cancelled."]})

        old_values = LeaveService._snapshot(leave)
        await LeaveService._release_ledger(db, leave, employee_id)

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_id,
            actor_id=employee_id,
            old_values=old_values,
        )
        logger.info("Leave %s cancelled by employee %s", leave_id, employee_id)
        return LeaveDeleteResult(id=leave_id)

    @staticmethod
    async def admin_delete(
        db: AsyncSession,
        leave_id: int,
        admin_id: int,
    ) -> LeaveDeleteResult:
        """Hard-delete any employee leave; blocked dates have their own operations."""

        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.id == leave_id).with_for_update()
        )
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", leave_id)
        if leave.is_block:
            raise ValidationException(
                {"leave": ["Use the blocked-dates operations to remove holidays or events."]}
            )

        old_values = LeaveService._snapshot(leave)
        await LeaveService._release_ledger(db, leave, admin_id)

        await create_audit_entry(
            db,
            action="admin_delete",
            entity_type="leave_request",
            entity_id=leave_id,
            actor_id=admin_id,
            old_values=old_values,
        )
        logger.info("Leave %s deleted by admin %s", leave_id, admin_id)
        return LeaveDeleteResult(id=leave_id)

    # ─────────────────────────────────────────────────────────────────
    # Update dates (owner)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_dates(
        db: AsyncSession,
        leave_id: int,
        employee_id: int,
        data: UpdateDatesRequest,
    ) -> Union[LeaveActionResult, LeaveRefusal]:
        """Move own leave to a free range, then release swap requesters it was blocking."""

        leave = await LeaveService._get_leave(db, leave_id, lock=True)
        if leave.employee_id != employee_id:
            raise ForbiddenException("You can only update your own leave.")
        if leave.is_uninformed:
            raise ValidationException({"leave": ["Uninformed leaves cannot be moved."]})
        if leave.status not in ACTIVE_LEAVE_STATUSES:
            raise ValidationException(
                {"status": ["Only approved or pending leaves can be updated."]}
            )

        start, end = data.start_date, data.end_date
        department_id = leave.department_id
        if department_id is None:
            owner = await EmployeeService.find_employee(db, employee_id)
            department_id = owner.department_id if owner is not None else None

        availability = await classify_dates(
            db, start, end,
            department_id=department_id,
            exclude_employee_id=employee_id,
            exclude_leave_id=leave.id,
        )
        if availability.blocked:
            return LeaveRefusal(
                kind=RefusalKind.date_blocked,
                message="Leave cannot be moved to this date; it falls on an event.",
                existing_leave_id=leave.id,
            )
        bookings = availability.bookings
        if bookings:
            return LeaveRefusal(
                kind=RefusalKind.date_booked,
                message="This date range is already booked by another employee.",
                existing_leave_id=bookings[0].leave_id,
                existing_employee_name=bookings[0].employee_name,
                existing_start_date=bookings[0].start_date,
                existing_end_date=bookings[0].end_date,
            )

        old_values = LeaveService._snapshot(leave)
        outcome = None
        # Approved paid days follow the leave into its new quota month
        if leave.status == LeaveStatus.approved and leave.is_paid:
            await credit_paid(db, leave.employee_id, leave.start_date, leave.days_requested)

        leave.start_date = start
        leave.end_date = end
        leave.start_segment = data.start_segment
        leave.end_segment = data.end_segment
        leave.days_requested = to_days(data.days_requested)
        leave.updated_at = utcnow()

        if leave.status == LeaveStatus.approved and leave.is_paid:
            outcome = await LeaveService._approve_paid(db, leave)
        await db.flush()

        released = await swap.resolve_swaps_for(db, leave, actor_id=employee_id)

        await create_audit_entry(
            db,
            action="update_dates",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=employee_id,
            old_values=old_values,
            new_values={
                **LeaveService._snapshot(leave),
                "released_swaps": [r.id for r in released],
            },
        )
        logger.info(
            "Leave %s moved to %s..%s; %d swap request(s) released",
            leave.id, start, end, len(released),
        )
        return LeaveActionResult(leave=LeaveOut.model_validate(leave), outcome=outcome)

    # ─────────────────────────────────────────────────────────────────
    # Swap negotiation
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def respond_swap(
        db: AsyncSession,
        requesting_leave_id: int,
        booker_id: int,
        accept: bool,
    ) -> Union[SwapResponseResult, LeaveRefusal]:
        result = await swap.respond_swap(db, requesting_leave_id, booker_id, accept)
        if isinstance(result, LeaveRefusal):
            return result
        return SwapResponseResult(leave_id=result.id, swap_accepted=result.swap_accepted)

    @staticmethod
    async def reject_swap_after_accept(
        db: AsyncSession,
        requesting_leave_id: int,
        booker_id: int,
    ) -> Union[SwapResponseResult, LeaveRefusal]:
        result = await swap.reject_swap_after_accept(db, requesting_leave_id, booker_id)
        if isinstance(result, LeaveRefusal):
            return result
        return SwapResponseResult(leave_id=result.id)

    @staticmethod
    async def get_swap_requests(db: AsyncSession, employee_id: int) -> SwapRequestsOut:
        return await swap.swap_requests(db, employee_id)

    @staticmethod
    async def get_pending_actions(
        db: AsyncSession,
        user: CurrentUser,
    ) -> PendingActionsOut:
        return await swap.pending_actions(
            db, user.employee_id, include_acknowledgments=user.is_admin,
        )

    # ─────────────────────────────────────────────────────────────────
    # Uninformed absences
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def mark_uninformed(
        db: AsyncSession,
        recorded_by: int,
        data: MarkUninformedRequest,
    ) -> LeaveActionResult:
        """Record an absence after the fact: approved, unpaid, cascades into future quota."""

        employee = await EmployeeService.get_employee(db, data.employee_id, active_only=False)
        reason = data.reason or UNINFORMED_DEFAULT_REASON
        now = utcnow()

        leave = LeaveRequest(
            employee_id=employee.id,
            department_id=employee.department_id,
            status=LeaveStatus.approved,
            reason=reason,
            start_date=data.start_date,
            end_date=data.end_date,
            start_segment=data.start_segment,
            end_segment=data.end_segment,
            days_requested=to_days(data.days_requested),
            is_paid=False,
            is_uninformed=True,
            decision_by=recorded_by,
            decision_at=now,
            decision_reason=reason,
        )
        db.add(leave)
        await db.flush()

        await add_uninformed(db, employee.id, leave.start_date, leave.days_requested)
        unallocated = await recalculate_deductions(db, employee.id)

        await create_audit_entry(
            db,
            action="mark_uninformed",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=recorded_by,
            new_values={
                **LeaveService._snapshot(leave),
                "unallocated_days": str(unallocated),
            },
        )
        logger.info(
            "Uninformed leave %s recorded for employee %s by %s (%s day(s))",
            leave.id, employee.id, recorded_by, leave.days_requested,
        )
        return LeaveActionResult(leave=LeaveOut.model_validate(leave))

    @staticmethod
    async def delete_uninformed(
        db: AsyncSession,
        leave_id: int,
        user: CurrentUser,
    ) -> Union[LeaveDeleteResult, LeaveRefusal]:
        """Remove an uninformed record and rebuild the employee's deductions."""

        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.id == leave_id).with_for_update()
        )
        leave = result.scalars().first()
        if leave is None or not leave.is_uninformed:
            return LeaveRefusal(
                kind=RefusalKind.not_found_or_not_uninformed,
                message="Uninformed leave not found.",
            )
        if not user.is_manager_or_admin and leave.employee_id != user.employee_id:
            raise ForbiddenException(
                "Only managers, admins, or the leave owner can delete this record."
            )

        old_values = LeaveService._snapshot(leave)
        await LeaveService._release_ledger(db, leave, user.employee_id)

        await create_audit_entry(
            db,
            action="delete_uninformed",
            entity_type="leave_request",
            entity_id=leave_id,
            actor_id=user.employee_id,
            old_values=old_values,
        )
        logger.info("Uninformed leave %s deleted by %s", leave_id, user.employee_id)
        return LeaveDeleteResult(id=leave_id)

    # ─────────────────────────────────────────────────────────────────
    # Availability / report
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_date_availability(
        db: AsyncSession,
        start: date,
        end: date,
        *,
        employee_id: Optional[int] = None,
        exclude_leave_id: Optional[int] = None,
    ) -> DateAvailabilityOut:
        """Blocked / booked state of a range as seen by ``employee_id``.

        A blocked range reports no bookings; otherwise ``booked_by`` lists each
        distinct booking employee once.
        """

        department_id = None
        if employee_id is not None:
            employee = await EmployeeService.find_employee(db, employee_id)
            department_id = employee.department_id if employee is not None else None

        availability = await classify_dates(
            db, start, end,
            department_id=department_id,
            exclude_employee_id=employee_id,
            exclude_leave_id=exclude_leave_id,
        )
        return DateAvailabilityOut(
            start_date=start,
            end_date=end,
            status=availability.status,
            blocked=availability.blocked,
            available=availability.available,
            booked_by=[
                BookedByOut(
                    leave_id=b.leave_id,
                    employee_id=b.employee_id,
                    employee_name=b.employee_name,
                )
                for b in availability.booked_by
            ],
        )

    @staticmethod
    async def get_report(
        db: AsyncSession,
        employee_id: int,
        year: int,
        month: int,
    ) -> ReportOut:
        """Quota, usage, uninformed days and future deductions for one month."""

        await EmployeeService.get_employee(db, employee_id, active_only=False)
        balance = await get_or_create_balance(db, employee_id, year, month)

        month_start = date(year, month, 1)
        month_end = date(year, month, calendar.monthrange(year, month)[1])

        recorder = aliased(Employee)
        uninformed_rows = (
            await db.execute(
                select(LeaveRequest, recorder.name)
                .outerjoin(recorder, recorder.id == LeaveRequest.decision_by)
                .where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.is_uninformed.is_(True),
                    LeaveRequest.start_date >= month_start,
                    LeaveRequest.start_date <= month_end,
                )
                .order_by(LeaveRequest.start_date.desc())
            )
        ).all()

        future_rows = (
            await db.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    or_(
                        LeaveBalance.year > year,
                        and_(LeaveBalance.year == year, LeaveBalance.month > month),
                    ),
                    LeaveBalance.next_month_deduction > 0,
                )
                .order_by(LeaveBalance.year, LeaveBalance.month)
            )
        ).scalars().all()
        future = [
            FutureDeductionOut(
                year=row.year, month=row.month,
                next_month_deduction=to_days(row.next_month_deduction),
            )
            for row in future_rows
        ]

        taken = (
            await db.execute(
                select(func.count(LeaveRequest.id)).where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == LeaveStatus.approved,
                    LeaveRequest.is_uninformed.is_(False),
                    LeaveRequest.start_date >= month_start,
                    LeaveRequest.start_date <= month_end,
                )
            )
        ).scalar_one()

        paid_rows = (
            await db.execute(
                select(LeaveRequest)
                .where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == LeaveStatus.approved,
                    LeaveRequest.is_paid.is_(True),
                    LeaveRequest.is_uninformed.is_(False),
                    LeaveRequest.start_date <= month_end,
                    LeaveRequest.end_date >= month_start,
                )
                .order_by(LeaveRequest.start_date.asc())
            )
        ).scalars().all()

        return ReportOut(
            employee_id=employee_id,
            year=year,
            month=month,
            paid_quota=balance.paid_quota,
            paid_used=to_days(balance.paid_used),
            effective_quota=effective_quota(balance),
            remaining_paid=remaining_paid(balance),
            next_month_deduction=to_days(balance.next_month_deduction),
            uninformed_count=to_days(balance.uninformed_leaves),
            uninformed_details=[
                UninformedDetailOut(
                    id=leave.id,
                    start_date=leave.start_date,
                    end_date=leave.end_date,
                    days_requested=to_days(leave.days_requested),
                    reason=leave.reason,
                    decision_at=leave.decision_at,
                    recorded_by_name=name,
                )
                for leave, name in uninformed_rows
            ],
            future_deductions=future,
            total_future_deduction=sum((f.next_month_deduction for f in future), ZERO),
            leaves_taken_this_month=taken,
            paid_leave_deductions=[
                PaidDeductionOut(
                    id=leave.id,
                    start_date=leave.start_date,
                    end_date=leave.end_date,
                    days_requested=to_days(leave.days_requested),
                    reason=leave.reason,
                    emergency_type=leave.emergency_type,
                )
                for leave in paid_rows
            ],
        )

    # ─────────────────────────────────────────────────────────────────
    # Blocked dates (admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def mark_blocked_dates(
        db: AsyncSession,
        admin_id: int,
        data: BlockedDatesCreate,
    ) -> BlockedDatesResult:
        """Insert one block row per (department, date); existing blocks are skipped."""

        prefix = HOLIDAY_PREFIX if data.type == BlockType.holiday else IMPORTANT_EVENT_PREFIX
        reason = f"{prefix}:{data.label}" if data.label else prefix
        department_ids: list[Optional[int]] = (
            list(data.department_ids) if data.type == BlockType.important and data.department_ids
            else [None]
        )
        dates = list(dict.fromkeys(data.dates))

        inserted = 0
        for department_id in department_ids:
            for day in dates:
                query = select(LeaveRequest.id).where(
                    LeaveRequest.employee_id == BLOCK_EMPLOYEE_ID,
                    LeaveRequest.reason.like(f"{prefix}%"),
                    LeaveRequest.start_date == day,
                    LeaveRequest.end_date == day,
                )
                if department_id is None:
                    query = query.where(LeaveRequest.department_id.is_(None))
                else:
                    query = query.where(LeaveRequest.department_id == department_id)
                if (await db.execute(query.limit(1))).first() is not None:
                    continue

                block = LeaveRequest(
                    employee_id=BLOCK_EMPLOYEE_ID,
                    department_id=department_id,
                    status=LeaveStatus.approved,
                    reason=reason,
                    start_date=day,
                    end_date=day,
                    days_requested=ZERO,
                    is_paid=False,
                    is_uninformed=False,
                )
                db.add(block)
                await db.flush()
                await create_audit_entry(
                    db,
                    action="mark_blocked_date",
                    entity_type="blocked_date",
                    entity_id=block.id,
                    actor_id=admin_id,
                    new_values={
                        "date": day.isoformat(),
                        "reason": reason,
                        "department_id": department_id,
                    },
                )
                inserted += 1

        logger.info(
            "Admin %s marked %d %s block(s) over %d date(s)",
            admin_id, inserted, data.type.value, len(dates),
        )
        return BlockedDatesResult(
            dates=dates, type=data.type, inserted=inserted, label=data.label,
        )

    @staticmethod
    async def unmark_blocked_date(
        db: AsyncSession,
        admin_id: int,
        day: date,
        *,
        block_type: Optional[BlockType] = None,
        label: Optional[str] = None,
        department_id: Optional[int] = None,
    ) -> UnmarkBlockedDateResult:
        """Remove the blocks on ``day`` matching the optional type/label/department."""

        if block_type == BlockType.holiday:
            reason_filter = LeaveRequest.reason.like(f"{HOLIDAY_PREFIX}%")
        elif block_type == BlockType.important:
            reason_filter = LeaveRequest.reason.like(f"{IMPORTANT_EVENT_PREFIX}%")
        else:
            reason_filter = or_(
                LeaveRequest.reason.like(f"{HOLIDAY_PREFIX}%"),
                LeaveRequest.reason.like(f"{IMPORTANT_EVENT_PREFIX}%"),
            )

        query = select(LeaveRequest).where(
            LeaveRequest.employee_id == BLOCK_EMPLOYEE_ID,
            LeaveRequest.start_date == day,
            LeaveRequest.end_date == day,
            reason_filter,
        )
        if block_type == BlockType.important and department_id is not None:
            query = query.where(LeaveRequest.department_id == department_id)

        blocks = (await db.execute(query)).scalars().all()
        if label:
            blocks = [b for b in blocks if b.block_label == label or b.reason == label]

        for block in blocks:
            await create_audit_entry(
                db,
                action="unmark_blocked_date",
                entity_type="blocked_date",
                entity_id=block.id,
                actor_id=admin_id,
                old_values={
                    "date": day.isoformat(),
                    "reason": block.reason,
                    "department_id": block.department_id,
                },
            )
            await db.delete(block)
        await db.flush()

        logger.info("Admin %s removed %d block(s) on %s", admin_id, len(blocks), day)
        return UnmarkBlockedDateResult(date=day, deleted=len(blocks))

    # ─────────────────────────────────────────────────────────────────
    # Calendar / my leaves / policy
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_calendar(
        db: AsyncSession,
        start: date,
        end: date,
    ) -> CalendarOut:
        """Approved leaves and blocked dates overlapping ``[start, end]``."""

        leave_rows = (
            await db.execute(
                select(LeaveRequest, Employee.name)
                .join(Employee, Employee.id == LeaveRequest.employee_id)
                .where(
                    LeaveRequest.employee_id != BLOCK_EMPLOYEE_ID,
                    LeaveRequest.status == LeaveStatus.approved,
                    LeaveRequest.start_date <= end,
                    LeaveRequest.end_date >= start,
                )
                .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
            )
        ).all()

        block_rows = (
            await db.execute(
                select(LeaveRequest, Department.name)
                .outerjoin(Department, Department.id == LeaveRequest.department_id)
                .where(
                    LeaveRequest.employee_id == BLOCK_EMPLOYEE_ID,
                    or_(
                        LeaveRequest.reason.like(f"{HOLIDAY_PREFIX}%"),
                        LeaveRequest.reason.like(f"{IMPORTANT_EVENT_PREFIX}%"),
                    ),
                    LeaveRequest.start_date <= end,
                    LeaveRequest.end_date >= start,
                )
                .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
            )
        ).all()

        blocked = [
            BlockedDateOut(
                id=block.id,
                date=block.start_date,
                type=(
                    BlockType.important
                    if (block.reason or "").startswith(IMPORTANT_EVENT_PREFIX)
                    else BlockType.holiday
                ),
                label=block.block_label,
                department_id=block.department_id,
                department_name=department_name,
            )
            for block, department_name in block_rows
        ]

        return CalendarOut(
            leaves=[
                CalendarLeaveOut(
                    id=leave.id,
                    employee_id=leave.employee_id,
                    employee_name=name,
                    start_date=leave.start_date,
                    end_date=leave.end_date,
                    start_segment=leave.start_segment,
                    end_segment=leave.end_segment,
                    is_uninformed=leave.is_uninformed,
                    emergency_type=leave.emergency_type,
                )
                for leave, name in leave_rows
            ],
            blocked_dates=blocked,
            holidays=[b for b in blocked if b.type == BlockType.holiday],
            important_dates=[b for b in blocked if b.type == BlockType.important],
        )

    @staticmethod
    async def get_my_leaves(
        db: AsyncSession,
        employee_id: int,
        limit: int = 200,
    ) -> MyLeavesOut:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .limit(limit)
        )
        now = utcnow()
        mine = MyLeavesOut()
        for leave in result.scalars().all():
            out = LeaveOut.model_validate(leave)
            if leave.acknowledged_by is not None:
                mine.acknowledged.append(out)
            if leave.status == LeaveStatus.pending:
                mine.pending.append(
                    MyLeaveOut(
                        **out.model_dump(),
                        needs_acknowledgment=swap.needs_acknowledgment(leave, now),
                    )
                )
            elif leave.status == LeaveStatus.approved:
                if not leave.is_uninformed:
                    mine.approved.append(out)
            else:
                mine.rejected.append(out)
        return mine

    # ─────────────────────────────────────────────────────────────────
    # Listings (manager / admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _listing_query():
        decider = aliased(Employee)
        acker = aliased(Employee)
        return (
            select(
                LeaveRequest,
                Employee.name.label("employee_name"),
                Department.name.label("department_name"),
                decider.name.label("decision_by_name"),
                acker.name.label("acknowledged_by_name"),
            )
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .outerjoin(Department, Department.id == LeaveRequest.department_id)
            .outerjoin(decider, decider.id == LeaveRequest.decision_by)
            .outerjoin(acker, acker.id == LeaveRequest.acknowledged_by)
            .where(LeaveRequest.employee_id != BLOCK_EMPLOYEE_ID)
        )

    @staticmethod
    def _listing_row(row) -> LeaveListingOut:
        leave, employee_name, department_name, decision_by_name, acknowledged_by_name = row
        return LeaveListingOut(
            **LeaveOut.model_validate(leave).model_dump(),
            employee_name=employee_name,
            department_name=department_name,
            decision_by_name=decision_by_name,
            acknowledged_by_name=acknowledged_by_name,
        )

    @staticmethod
    async def get_department_leaves(
        db: AsyncSession,
        user: CurrentUser,
        department_id: Optional[int] = None,
        limit: int = 300,
    ) -> DepartmentLeavesOut:
        """Recent leaves of a department, grouped by status.

        Managers see their own department unless they name another one;
        admins see every department when no filter is given.
        """

        if department_id is None and not user.is_admin:
            manager = await EmployeeService.find_employee(db, user.employee_id)
            department_id = manager.department_id if manager is not None else None
            if department_id is None:
                raise ValidationException(
                    {"department_id": ["department_id is required for manager views."]}
                )

        query = LeaveService._listing_query()
        if department_id is not None:
            query = query.where(LeaveRequest.department_id == department_id)
        rows = (
            await db.execute(
                query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
                .limit(limit)
            )
        ).all()

        grouped = DepartmentLeavesOut()
        for row in rows:
            leave = row[0]
            if leave.status == LeaveStatus.pending:
                grouped.pending.append(LeaveService._listing_row(row))
            elif leave.status == LeaveStatus.approved:
                if not leave.is_uninformed:
                    grouped.approved.append(LeaveService._listing_row(row))
            else:
                grouped.rejected.append(LeaveService._listing_row(row))
        return grouped

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        view: LeaveListView,
        *,
        department_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        leave_type: Optional[LeaveTypeFilter] = None,
        limit: int = 500,
    ) -> list[LeaveListingOut]:
        """Every employee's leaves: upcoming approved, past, or acknowledged."""

        query = LeaveService._listing_query()
        if department_id is not None:
            query = query.where(LeaveRequest.department_id == department_id)
        if start is not None:
            query = query.where(LeaveRequest.end_date >= start)
        if end is not None:
            query = query.where(LeaveRequest.start_date <= end)

        if leave_type == LeaveTypeFilter.paid:
            query = query.where(
                LeaveRequest.is_paid.is_(True), LeaveRequest.is_uninformed.is_(False),
            )
        elif leave_type == LeaveTypeFilter.regular:
            query = query.where(LeaveRequest.is_uninformed.is_(False))
        elif leave_type == LeaveTypeFilter.uninformed:
            query = query.where(LeaveRequest.is_uninformed.is_(True))

        today = utcnow().date()
        if view == LeaveListView.future:
            # Pending requests surface through the acknowledgment queue instead
            query = query.where(
                LeaveRequest.end_date >= today,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.is_uninformed.is_(False),
            )
        elif view == LeaveListView.past:
            query = query.where(
                or_(LeaveRequest.end_date < today, LeaveRequest.status == LeaveStatus.rejected)
            )
        else:
            query = query.where(LeaveRequest.acknowledged_by.is_not(None))

        rows = (
            await db.execute(
                query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc())
                .limit(limit)
            )
        ).all()
        return [LeaveService._listing_row(row) for row in rows]

    @staticmethod
    async def get_acknowledged_history(
        db: AsyncSession,
        *,
        department_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        employee_name: Optional[str] = None,
        limit: int = 200,
    ) -> list[LeaveListingOut]:
        """Leaves an admin has acknowledged, most recent acknowledgment first."""

        query = LeaveService._listing_query().where(LeaveRequest.acknowledged_by.is_not(None))
        if department_id is not None:
            query = query.where(LeaveRequest.department_id == department_id)
        if start is not None:
            query = query.where(LeaveRequest.end_date >= start)
        if end is not None:
            query = query.where(LeaveRequest.start_date <= end)
        term = (employee_name or "").strip()
        if term:
            escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            query = query.where(Employee.name.ilike(f"%{escaped}%", escape="\\"))

        rows = (
            await db.execute(
                query.order_by(LeaveRequest.acknowledged_at.desc(), LeaveRequest.id.desc())
                .limit(limit)
            )
        ).all()
        return [LeaveService._listing_row(row) for row in rows]

    @staticmethod
    async def get_policy(db: AsyncSession) -> PolicyOut:
        """Displayed leave policy; stored rows override the defaults."""

        policy = PolicyOut(
            monthly_paid_quota=settings.LEAVE_MONTHLY_PAID_QUOTA,
            uninformed_penalty_text=DEFAULT_UNINFORMED_PENALTY_TEXT,
            cashout_allowed=False,
        )
        rows = (await db.execute(select(LeavePolicy))).scalars().all()
        for row in rows:
            value = row.policy_value if isinstance(row.policy_value, dict) else {}
            if row.policy_key == "monthly_paid_quota" and isinstance(value.get("quota"), int):
                policy.monthly_paid_quota = value["quota"]
            elif row.policy_key == "uninformed_penalty_rule" and isinstance(value.get("text"), str):
                policy.uninformed_penalty_text = value["text"]
            elif row.policy_key == "cashout_allowed" and isinstance(value.get("allowed"), bool):
                policy.cashout_allowed = value["allowed"]
        return policy
