"""Leave lifecycle test suite — apply decision table, decisions, acknowledgment,
cancel/delete, blocked dates, reports, and day counting.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import CurrentUser
from leavedesk.common.constants import (
    ApprovalOutcome,
    BlockType,
    DateStatus,
    EndSegment,
    LeaveKind,
    LeaveListView,
    LeaveStatus,
    LeaveTypeFilter,
    RefusalKind,
    StartSegment,
    UserRole,
)
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.leave.balance import get_or_create_balance
from leavedesk.leave.models import LeavePolicy, LeaveRequest
from leavedesk.leave.schemas import (
    BlockedDatesCreate,
    DecisionRequest,
    LeaveApplyRequest,
    MarkUninformedRequest,
    count_leave_days,
)
from leavedesk.leave.service import LeaveService
from tests.conftest import (
    seed_balance,
    seed_block,
    seed_department,
    seed_employee,
    seed_leave,
)

FUTURE = date.today() + timedelta(days=40)


def _apply(start: date, end: date | None = None, **kwargs) -> LeaveApplyRequest:
    return LeaveApplyRequest(start_date=start, end_date=end or start, **kwargs)


# ═════════════════════════════════════════════════════════════════════
# 1. Day counting
# ═════════════════════════════════════════════════════════════════════


class TestCountLeaveDays:

    def test_single_full_day(self):
        assert count_leave_days(date(2024, 3, 1), date(2024, 3, 1)) == Decimal("1")

    def test_single_half_days(self):
        day = date(2024, 3, 1)
        assert count_leave_days(
            day, day, StartSegment.shift_start, EndSegment.shift_middle,
        ) == Decimal("0.5")
        assert count_leave_days(
            day, day, StartSegment.shift_middle, EndSegment.shift_end,
        ) == Decimal("0.5")
        assert count_leave_days(
            day, day, StartSegment.shift_start, EndSegment.shift_end,
        ) == Decimal("1")

    def test_multi_day_with_half_boundaries(self):
        assert count_leave_days(
            date(2024, 3, 1), date(2024, 3, 4),
            StartSegment.shift_middle, EndSegment.shift_middle,
        ) == Decimal("3")

    def test_supplied_days_are_trusted(self):
        body = _apply(date(2024, 3, 1), date(2024, 3, 5), days_requested=Decimal("2"))
        assert body.days_requested == Decimal("2")

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            _apply(date(2024, 3, 5), date(2024, 3, 1))


# ═════════════════════════════════════════════════════════════════════
# 2. Apply: decision table
# ═════════════════════════════════════════════════════════════════════


class TestApplyLeave:
    """Tests for LeaveService.apply_leave()."""

    async def test_paid_on_free_date_auto_approves(self, db: AsyncSession):
        """Quota 2, nothing used, 1 paid day → approved and debited."""
        emp = await seed_employee(db)

        result = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 5, 6)))

        assert result.success is True
        assert result.leave.status == LeaveStatus.approved
        assert result.leave.is_paid is True
        assert result.outcome == ApprovalOutcome.approved
        bal = await get_or_create_balance(db, emp.id, 2024, 5)
        assert bal.paid_used == Decimal("1")

    async def test_paid_over_remaining_refused(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, 2024, 5, paid_used=Decimal("2"))

        result = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 5, 6)))

        assert result.success is False
        assert result.kind == RefusalKind.paid_not_available
        assert result.remaining_paid == Decimal("0")

    async def test_deduction_reduces_remaining(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, 2024, 5, next_month_deduction=Decimal("1.5"))

        result = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 5, 6)))

        assert result.kind == RefusalKind.paid_not_available
        assert result.remaining_paid == Decimal("0.5")

    async def test_regular_leave_waits_for_decision(self, db: AsyncSession):
        emp = await seed_employee(db)

        result = await LeaveService.apply_leave(
            db, emp.id, _apply(date(2024, 5, 6), leave_type=LeaveKind.regular),
        )

        assert result.leave.status == LeaveStatus.pending
        assert result.leave.is_paid is False

    async def test_blocked_date_vetoes_even_emergencies(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_block(db, date(2024, 12, 25), "HOLIDAY:Christmas")

        result = await LeaveService.apply_leave(
            db, emp.id,
            _apply(date(2024, 12, 24), date(2024, 12, 26), emergency_type="Medical"),
        )

        assert result.kind == RefusalKind.date_blocked
        rows = (await db.execute(
            select(LeaveRequest).where(LeaveRequest.employee_id == emp.id)
        )).scalars().all()
        assert rows == []

    async def test_booked_paid_without_emergency_refused(self, db: AsyncSession):
        holder = await seed_employee(db, name="Holder")
        emp = await seed_employee(db)
        held = await seed_leave(db, holder.id, date(2024, 5, 6))

        result = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 5, 6)))

        assert result.kind == RefusalKind.date_booked
        assert result.existing_leave_id == held.id

    async def test_booked_regular_requests_swap(self, db: AsyncSession):
        holder = await seed_employee(db, name="Holder")
        emp = await seed_employee(db)
        held = await seed_leave(db, holder.id, date(2024, 5, 6))

        result = await LeaveService.apply_leave(
            db, emp.id, _apply(date(2024, 5, 6), leave_type=LeaveKind.regular),
        )

        assert result.leave.status == LeaveStatus.pending
        assert result.leave.requested_swap_with_leave_id == held.id

    async def test_supplied_swap_target_must_be_a_booking(self, db: AsyncSession):
        first = await seed_employee(db, name="First")
        second = await seed_employee(db, name="Second")
        emp = await seed_employee(db)
        a = await seed_leave(db, first.id, date(2024, 5, 6))
        b = await seed_leave(db, second.id, date(2024, 5, 6))
        unrelated = await seed_leave(db, second.id, date(2024, 8, 1))

        chosen = await LeaveService.apply_leave(
            db, emp.id,
            _apply(date(2024, 5, 6), emergency_type="Family", requested_swap_with_leave_id=b.id),
        )
        bogus = await LeaveService.apply_leave(
            db, emp.id,
            _apply(
                date(2024, 5, 6), leave_type=LeaveKind.regular,
                requested_swap_with_leave_id=unrelated.id,
            ),
        )

        assert chosen.leave.requested_swap_with_leave_id == b.id
        assert bogus.leave.requested_swap_with_leave_id == a.id

    async def test_operator_conflict_in_same_department(self, db: AsyncSession):
        dept = await seed_department(db)
        op1 = await seed_employee(db, name="Op One", department_id=dept.id, designation="Operator")
        op2 = await seed_employee(db, name="Op Two", department_id=dept.id, designation="Operator")
        await seed_leave(db, op1.id, date(2024, 5, 6), date(2024, 5, 8), department_id=dept.id)

        result = await LeaveService.apply_leave(
            db, op2.id, _apply(date(2024, 5, 8), leave_type=LeaveKind.regular),
        )

        assert result.kind == RefusalKind.conflict
        assert result.existing_employee_name == "Op One"
        assert result.existing_start_date == date(2024, 5, 6)

    async def test_non_operators_may_overlap(self, db: AsyncSession):
        dept = await seed_department(db)
        op1 = await seed_employee(db, name="Op One", department_id=dept.id, designation="Operator")
        clerk = await seed_employee(db, name="Clerk", department_id=dept.id, designation="Clerk")
        await seed_leave(db, op1.id, date(2024, 5, 6), department_id=dept.id)

        result = await LeaveService.apply_leave(
            db, clerk.id, _apply(date(2024, 5, 6), leave_type=LeaveKind.regular),
        )

        assert result.success is True

    async def test_unknown_employee_raises(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.apply_leave(db, 424242, _apply(date(2024, 5, 6)))


# ═════════════════════════════════════════════════════════════════════
# 3. Decisions and acknowledgment
# ═════════════════════════════════════════════════════════════════════


class TestDecide:

    async def test_approve_paid_debits(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date(2024, 5, 6), status=LeaveStatus.pending)

        result = await LeaveService.decide(
            db, leave.id, manager.id, DecisionRequest(approve=True, reason="ok"),
        )

        assert result.outcome == ApprovalOutcome.approved
        assert result.leave.decision_by == manager.id
        assert result.leave.decision_reason == "ok"
        bal = await get_or_create_balance(db, emp.id, 2024, 5)
        assert bal.paid_used == Decimal("1")

    async def test_approve_over_quota_becomes_unpaid(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        await seed_balance(db, emp.id, 2024, 5, paid_used=Decimal("2"))
        leave = await seed_leave(db, emp.id, date(2024, 5, 6), status=LeaveStatus.pending)

        result = await LeaveService.decide(
            db, leave.id, manager.id, DecisionRequest(approve=True),
        )

        assert result.outcome == ApprovalOutcome.approved_as_unpaid_over_quota
        assert result.leave.status == LeaveStatus.approved
        assert result.leave.is_paid is False
        bal = await get_or_create_balance(db, emp.id, 2024, 5)
        assert bal.paid_used == Decimal("2")

    async def test_reject(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date(2024, 5, 6), status=LeaveStatus.pending)

        result = await LeaveService.decide(
            db, leave.id, manager.id, DecisionRequest(approve=False, reason="cover"),
        )

        assert result.outcome == ApprovalOutcome.rejected
        assert result.leave.status == LeaveStatus.rejected

    async def test_only_pending_can_be_decided(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date(2024, 5, 6))

        result = await LeaveService.decide(
            db, leave.id, manager.id, DecisionRequest(approve=False),
        )

        assert result.kind == RefusalKind.not_pending

    async def test_approving_uninformed_cascades(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        leave = await seed_leave(
            db, emp.id, date(2024, 1, 10), date(2024, 1, 12),
            status=LeaveStatus.pending, is_uninformed=True,
        )

        await LeaveService.decide(db, leave.id, manager.id, DecisionRequest(approve=True))

        assert leave.is_paid is False
        feb = await get_or_create_balance(db, emp.id, 2024, 2)
        assert feb.next_month_deduction == Decimal("2")

    async def test_operator_conflict_rechecked(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        dept = await seed_department(db)
        op1 = await seed_employee(db, name="Op One", department_id=dept.id, designation="Operator")
        op2 = await seed_employee(db, name="Op Two", department_id=dept.id, designation="Operator")
        await seed_leave(db, op1.id, date(2024, 5, 6), department_id=dept.id)
        pending = await seed_leave(
            db, op2.id, date(2024, 5, 6),
            status=LeaveStatus.pending, department_id=dept.id,
        )

        result = await LeaveService.decide(
            db, pending.id, manager.id, DecisionRequest(approve=True),
        )

        assert result.kind == RefusalKind.conflict

    async def test_missing_leave(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.decide(db, 9999, 1, DecisionRequest(approve=True))


class TestAcknowledge:

    async def test_approve_paid_override(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        emp = await seed_employee(db)
        leave = await seed_leave(
            db, emp.id, date(2024, 6, 3),
            status=LeaveStatus.pending, is_important_date_override=True,
        )

        result = await LeaveService.acknowledge(db, leave.id, admin.id, True)

        assert result.leave.status == LeaveStatus.approved
        assert result.leave.acknowledged_by == admin.id
        assert result.leave.decision_by == admin.id
        bal = await get_or_create_balance(db, emp.id, 2024, 6)
        assert bal.paid_used == Decimal("1")

    async def test_reject_clears_paid_flag(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date(2024, 6, 3), status=LeaveStatus.pending)

        result = await LeaveService.acknowledge(db, leave.id, admin.id, False)

        assert result.leave.status == LeaveStatus.rejected
        assert result.leave.is_paid is False

    async def test_already_settled(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date(2024, 6, 3), status=LeaveStatus.rejected)

        result = await LeaveService.acknowledge(db, leave.id, admin.id, True)

        assert result.kind == RefusalKind.not_pending


# ═════════════════════════════════════════════════════════════════════
# 4. Cancel / admin delete
# ═════════════════════════════════════════════════════════════════════


class TestCancel:

    async def test_cancel_approved_paid_credits_ledger(self, db: AsyncSession):
        emp = await seed_employee(db)
        applied = await LeaveService.apply_leave(db, emp.id, _apply(FUTURE))

        result = await LeaveService.cancel(db, applied.leave.id, emp.id)

        assert result.success is True
        assert await db.get(LeaveRequest, applied.leave.id) is None
        bal = await get_or_create_balance(db, emp.id, FUTURE.year, FUTURE.month)
        assert bal.paid_used == Decimal("0")

    async def test_cancel_releases_swap_requester(self, db: AsyncSession):
        holder = await seed_employee(db, name="Holder")
        emp = await seed_employee(db)
        held = await LeaveService.apply_leave(db, holder.id, _apply(FUTURE))
        requested = await LeaveService.apply_leave(
            db, emp.id, _apply(FUTURE, emergency_type="Medical"),
        )

        await LeaveService.cancel(db, held.leave.id, holder.id)

        requester = await db.get(LeaveRequest, requested.leave.id)
        assert requester.status == LeaveStatus.approved
        assert requester.approved_via_swap is True

    async def test_cancel_others_leave_forbidden(self, db: AsyncSession):
        owner = await seed_employee(db, name="Owner")
        other = await seed_employee(db, name="Other")
        leave = await seed_leave(db, owner.id, FUTURE)

        with pytest.raises(ForbiddenException):
            await LeaveService.cancel(db, leave.id, other.id)

    async def test_cancel_past_leave_fails(self, db: AsyncSession):
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, date.today() - timedelta(days=3))

        with pytest.raises(ValidationException):
            await LeaveService.cancel(db, leave.id, emp.id)

    async def test_cancel_rejected_fails(self, db: AsyncSession):
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, FUTURE, status=LeaveStatus.rejected)

        with pytest.raises(ValidationException):
            await LeaveService.cancel(db, leave.id, emp.id)

    async def test_cancel_uninformed_fails(self, db: AsyncSession):
        emp = await seed_employee(db)
        leave = await seed_leave(db, emp.id, FUTURE, is_paid=False, is_uninformed=True)

        with pytest.raises(ValidationException):
            await LeaveService.cancel(db, leave.id, emp.id)


class TestAdminDelete:

    async def test_admin_delete_credits_paid(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        emp = await seed_employee(db)
        applied = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 5, 6)))

        await LeaveService.admin_delete(db, applied.leave.id, admin.id)

        bal = await get_or_create_balance(db, emp.id, 2024, 5)
        assert bal.paid_used == Decimal("0")

    async def test_blocks_use_blocked_date_operations(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        block = await seed_block(db, date(2024, 12, 25))

        with pytest.raises(ValidationException):
            await LeaveService.admin_delete(db, block.id, admin.id)


# ═════════════════════════════════════════════════════════════════════
# 5. Blocked dates
# ═════════════════════════════════════════════════════════════════════


class TestBlockedDates:

    async def test_unmarking_holiday_reopens_date(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        emp = await seed_employee(db)
        await seed_block(db, date(2024, 12, 25))

        removed = await LeaveService.unmark_blocked_date(db, admin.id, date(2024, 12, 25))
        result = await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 12, 25)))

        assert removed.deleted == 1
        assert result.success is True
        assert result.leave.status == LeaveStatus.approved

    async def test_mark_skips_duplicates(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        body = BlockedDatesCreate(
            dates=[date(2024, 12, 25), date(2024, 12, 26), date(2024, 12, 25)],
            type=BlockType.holiday,
            label="Christmas",
        )

        first = await LeaveService.mark_blocked_dates(db, admin.id, body)
        second = await LeaveService.mark_blocked_dates(db, admin.id, body)

        assert first.inserted == 2
        assert second.inserted == 0

    async def test_important_dates_per_department(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        sales = await seed_department(db, name="Sales")
        ops = await seed_department(db, name="Operations")
        seller = await seed_employee(db, name="Seller", department_id=sales.id)
        operator = await seed_employee(db, name="Operator", department_id=ops.id)

        await LeaveService.mark_blocked_dates(
            db, admin.id,
            BlockedDatesCreate(dates=[date(2024, 6, 3)], label="Launch", department_ids=[sales.id]),
        )

        blocked = await LeaveService.apply_leave(db, seller.id, _apply(date(2024, 6, 3)))
        allowed = await LeaveService.apply_leave(db, operator.id, _apply(date(2024, 6, 3)))
        assert blocked.kind == RefusalKind.date_blocked
        assert allowed.success is True

    async def test_unmark_filters_by_label(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        await seed_block(db, date(2024, 6, 3), "IMPORTANT_EVENT:Launch")
        await seed_block(db, date(2024, 6, 3), "IMPORTANT_EVENT:Audit")

        removed = await LeaveService.unmark_blocked_date(
            db, admin.id, date(2024, 6, 3), block_type=BlockType.important, label="Audit",
        )

        assert removed.deleted == 1
        calendar = await LeaveService.get_calendar(db, date(2024, 6, 1), date(2024, 6, 30))
        assert [b.label for b in calendar.important_dates] == ["Launch"]

    def test_holidays_cannot_target_departments(self):
        with pytest.raises(ValidationError):
            BlockedDatesCreate(dates=[date(2024, 1, 1)], type=BlockType.holiday, department_ids=[1])


# ═════════════════════════════════════════════════════════════════════
# 6. Reports, listings, policy
# ═════════════════════════════════════════════════════════════════════


class TestReport:

    async def test_month_report(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        await LeaveService.mark_uninformed(
            db, manager.id,
            MarkUninformedRequest(
                employee_id=emp.id, start_date=date(2024, 1, 10), end_date=date(2024, 1, 12),
            ),
        )
        await LeaveService.apply_leave(db, emp.id, _apply(date(2024, 1, 22)))

        report = await LeaveService.get_report(db, emp.id, 2024, 1)

        assert report.paid_used == Decimal("1")
        assert report.remaining_paid == Decimal("1")
        assert report.uninformed_count == Decimal("3")
        assert report.uninformed_details[0].recorded_by_name == "Manager"
        assert report.uninformed_details[0].reason == "Uninformed leave"
        assert [(f.year, f.month) for f in report.future_deductions] == [(2024, 2), (2024, 3)]
        assert report.total_future_deduction == Decimal("3")
        assert report.leaves_taken_this_month == 1
        assert len(report.paid_leave_deductions) == 1

    async def test_next_month_shows_deduction(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")
        emp = await seed_employee(db)
        await LeaveService.mark_uninformed(
            db, manager.id,
            MarkUninformedRequest(
                employee_id=emp.id, start_date=date(2024, 1, 10), end_date=date(2024, 1, 10),
            ),
        )

        report = await LeaveService.get_report(db, emp.id, 2024, 2)

        assert report.next_month_deduction == Decimal("1")
        assert report.effective_quota == Decimal("1")
        assert report.remaining_paid == Decimal("1")


class TestListings:

    async def test_my_leaves_grouping(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, date(2024, 5, 1))
        await seed_leave(db, emp.id, date(2024, 5, 2), status=LeaveStatus.pending,
                         policy_reason_detail="Family function")
        await seed_leave(db, emp.id, date(2024, 5, 3), status=LeaveStatus.rejected)
        await seed_leave(db, emp.id, date(2024, 5, 4), is_paid=False, is_uninformed=True)

        mine = await LeaveService.get_my_leaves(db, emp.id)

        assert len(mine.approved) == 1
        assert len(mine.rejected) == 1
        assert mine.pending[0].needs_acknowledgment is True

    async def test_calendar(self, db: AsyncSession):
        emp = await seed_employee(db, name="Calendar Person")
        await seed_leave(db, emp.id, date(2024, 5, 6))
        await seed_leave(db, emp.id, date(2024, 5, 7), status=LeaveStatus.pending)
        await seed_block(db, date(2024, 5, 1), "HOLIDAY:Labour Day")

        calendar = await LeaveService.get_calendar(db, date(2024, 5, 1), date(2024, 5, 31))

        assert [l.employee_name for l in calendar.leaves] == ["Calendar Person"]
        assert [h.label for h in calendar.holidays] == ["Labour Day"]
        assert calendar.important_dates == []

    async def test_policy_defaults_and_overrides(self, db: AsyncSession):
        default = await LeaveService.get_policy(db)
        db.add(LeavePolicy(policy_key="monthly_paid_quota", policy_value={"quota": 3}))
        await db.flush()
        overridden = await LeaveService.get_policy(db)

        assert default.monthly_paid_quota == 2
        assert default.cashout_allowed is False
        assert overridden.monthly_paid_quota == 3


class TestDateAvailability:

    async def test_booked_by_names_each_employee_once(self, db: AsyncSession):
        alice = await seed_employee(db, name="Alice")
        bob = await seed_employee(db, name="Bob")
        await seed_leave(db, alice.id, date(2024, 3, 1))
        await seed_leave(db, alice.id, date(2024, 3, 2))

        availability = await LeaveService.get_date_availability(
            db, date(2024, 3, 1), date(2024, 3, 2), employee_id=bob.id,
        )

        assert availability.status == DateStatus.booked
        assert availability.available is False
        assert [b.employee_id for b in availability.booked_by] == [alice.id]
        assert availability.booked_by[0].employee_name == "Alice"

    async def test_blocked_range_reports_no_bookings(self, db: AsyncSession):
        alice = await seed_employee(db, name="Alice")
        bob = await seed_employee(db, name="Bob")
        await seed_leave(db, alice.id, date(2024, 12, 24), date(2024, 12, 26))
        await seed_block(db, date(2024, 12, 25), "HOLIDAY:Christmas")

        availability = await LeaveService.get_date_availability(
            db, date(2024, 12, 24), date(2024, 12, 26), employee_id=bob.id,
        )

        assert availability.status == DateStatus.blocked
        assert availability.blocked is True
        assert availability.booked_by == []

    async def test_own_leaves_are_not_bookings(self, db: AsyncSession):
        alice = await seed_employee(db, name="Alice")
        await seed_leave(db, alice.id, date(2024, 3, 1))

        availability = await LeaveService.get_date_availability(
            db, date(2024, 3, 1), date(2024, 3, 1), employee_id=alice.id,
        )

        assert availability.status == DateStatus.available
        assert availability.booked_by == []


class TestStaffListings:

    async def test_department_view_defaults_to_managers_department(self, db: AsyncSession):
        sales = await seed_department(db, name="Sales")
        ops = await seed_department(db, name="Operations")
        manager = await seed_employee(db, name="Manager", department_id=sales.id)
        seller = await seed_employee(db, name="Seller", department_id=sales.id)
        operator = await seed_employee(db, name="Operator", department_id=ops.id)
        pending = await seed_leave(db, seller.id, FUTURE, status=LeaveStatus.pending,
                                   department_id=sales.id)
        approved = await seed_leave(db, seller.id, FUTURE + timedelta(days=3),
                                    department_id=sales.id)
        await seed_leave(db, seller.id, FUTURE + timedelta(days=5), is_paid=False,
                         is_uninformed=True, department_id=sales.id)
        await seed_leave(db, operator.id, FUTURE, status=LeaveStatus.pending,
                         department_id=ops.id)

        view = await LeaveService.get_department_leaves(
            db, CurrentUser(employee_id=manager.id, role=UserRole.manager),
        )

        assert [l.id for l in view.pending] == [pending.id]
        assert [l.id for l in view.approved] == [approved.id]
        assert view.rejected == []
        assert view.pending[0].employee_name == "Seller"
        assert view.pending[0].department_name == "Sales"

    async def test_department_view_needs_a_department(self, db: AsyncSession):
        manager = await seed_employee(db, name="Manager")

        with pytest.raises(ValidationException):
            await LeaveService.get_department_leaves(
                db, CurrentUser(employee_id=manager.id, role=UserRole.manager),
            )

    async def test_admin_department_view_spans_departments(self, db: AsyncSession):
        sales = await seed_department(db, name="Sales")
        ops = await seed_department(db, name="Operations")
        admin = await seed_employee(db, name="Admin")
        seller = await seed_employee(db, name="Seller", department_id=sales.id)
        operator = await seed_employee(db, name="Operator", department_id=ops.id)
        await seed_leave(db, seller.id, FUTURE, status=LeaveStatus.rejected,
                         department_id=sales.id)
        await seed_leave(db, operator.id, FUTURE, status=LeaveStatus.rejected,
                         department_id=ops.id)
        await seed_block(db, FUTURE, "HOLIDAY")

        view = await LeaveService.get_department_leaves(
            db, CurrentUser(employee_id=admin.id, role=UserRole.admin),
        )

        assert sorted(l.employee_name for l in view.rejected) == ["Operator", "Seller"]

    async def test_future_and_past_views(self, db: AsyncSession):
        emp = await seed_employee(db, name="Emp")
        upcoming = await seed_leave(db, emp.id, FUTURE)
        await seed_leave(db, emp.id, FUTURE + timedelta(days=2), status=LeaveStatus.pending)
        await seed_leave(db, emp.id, FUTURE + timedelta(days=4), is_paid=False,
                         is_uninformed=True)
        refused = await seed_leave(db, emp.id, FUTURE + timedelta(days=6),
                                   status=LeaveStatus.rejected)
        old = await seed_leave(db, emp.id, date(2024, 2, 1))
        await seed_block(db, date(2024, 1, 1), "HOLIDAY")

        future = await LeaveService.list_leaves(db, LeaveListView.future)
        past = await LeaveService.list_leaves(db, LeaveListView.past)

        assert [l.id for l in future] == [upcoming.id]
        assert [l.id for l in past] == [refused.id, old.id]

    async def test_type_filter(self, db: AsyncSession):
        emp = await seed_employee(db)
        paid = await seed_leave(db, emp.id, date(2024, 2, 1))
        unpaid = await seed_leave(db, emp.id, date(2024, 2, 2), is_paid=False)
        absent = await seed_leave(db, emp.id, date(2024, 2, 3), is_paid=False,
                                  is_uninformed=True)

        def ids(rows):
            return sorted(l.id for l in rows)

        assert ids(await LeaveService.list_leaves(
            db, LeaveListView.past, leave_type=LeaveTypeFilter.paid,
        )) == [paid.id]
        assert ids(await LeaveService.list_leaves(
            db, LeaveListView.past, leave_type=LeaveTypeFilter.regular,
        )) == ids([paid, unpaid])
        assert ids(await LeaveService.list_leaves(
            db, LeaveListView.past, leave_type=LeaveTypeFilter.uninformed,
        )) == [absent.id]

    async def test_acknowledged_view_and_history(self, db: AsyncSession):
        admin = await seed_employee(db, name="Admin")
        ann = await seed_employee(db, name="Ann_Lee")
        anna = await seed_employee(db, name="AnnaLee")
        first = await seed_leave(db, ann.id, FUTURE, status=LeaveStatus.pending,
                                 is_important_date_override=True)
        second = await seed_leave(db, anna.id, FUTURE, status=LeaveStatus.pending,
                                  is_important_date_override=True)
        await seed_leave(db, anna.id, FUTURE + timedelta(days=1))
        await LeaveService.acknowledge(db, first.id, admin.id, True)
        await LeaveService.acknowledge(db, second.id, admin.id, False)

        acknowledged = await LeaveService.list_leaves(db, LeaveListView.acknowledged)
        history = await LeaveService.get_acknowledged_history(db)
        searched = await LeaveService.get_acknowledged_history(db, employee_name="n_l")

        assert sorted(l.id for l in acknowledged) == sorted([first.id, second.id])
        assert sorted(l.id for l in history) == sorted([first.id, second.id])
        assert {l.acknowledged_by_name for l in history} == {"Admin"}
        assert [l.id for l in searched] == [first.id]
