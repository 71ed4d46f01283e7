"""Deduction cascade — uninformed absences pre-deduct future paid quota.

Always a full recompute: every ``next_month_deduction`` of the employee is
zeroed, then rebuilt from the approved uninformed events in start-date order
so earlier absences claim the earliest future capacity. Runs inside the
caller's transaction; a failure rolls the reset back with everything else.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import utcnow
from leavedesk.common.constants import LeaveStatus
from leavedesk.config import settings
from leavedesk.leave.balance import ZERO, get_or_create_balance, to_days
from leavedesk.leave.models import LeaveBalance, LeaveRequest

logger = logging.getLogger(__name__)


async def allocate_to_future_months(
    db: AsyncSession,
    event: LeaveRequest,
) -> Decimal:
    """Spread one event's days over the months after its start month.

    Returns the part of the debt that did not fit before the horizon.
    """

    remaining = to_days(event.days_requested)
    base_year = event.start_date.year
    horizon_year = base_year + settings.LEAVE_DEDUCTION_HORIZON_YEARS

    year, month = base_year, event.start_date.month + 1
    while remaining > ZERO and year < horizon_year:
        if month > 12:
            month = 1
            year += 1
            continue

        balance = await get_or_create_balance(db, event.employee_id, year, month)
        already = to_days(balance.next_month_deduction)
        capacity = max(ZERO, to_days(balance.paid_quota) - already)
        if capacity > ZERO:
            take = min(remaining, capacity)
            balance.next_month_deduction = already + take
            balance.updated_at = utcnow()
            remaining -= take
        month += 1

    return remaining


async def recalculate_deductions(db: AsyncSession, employee_id: int) -> Decimal:
    """Rebuild the employee's deduction schedule from scratch.

    Returns the total debt left unallocated after the horizon (normally 0).
    """

    await db.execute(
        update(LeaveBalance)
        .where(LeaveBalance.employee_id == employee_id)
        .values(next_month_deduction=ZERO, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )

    result = await db.execute(
        select(LeaveRequest)
        .where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.is_uninformed.is_(True),
            LeaveRequest.status == LeaveStatus.approved,
        )
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
    )
    events = result.scalars().all()

    unallocated = ZERO
    for event in events:
        if to_days(event.days_requested) <= ZERO:
            continue
        left = await allocate_to_future_months(db, event)
        if left > ZERO:
            logger.warning(
                "Employee %s: %s uninformed day(s) from leave %s (%s) could not be "
                "deducted within %s years and were dropped",
                employee_id, left, event.id, event.start_date,
                settings.LEAVE_DEDUCTION_HORIZON_YEARS,
            )
            unallocated += left

    await db.flush()
    logger.info(
        "Recalculated deductions for employee %s from %d uninformed event(s)",
        employee_id, len(events),
    )
    return unallocated
