"""Balance ledger — monthly paid-leave quota, usage and uninformed counts.

One ``LeaveBalance`` row per (employee, year, month), created lazily on first
access. Every mutator bumps ``updated_at`` and clamps at zero.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import utcnow
from leavedesk.common.constants import ApprovalOutcome
from leavedesk.config import settings
from leavedesk.leave.models import LeaveBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def quota_month(day: date) -> tuple[int, int]:
    """(year, month) whose balance row governs a leave starting on ``day``."""
    return day.year, day.month


def to_days(value) -> Decimal:
    """Normalise a day count (int/float/str/Decimal/None) to Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ── Derived values ──────────────────────────────────────────────────

def effective_quota(balance: LeaveBalance) -> Decimal:
    """``max(0, paid_quota - next_month_deduction)``."""
    return max(ZERO, to_days(balance.paid_quota) - to_days(balance.next_month_deduction))


def remaining_paid(balance: LeaveBalance) -> Decimal:
    """``max(0, effective_quota - paid_used)``."""
    return max(ZERO, effective_quota(balance) - to_days(balance.paid_used))


# ── Get or create ───────────────────────────────────────────────────

async def _find_balance(
    db: AsyncSession,
    employee_id: int,
    year: int,
    month: int,
) -> Optional[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
            LeaveBalance.month == month,
        )
    )
    return result.scalars().first()


async def get_or_create_balance(
    db: AsyncSession,
    employee_id: int,
    year: int,
    month: int,
) -> LeaveBalance:
    """Return the balance row for (employee, year, month), creating it if absent.

    The insert runs in a SAVEPOINT: when a concurrent request created the same
    row first, the unique constraint fires, the savepoint is rolled back and
    the winner's row is re-read.
    """

    balance = await _find_balance(db, employee_id, year, month)
    if balance is not None:
        return balance

    try:
        async with db.begin_nested():
            balance = LeaveBalance(
                employee_id=employee_id,
                year=year,
                month=month,
                paid_quota=settings.LEAVE_MONTHLY_PAID_QUOTA,
                paid_used=ZERO,
                uninformed_leaves=ZERO,
                next_month_deduction=ZERO,
            )
            db.add(balance)
    except IntegrityError:
        logger.info(
            "Balance %s-%02d for employee %s created concurrently; re-reading",
            year, month, employee_id,
        )
        balance = await _find_balance(db, employee_id, year, month)
        if balance is None:
            raise
    return balance


async def get_balance_for_date(
    db: AsyncSession,
    employee_id: int,
    day: date,
) -> LeaveBalance:
    year, month = quota_month(day)
    return await get_or_create_balance(db, employee_id, year, month)


# ── Mutators ────────────────────────────────────────────────────────

async def debit_paid(
    db: AsyncSession,
    employee_id: int,
    start_date: date,
    days,
) -> ApprovalOutcome:
    """Consume ``days`` of paid quota in the quota month of ``start_date``.

    If the debit would push ``paid_used`` past the effective quota the ledger
    is left untouched and ``approved_as_unpaid_over_quota`` is returned; the
    caller then records the leave as unpaid.
    """

    balance = await get_balance_for_date(db, employee_id, start_date)
    requested = to_days(days)
    used = to_days(balance.paid_used)

    if used + requested > effective_quota(balance):
        logger.info(
            "Employee %s: %s paid day(s) exceed effective quota %s for %s-%02d; "
            "recording as unpaid",
            employee_id, requested, effective_quota(balance), balance.year, balance.month,
        )
        return ApprovalOutcome.approved_as_unpaid_over_quota

    balance.paid_used = used + requested
    balance.updated_at = utcnow()
    await db.flush()
    return ApprovalOutcome.approved


async def credit_paid(
    db: AsyncSession,
    employee_id: int,
    start_date: date,
    days,
) -> LeaveBalance:
    """Give back ``days`` of paid quota (never below zero)."""

    balance = await get_balance_for_date(db, employee_id, start_date)
    balance.paid_used = max(ZERO, to_days(balance.paid_used) - to_days(days))
    balance.updated_at = utcnow()
    await db.flush()
    return balance


async def add_uninformed(
    db: AsyncSession,
    employee_id: int,
    start_date: date,
    days,
) -> LeaveBalance:
    """Add (or, with negative ``days``, remove) uninformed days on the quota month."""

    balance = await get_balance_for_date(db, employee_id, start_date)
    balance.uninformed_leaves = max(
        ZERO, to_days(balance.uninformed_leaves) + to_days(days)
    )
    balance.updated_at = utcnow()
    await db.flush()
    return balance
