"""Date conflict resolver — blocked, booked and operator-coverage checks.

Ranges are inclusive on both ends; two ranges overlap when
``a.start <= b.end AND a.end >= b.start``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    BLOCK_EMPLOYEE_ID,
    HOLIDAY_PREFIX,
    IMPORTANT_EVENT_PREFIX,
    DateStatus,
)
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from leavedesk.leave.models import LeaveRequest


@dataclass(frozen=True)
class Booking:
    """Another employee's active leave overlapping a candidate range."""

    leave_id: int
    employee_id: int
    employee_name: Optional[str]
    start_date: date
    end_date: date
    status: str


@dataclass
class DateAvailability:
    status: DateStatus
    block: Optional[LeaveRequest] = None
    bookings: list[Booking] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.status == DateStatus.available

    @property
    def blocked(self) -> bool:
        return self.status == DateStatus.blocked

    @property
    def booked_by(self) -> list[Booking]:
        """First booking of each distinct booking employee, in booking order."""
        seen: dict[int, Booking] = {}
        for booking in self.bookings:
            seen.setdefault(booking.employee_id, booking)
        return list(seen.values())


def _overlapping(start: date, end: date):
    return and_(LeaveRequest.start_date <= end, LeaveRequest.end_date >= start)


# ── Blocked ─────────────────────────────────────────────────────────

async def find_block(
    db: AsyncSession,
    start: date,
    end: date,
    department_id: Optional[int] = None,
) -> Optional[LeaveRequest]:
    """First holiday / important-event block that vetoes the range, if any."""

    important_scope = LeaveRequest.department_id.is_(None)
    if department_id is not None:
        important_scope = or_(
            important_scope, LeaveRequest.department_id == department_id
        )

    result = await db.execute(
        select(LeaveRequest)
        .where(
            LeaveRequest.employee_id == BLOCK_EMPLOYEE_ID,
            _overlapping(start, end),
            or_(
                and_(
                    LeaveRequest.reason.like(f"{HOLIDAY_PREFIX}%"),
                    LeaveRequest.department_id.is_(None),
                ),
                and_(
                    LeaveRequest.reason.like(f"{IMPORTANT_EVENT_PREFIX}%"),
                    important_scope,
                ),
            ),
        )
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
        .limit(1)
    )
    return result.scalars().first()


# ── Booked ──────────────────────────────────────────────────────────

async def find_bookings(
    db: AsyncSession,
    start: date,
    end: date,
    *,
    exclude_employee_id: Optional[int] = None,
    exclude_leave_id: Optional[int] = None,
) -> list[Booking]:
    """Active leaves of other real employees overlapping the range."""

    query = (
        select(LeaveRequest, Employee.name)
        .outerjoin(Employee, Employee.id == LeaveRequest.employee_id)
        .where(
            LeaveRequest.employee_id != BLOCK_EMPLOYEE_ID,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            _overlapping(start, end),
        )
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
    )
    if exclude_employee_id is not None:
        query = query.where(LeaveRequest.employee_id != exclude_employee_id)
    if exclude_leave_id is not None:
        query = query.where(LeaveRequest.id != exclude_leave_id)

    result = await db.execute(query)
    return [
        Booking(
            leave_id=leave.id,
            employee_id=leave.employee_id,
            employee_name=name,
            start_date=leave.start_date,
            end_date=leave.end_date,
            status=leave.status.value,
        )
        for leave, name in result.all()
    ]


# ── Operator coverage ───────────────────────────────────────────────

async def find_operator_conflict(
    db: AsyncSession,
    applicant: Employee,
    department_id: Optional[int],
    start: date,
    end: date,
    *,
    exclude_leave_id: Optional[int] = None,
) -> Optional[Booking]:
    """Another operator of the same department already off during the range.

    Only applies when the applicant is an operator; other designations never
    conflict with each other.
    """

    designation = settings.OPERATOR_DESIGNATION
    if department_id is None or not applicant.is_designated(designation):
        return None

    query = (
        select(LeaveRequest, Employee.name)
        .join(Employee, Employee.id == LeaveRequest.employee_id)
        .where(
            LeaveRequest.department_id == department_id,
            LeaveRequest.employee_id != applicant.id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            func.lower(func.trim(Employee.designation)) == designation.lower(),
            _overlapping(start, end),
        )
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
        .limit(1)
    )
    if exclude_leave_id is not None:
        query = query.where(LeaveRequest.id != exclude_leave_id)

    row = (await db.execute(query)).first()
    if row is None:
        return None
    leave, name = row
    return Booking(
        leave_id=leave.id,
        employee_id=leave.employee_id,
        employee_name=name,
        start_date=leave.start_date,
        end_date=leave.end_date,
        status=leave.status.value,
    )


# ── Classification ──────────────────────────────────────────────────

async def classify_dates(
    db: AsyncSession,
    start: date,
    end: date,
    *,
    department_id: Optional[int] = None,
    exclude_employee_id: Optional[int] = None,
    exclude_leave_id: Optional[int] = None,
) -> DateAvailability:
    """Classify ``[start, end]`` as blocked (veto), booked (soft) or available."""

    block = await find_block(db, start, end, department_id)
    if block is not None:
        return DateAvailability(status=DateStatus.blocked, block=block)

    bookings = await find_bookings(
        db,
        start,
        end,
        exclude_employee_id=exclude_employee_id,
        exclude_leave_id=exclude_leave_id,
    )
    if bookings:
        return DateAvailability(status=DateStatus.booked, bookings=bookings)
    return DateAvailability(status=DateStatus.available)
