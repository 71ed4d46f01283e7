"""Leave ORM models: LeaveBalance, LeaveRequest, LeavePolicy."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.audit import utcnow
from leavedesk.common.constants import (
    BLOCK_EMPLOYEE_ID,
    HOLIDAY_PREFIX,
    IMPORTANT_EVENT_PREFIX,
    EndSegment,
    LeaveStatus,
    StartSegment,
)
from leavedesk.config import settings
from leavedesk.database import Base

if TYPE_CHECKING:
    from leavedesk.core_hr.models import Employee


class LeaveBalance(Base):
    """Monthly paid-leave ledger row for one employee."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "year", "month", name="uq_leave_balance_employee_month"
        ),
        sa.Index("ix_leave_balance_employee_id", "employee_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    paid_quota: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        default=lambda: settings.LEAVE_MONTHLY_PAID_QUOTA,
    )
    paid_used: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    uninformed_leaves: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    # Days pre-deducted from this month's quota by earlier uninformed absences
    next_month_deduction: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_balances"
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance emp={self.employee_id} {self.year}-{self.month:02d} "
            f"used={self.paid_used}/{self.paid_quota} ded={self.next_month_deduction}>"
        )


class LeaveRequest(Base):
    """A leave application, an uninformed-absence record, or (employee 0) a blocked date."""

    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_employee_id", "employee_id"),
        sa.Index("ix_leave_department_id", "department_id"),
        sa.Index("ix_leave_status", "status"),
        sa.Index("ix_leave_start_end_date", "start_date", "end_date"),
        sa.Index("ix_leave_swap_target", "requested_swap_with_leave_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    # No FK: employee_id 0 marks a synthetic block row
    employee_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    department_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("departments.id")
    )
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_segment: Mapped[StartSegment] = mapped_column(
        sa.Enum(StartSegment, name="leave_start_segment"),
        nullable=False,
        default=StartSegment.full_day,
    )
    end_segment: Mapped[EndSegment] = mapped_column(
        sa.Enum(EndSegment, name="leave_end_segment"),
        nullable=False,
        default=EndSegment.full_day,
    )
    days_requested: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("1")
    )
    is_paid: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    is_uninformed: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    emergency_type: Mapped[Optional[str]] = mapped_column(sa.String(100))

    # ── Swap negotiation ────────────────────────────────────────────
    requested_swap_with_leave_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("leave_requests.id", ondelete="SET NULL")
    )
    swap_responded_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    swap_accepted: Mapped[Optional[bool]] = mapped_column(sa.Boolean)
    approved_via_swap: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )

    # ── Policy form ─────────────────────────────────────────────────
    is_important_date_override: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    policy_reason_detail: Mapped[Optional[str]] = mapped_column(sa.Text)
    expected_return_date: Mapped[Optional[date]] = mapped_column(sa.Date)

    # ── Decisions ───────────────────────────────────────────────────
    acknowledged_by: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id")
    )
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    decision_by: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id")
    )
    decision_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    decision_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )

    @property
    def is_block(self) -> bool:
        return self.employee_id == BLOCK_EMPLOYEE_ID

    @property
    def block_label(self) -> Optional[str]:
        """Label part of a ``HOLIDAY:<label>`` / ``IMPORTANT_EVENT:<label>`` reason."""
        reason = self.reason or ""
        for prefix in (IMPORTANT_EVENT_PREFIX, HOLIDAY_PREFIX):
            if reason.startswith(prefix):
                label = reason[len(prefix):].lstrip(":")
                return label or None
        return None

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} emp={self.employee_id} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )


class LeavePolicy(Base):
    """Key/value leave policy settings shown to employees."""

    __tablename__ = "leave_policies"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    policy_key: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    policy_value: Mapped[Optional[dict]] = mapped_column(sa.JSON)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )
