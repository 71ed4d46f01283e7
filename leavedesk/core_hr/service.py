"""Core HR lookups consumed by the leave engine."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.exceptions import NotFoundException
from leavedesk.core_hr.models import Employee


class EmployeeService:
    """Read-only employee directory."""

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        employee_id: int,
        *,
        active_only: bool = True,
    ) -> Employee:
        """Load an employee with its department, or raise NotFoundException."""

        query = (
            select(Employee)
            .where(Employee.id == employee_id)
            .options(selectinload(Employee.department))
        )
        if active_only:
            query = query.where(Employee.is_active.is_(True))

        result = await db.execute(query)
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    @staticmethod
    async def find_employee(
        db: AsyncSession,
        employee_id: int,
    ) -> Optional[Employee]:
        result = await db.execute(
            select(Employee).where(Employee.id == employee_id),
        )
        return result.scalars().first()
