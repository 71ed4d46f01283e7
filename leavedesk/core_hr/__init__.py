"""Core HR module — employee and department directory used by the leave engine."""

from leavedesk.core_hr.models import Department, Employee

__all__ = ["Department", "Employee"]
