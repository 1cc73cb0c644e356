"""Employee directory module — Employee and EmployeeExtraInfo models, schemas and services."""

from attendance_console.employees.models import Employee, EmployeeExtraInfo

__all__ = ["Employee", "EmployeeExtraInfo"]
