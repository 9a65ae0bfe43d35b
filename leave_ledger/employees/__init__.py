"""Employees module — the Employee record and its lookup service."""

from leave_ledger.employees.models import Employee
from leave_ledger.employees.service import EmployeeService

__all__ = ["Employee", "EmployeeService"]
