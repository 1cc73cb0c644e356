"""Common module — shared enums, errors, envelope and history helper."""

from attendance_console.common.audit import EmployeeHistory, record_history
from attendance_console.common.constants import (
    DATE_FORMAT,
    MONTH_YEAR_FORMAT,
    NOT_RECORDED,
    DayCategory,
    HistoryField,
    HolidayType,
    LeaveTransactionKind,
    PresenceType,
    RequestAction,
    RequestStatus,
    UserRole,
)
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.common.exceptions import (
    AppException,
    AuthenticationException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ServiceUnavailableException,
    StateTransitionError,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # History
    "EmployeeHistory",
    "record_history",
    # Constants / Enums
    "DayCategory",
    "HistoryField",
    "HolidayType",
    "LeaveTransactionKind",
    "PresenceType",
    "RequestAction",
    "RequestStatus",
    "UserRole",
    "DATE_FORMAT",
    "MONTH_YEAR_FORMAT",
    "NOT_RECORDED",
    # Envelope
    "ApiResponse",
    "ok",
    # Exceptions
    "AppException",
    "AuthenticationException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "ServiceUnavailableException",
    "StateTransitionError",
    "ValidationException",
    "register_exception_handlers",
]
