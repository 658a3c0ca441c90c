"""Error types for the erasure job workflow."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine readable rejection reasons."""
    INVALID_PASS_COUNT = "invalid_pass_count"
    INVALID_ENUM = "invalid_enum"
    CONFIRMATION_REQUIRED = "confirmation_required"
    STOP_CONFIRMATION_REQUIRED = "stop_confirmation_required"
    JOB_ALREADY_ACTIVE = "job_already_active"
    INVALID_TRANSITION = "invalid_transition"
    RECOVERY_UNAVAILABLE = "recovery_unavailable"
    NOT_COMPLETED = "not_completed"
    BACKEND_ERROR = "backend_error"


class EraseJobError(Exception):
    """Base class for all workflow errors."""

    code: ErrorCode = ErrorCode.INVALID_TRANSITION

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class ConfigError(EraseJobError):
    """Invalid erase configuration. Caller-correctable."""
    code = ErrorCode.INVALID_ENUM


class ConfirmationError(EraseJobError):
    """Destructive action attempted without the required confirmation."""
    code = ErrorCode.CONFIRMATION_REQUIRED


class JobAlreadyActive(EraseJobError):
    code = ErrorCode.JOB_ALREADY_ACTIVE


class InvalidTransition(EraseJobError):
    code = ErrorCode.INVALID_TRANSITION


class IssuerError(EraseJobError):
    """Certificate requested for a job that did not complete."""
    code = ErrorCode.NOT_COMPLETED


class BackendError(EraseJobError):
    """I/O failure reported by an erase backend."""
    code = ErrorCode.BACKEND_ERROR
