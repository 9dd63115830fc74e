"""
Error codes and exceptions raised by the task services.

Calculators never raise; these are for operations that validate input or
depend on the state of the task store.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(Enum):
    """Machine-readable error codes attached to every domain error."""
    SUCCESS = "SUCCESS"
    ERR_MISSING_FIELD = "ERR_MISSING_FIELD"
    ERR_INVALID_FIELD = "ERR_INVALID_FIELD"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_CONFLICT = "ERR_CONFLICT"


class StrideError(Exception):
    """Base class for domain errors."""

    code = ErrorCode.ERR_INVALID_FIELD

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict:
        return {
            'error_code': self.code.value,
            'message': self.message
        }


class TaskValidationError(StrideError):
    """Task parameters failed validation. ``field`` names the culprit."""

    def __init__(self, field: str, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message, code)
        self.field = field

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['field'] = self.field
        return result


class TimeEntryError(StrideError):
    """A timer operation is not possible in the current state."""
    code = ErrorCode.ERR_CONFLICT
