"""Typed errors raised by administrative operations and usage recording.

Evaluation never raises these: a missing or misconfigured flag degrades to a
disabled decision instead.
"""
from typing import Any, Dict


class FeatureFlagError(Exception):
    """Base class carrying an error code and an HTTP status."""

    code = "feature_flag_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(FeatureFlagError):
    """Raised when a flag, segment or experiment lookup finds nothing."""

    code = "not_found"
    status_code = 404


class FlagValidationError(FeatureFlagError):
    """Raised for a malformed mutation or usage payload."""

    code = "validation_error"
    status_code = 400


class ConflictError(FeatureFlagError):
    """Raised when a key or name is already taken."""

    code = "conflict"
    status_code = 409
