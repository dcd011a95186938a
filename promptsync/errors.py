# promptsync/errors.py
"""
Error taxonomy shared by the store, the sync gateway and the HTTP layer.

Each error carries the HTTP status and the error code the API answers with.
"""
from typing import Any, Dict, Optional

E_VALIDATION = "E_VALIDATION"
E_NOT_FOUND = "E_NOT_FOUND"
E_MALFORMED = "E_MALFORMED"
E_STORAGE = "E_STORAGE"
E_INTERNAL = "E_INTERNAL"


class PromptSyncError(Exception):
    status_code = 500
    error_code = E_INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_body(self) -> Dict[str, Any]:
        body = {"success": False, "error_code": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PromptSyncError):
    """A required field is missing or empty."""
    status_code = 400
    error_code = E_VALIDATION


class NotFoundError(PromptSyncError):
    status_code = 404
    error_code = E_NOT_FOUND


class MalformedInputError(PromptSyncError):
    """The request body does not have the expected shape (e.g. import body is not a list)."""
    status_code = 400
    error_code = E_MALFORMED


class StorageError(PromptSyncError):
    status_code = 500
    error_code = E_STORAGE

    def to_body(self) -> Dict[str, Any]:
        # the underlying database error is logged, never returned to callers
        return {"success": False, "error_code": self.error_code, "message": "Storage failure"}
