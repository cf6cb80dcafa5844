"""
Error hierarchy for the paste engine.

Every error carries a stable code and the HTTP status the web layer answers
with. ``PasteNotFound`` uses one message for unknown, expired and
view-exhausted pastes so callers cannot probe expiry state.
"""
from typing import Optional


class PasteError(Exception):
    """Base exception for all Paste Vault errors."""

    code = "PASTE_ERROR"
    http_status = 500
    default_message = "Paste operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        """Convert to the JSON error envelope."""
        return {"error": self.code, "message": self.message}


class ValidationError(PasteError):
    """Malformed paste content or constraint values."""

    code = "VALIDATION_ERROR"
    http_status = 400
    default_message = "Invalid paste input"


class PasteNotFound(PasteError):
    """Unknown, time-expired or view-exhausted paste."""

    code = "NOT_FOUND"
    http_status = 404
    default_message = "Paste not found, expired, or view limit exceeded"

    def __init__(self):
        super().__init__(self.default_message)


class StorageError(PasteError):
    """Backing store failure or id generation exhausted."""

    code = "STORAGE_ERROR"
    http_status = 500
    default_message = "Storage backend failure"
