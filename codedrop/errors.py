"""
Error taxonomy for drop creation and retrieval.
Every error knows the HTTP status it maps to and how to render itself.
"""
from typing import Optional


class CodeDropError(Exception):
    """Base exception for all codedrop errors."""

    status_code = 500

    def __init__(self, message: str = "Internal server error."):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message}


class ValidationFailed(CodeDropError):
    """Malformed or disallowed input. Never retried."""

    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidCodeFormat(ValidationFailed):
    def __init__(self, code_length: int = 6):
        super().__init__(f"Invalid code format. Must be {code_length} digits.")
        self.code_length = code_length


class PayloadTooLarge(ValidationFailed):
    status_code = 413


class DropNotFound(CodeDropError):
    """No live drop for the code: never created, already taken or expired."""

    status_code = 404

    def __init__(self, attempts_remaining: Optional[int] = None):
        super().__init__("Drop not found. It may have expired or already been accessed.")
        self.attempts_remaining = attempts_remaining

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.attempts_remaining is not None:
            body["attemptsRemaining"] = self.attempts_remaining
        return body


class RateLimited(CodeDropError):
    status_code = 429

    def __init__(self, cooldown_remaining_seconds: int, max_attempts: int):
        super().__init__(
            f"Too many failed attempts. Please wait {cooldown_remaining_seconds} seconds."
        )
        self.cooldown_remaining_seconds = cooldown_remaining_seconds
        self.max_attempts = max_attempts

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["cooldownRemaining"] = self.cooldown_remaining_seconds
        body["maxAttempts"] = self.max_attempts
        return body


class AllocationExhausted(CodeDropError):
    """No free code found within the retry budget. Safe to retry later."""

    status_code = 503

    def __init__(self, attempts: int):
        super().__init__("Failed to generate a unique code. Please try again.")
        self.attempts = attempts


class CodeConflict(CodeDropError):
    """A concurrent create claimed the code between allocation and insert."""

    status_code = 409

    def __init__(self, code: str):
        super().__init__("Code already in use.")
        self.code = code
