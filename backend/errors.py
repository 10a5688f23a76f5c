# errors.py
from typing import Optional


class DormError(Exception):
    """Base class for failures the engine reports back instead of raising."""

    kind = "error"

    def __init__(self, message: str, step: Optional[str] = None):
        self.message = message
        self.step = step
        super().__init__(message)


class ValidationError(DormError, ValueError):
    kind = "validation"


class ConflictError(DormError):
    kind = "conflict"


class NotFoundError(DormError, LookupError):
    kind = "not_found"


class StoreError(DormError):
    """The backing store rejected a read or write."""

    kind = "store"


class AuthError(DormError):
    kind = "auth"
