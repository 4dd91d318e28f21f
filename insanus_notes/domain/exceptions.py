from __future__ import annotations


class StoreError(RuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(StoreError):
    pass


class ValidationSkip(ValueError):
    """A local precondition was not met; the calling action does nothing."""
