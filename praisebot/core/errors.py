"""Error types shared by the repository layer and the engines."""

from typing import Optional


class PraiseBotError(Exception):
    """Base error for PraiseBot."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class QueryError(PraiseBotError):
    """A read against storage failed."""


class WriteError(PraiseBotError):
    """A write against storage failed."""


class ValidationError(PraiseBotError):
    """Malformed identifiers or input rejected before touching storage."""
