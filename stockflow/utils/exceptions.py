"""Custom exception classes for the application."""


class StockflowError(Exception):
    """Base exception class for all application exceptions."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ValidationError(StockflowError):
    """Raised when input is malformed or a required link is missing."""
    pass


class InvalidStateError(StockflowError):
    """Raised when a transition is attempted from a state that forbids it."""
    pass


class NotFoundError(StockflowError):
    """Raised when a referenced record, store or production house does not exist."""
    pass


class ConflictError(StockflowError):
    """Raised when the record store detects a concurrent write."""
    pass


class RecordStoreError(StockflowError):
    """Raised when the record store API encounters an error."""
    pass


class AuthenticationError(StockflowError):
    """Raised when authentication against the record store fails."""
    pass


class ConfigurationError(StockflowError):
    """Raised when there's a configuration error."""
    pass
