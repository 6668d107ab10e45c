"""Exception types raised by the API client."""

from dataclasses import dataclass
from typing import Any, Optional

# Status reserved for failures that never produced an HTTP response
TRANSPORT_STATUS = 0

ABORTED = "ABORTED"
NETWORK_ERROR = "NETWORK_ERROR"

ABORTED_MESSAGE = "Request was aborted or timed out"
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


@dataclass(frozen=True)
class APIError:
    """Normalized error shape surfaced for every failed request."""

    status: int
    message: str
    code: Optional[str] = None
    details: Any = None

    @property
    def is_transport_error(self) -> bool:
        """Check if the request failed before a response was received."""
        return self.status == TRANSPORT_STATUS


class BondError(Exception):
    """Base class for Bond errors."""

    pass


class APIClientError(BondError):
    """Raised when an API request fails.

    Wraps exactly one APIError. Raising the same instance again keeps
    status, code and message intact.
    """

    def __init__(self, error: APIError):
        self.error = error
        super().__init__(error.message)

    @property
    def status(self) -> int:
        return self.error.status

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def code(self) -> Optional[str]:
        return self.error.code

    @property
    def details(self) -> Any:
        return self.error.details

    def __repr__(self) -> str:
        return (
            f"APIClientError(status={self.status}, code={self.code!r}, "
            f"message={self.message!r})"
        )


class OperationCancelled(BondError):
    """Raised when an awaited operation is cut short by a cancellation token."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(f"Operation cancelled: {reason or 'no reason given'}")
