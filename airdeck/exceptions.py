"""
airdeck exceptions
"""

from dataclasses import dataclass


class AirdeckError(Exception):
    """Base exception for all airdeck errors"""

    pass


class ConfigError(AirdeckError):
    """Raised when the config file or a server entry is invalid"""

    kind = "config"


class ApiError(AirdeckError):
    """Raised when an API request fails"""

    kind = "network"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ApiError):
    """Raised when the server cannot be reached"""

    kind = "network"


class UnauthorizedError(ApiError):
    """Raised when authentication fails (401/403)"""

    kind = "unauthorized"

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message, status_code=status_code)


class NotFoundError(ApiError):
    """Raised when resource is not found (404)"""

    kind = "not_found"

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ServerError(ApiError):
    """Raised for any other non-success response"""

    kind = "server_error"


class ApiTimeoutError(ApiError):
    """Raised when a request exceeds its timeout"""

    kind = "timeout"


class StatePoisonedError(AirdeckError):
    """Raised when the shared state lock was released by a failing writer.

    The state may be half-mutated, so nothing may read or write it again.
    """

    pass


@dataclass(frozen=True)
class AppError:
    """An error shown in the banner: what failed, on which target, and why."""
    operation: str
    target_id: str | None
    kind: str
    message: str
    status_code: int | None = None

    @classmethod
    def from_exception(cls, operation: str, target_id: str | None, exc: AirdeckError) -> "AppError":
        return cls(
            operation=operation,
            target_id=target_id,
            kind=getattr(exc, "kind", "network"),
            message=str(exc),
            status_code=getattr(exc, "status_code", None),
        )

    def __str__(self) -> str:
        target = f" {self.target_id}" if self.target_id else ""
        return f"{self.operation}{target} failed ({self.kind}): {self.message}"
