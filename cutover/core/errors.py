from __future__ import annotations

from typing import Any


class CutoverError(Exception):
    """Base error for cutover."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code


class ValidationError(CutoverError):
    """Missing or invalid region ids, reasons, or request arguments."""

    code = "FAILOVER_VALIDATION_FAILED"
    status_code = 400


class NotFoundError(ValidationError):
    """Referenced region or failover event does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(CutoverError):
    """A failover is already running, or the event is not eligible for the action."""

    code = "FAILOVER_IN_PROGRESS"
    status_code = 409


class ExternalServiceError(CutoverError):
    """Traffic manager (DNS/load-balancer) call failed; retryable infrastructure error."""

    code = "TRAFFIC_MANAGER_FAILED"
    status_code = 502


class PropagationTimeoutError(CutoverError):
    """Traffic change was not confirmed within the polling budget."""

    code = "PROPAGATION_TIMEOUT"
    status_code = 504


class PersistenceError(CutoverError):
    """Region/event store unreachable or write failed."""

    code = "PERSISTENCE_UNAVAILABLE"
    status_code = 503


class IntegrationUnavailableError(ExternalServiceError):
    """Circuit breaker is open for an external integration."""

    code = "INTEGRATION_UNAVAILABLE"
