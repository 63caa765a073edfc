# Overview: Typed domain errors shared by services and routes.

"""
Error taxonomy

Every error a service raises on purpose is a DomainError. Each kind carries
a stable machine-readable ``code`` and the HTTP status the route layer maps
it to, so "not enough money" and "wrong equipment state" never collapse into
one generic failure.

- DataQualityError is the only kind absorbed internally (logged, then the
  movement gets a deterministic fallback timestamp).
- TransientStoreError is retryable; everything else is final.
"""

from __future__ import annotations


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    code = "validation_error"
    status_code = 400


class ConflictError(DomainError, ValueError):
    """409-level business rule conflict (e.g., duplicate equipment code)."""

    code = "conflict"
    status_code = 409


class NotFound(DomainError, LookupError):
    code = "not_found"
    status_code = 404


class InvalidStateTransition(DomainError):
    """Equipment (or order) is not in the state the operation requires."""

    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, message: str, *, current_state: str | None = None, target_state: str | None = None):
        super().__init__(message)
        self.current_state = current_state
        self.target_state = target_state

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_state"] = self.current_state
        data["target_state"] = self.target_state
        return data


class AlreadyClosed(DomainError):
    code = "already_closed"
    status_code = 410


class InsufficientFunds(DomainError):
    """
    The channel cannot cover the debit.

    A normal rejected-action result, not a system fault: the caller is
    expected to offer eligible_channels() as an alternative.
    """

    code = "insufficient_funds"
    status_code = 422

    def __init__(self, channel, required: int, available: int):
        self.channel = channel
        self.required = required
        self.available = available
        name = getattr(channel, "value", channel)
        super().__init__(
            f"Insufficient funds in {name}: required {required}, available {available}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["channel"] = getattr(self.channel, "value", self.channel)
        data["required_cents"] = self.required
        data["available_cents"] = self.available
        return data


class TransientStoreError(DomainError):
    """Store timeout/unavailability. Retry with backoff."""

    code = "store_unavailable"
    status_code = 503

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryable"] = True
        return data


class PartialWriteDetected(DomainError):
    """A maintenance artifact triple is incomplete and cannot be re-derived."""

    code = "partial_write_detected"
    status_code = 500

    def __init__(self, message: str, *, findings: list | None = None):
        super().__init__(message)
        self.findings = findings or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["findings"] = self.findings
        return data


class DataQualityError(DomainError):
    """Malformed or missing movement timestamp. Logged, never surfaced."""

    code = "data_quality"
    status_code = 500
