"""
Error kinds raised by repositories and workflows.

ValidationError, NotFoundError and InsufficientStock carry messages meant for
the user. InvariantViolation and its subclasses signal programming errors and
are reported to callers as a generic failure.
"""
from __future__ import annotations


class DomainError(Exception):
    """Base class for every error the engine raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(DomainError):
    """Missing or invalid input, duplicates, or a forbidden state change."""


class NotFoundError(DomainError):
    def __init__(self, entity: str, key=None):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.key = key


class InsufficientStock(DomainError):
    def __init__(self, product_name: str, available: int, requested: int, batch_number: str | None = None):
        if batch_number:
            msg = (
                f"Insufficient stock for {product_name} (batch {batch_number}). "
                f"Available: {available}, Requested: {requested}"
            )
        else:
            msg = (
                f"Insufficient stock for {product_name}. "
                f"Available: {available}, Requested: {requested}"
            )
        super().__init__(msg)
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InvariantViolation(DomainError):
    """Internal consistency check failed; never shown to the user verbatim."""


class UnbalancedPosting(InvariantViolation):
    pass


class OverRelease(InvariantViolation):
    pass


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStock",
    "InvariantViolation",
    "UnbalancedPosting",
    "OverRelease",
]
