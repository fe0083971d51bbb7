# Overview: Error taxonomy shared by services and routes.

from __future__ import annotations


class CoreError(Exception):
    """Base class for ledger/lifecycle failures. `status_code` is the HTTP mapping."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(CoreError):
    """Referenced entity id does not exist."""
    status_code = 404

    def __init__(self, resource: str, key=None):
        message = f"{resource} not found" if key is None else f"{resource} {key} not found"
        super().__init__(message, details={"resource": resource, "key": key} if key is not None else None)
        self.resource = resource
        self.key = key


class ValidationError(CoreError, ValueError):
    """400-level input problem."""
    status_code = 400


class ConflictError(CoreError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, second wallet)."""
    status_code = 409


class InvariantViolation(CoreError):
    """Illegal state transition (e.g. delivering a cancelled order)."""
    status_code = 409
