# Overview: Error taxonomy shared by services and routes.

from __future__ import annotations


class BizOpsError(Exception):
    """Base for domain errors; carries a message and optional details."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BizOpsError, ValueError):
    """400-level input problem. Raised before any mutation."""
    status_code = 400


class NotFoundError(BizOpsError):
    """404-level: an id does not resolve to a record."""
    status_code = 404


class InsufficientStockError(BizOpsError):
    """409-level: atomic decrement refused because stock < requested quantity."""
    status_code = 409


class StoreFailure(BizOpsError):
    """The underlying store operation raised (connection, timeout, constraint)."""
    status_code = 500


class PartialApplicationError(StoreFailure):
    """
    A workflow step failed after earlier steps were already applied and at
    least one of those could not be undone.

    details["applied"] lists every step that completed, details["uncompensated"]
    the ones left in place.
    """
