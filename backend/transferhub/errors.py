# Overview: Typed failures raised by the transfer services and mapped to HTTP codes by routes.

from __future__ import annotations


class TransferError(Exception):
    """Raised when transfer operations fail."""

    http_status = 400


class NotAuthenticated(TransferError):
    """No acting user is available; nothing was written."""

    http_status = 401


class ValidationError(TransferError, ValueError):
    """400-level input problem."""

    http_status = 400


class NotFoundError(TransferError):
    """Referenced transfer, item, warehouse or product does not exist."""

    http_status = 404


class InvalidStateError(TransferError):
    """Operation is not allowed from the transfer's current status."""

    http_status = 409


class ReconciliationConflict(TransferError):
    """Concurrent write collided and the bounded retries were exhausted."""

    http_status = 503


class AuditLogImmutableError(TransferError):
    """Transfer log rows are insert-only."""

    http_status = 500
