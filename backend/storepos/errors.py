# Overview: Error taxonomy shared by services and routes.

"""
Every failure the core can surface is a PosError subclass.

Routes translate them with error_response(); anything else is an
unexpected failure, logged and answered with a 500.

- ValidationError, ConflictError, InsufficientStockError,
  InsufficientPaymentError, AlreadyVoidedError: caller must change input.
- NotFoundError: referenced entity does not exist.
- AuthenticationError / AuthorizationError: identity or capability problem.
- RetryableError: transient; the caller should resend the same request.
- ConcurrencyConflict: internal signal for run_with_retry, never surfaced.
"""

from __future__ import annotations

from flask import jsonify


class PosError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError, ValueError):
    """400-level input problem."""
    status_code = 400


class ConflictError(PosError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class AuthenticationError(PosError):
    status_code = 401


class AuthorizationError(PosError):
    """Actor lacks the permission required for the operation."""
    status_code = 403


class NotFoundError(PosError):
    status_code = 404


class InsufficientStockError(PosError):
    status_code = 422


class InsufficientPaymentError(PosError):
    status_code = 422


class AlreadyVoidedError(PosError):
    status_code = 422


class RetryableError(PosError):
    """Lock contention or sequence collisions outlasted the retry budget."""
    status_code = 503


class ConcurrencyConflict(Exception):
    """Raised inside a unit of work to request a rollback and retry."""


def error_response(exc: PosError):
    return jsonify(exc.to_dict()), exc.status_code
