# app/errors.py
from __future__ import annotations


class SettlementError(Exception):
    """Base for every business rejection raised by the core components."""

    http_status = 400

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class ValidationFailed(SettlementError):
    http_status = 400


class NotFound(SettlementError):
    http_status = 404


class Forbidden(SettlementError):
    http_status = 403


class Conflict(SettlementError):
    http_status = 409


class Unavailable(SettlementError):
    http_status = 502
