# errors.py - error taxonomy shared by the store, the operations and the HTTP layer
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base error carrying the HTTP status and extra fields for the response body."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ClientInputError(ApiError):
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class StoreError(ApiError):
    """Failure talking to the relational store. Messages are already sanitized."""

    status_code = 500


class StoreConnectionError(StoreError):
    """Could not establish (or lost) the connection."""


class QueryError(StoreError):
    """Connection was fine but the statement failed."""


class StoreIntegrityError(QueryError):
    """Statement rejected by a store constraint (e.g. duplicate key)."""
