"""Exception hierarchy for the dispatch backend.

Store failures, request validation failures and reconciler failures are kept
apart so the HTTP layer can map each one to its own response.
"""

from typing import List, Optional


class DispatchError(Exception):
    """Base exception for all dispatch backend failures."""


class StoreError(DispatchError):
    """Raised when the persistent store rejects or fails an operation."""


class ValidationError(DispatchError):
    """Raised for malformed requests, before any store call is made."""


class MasterSyncError(DispatchError):
    """Raised when a row update fails under the abort policy."""

    def __init__(self, message: str, completed: int = 0, failed_keys: Optional[List[str]] = None):
        super().__init__(message)
        self.completed = completed
        self.failed_keys = failed_keys or []


class NotFoundError(DispatchError):
    """Raised when no stored row carries the requested id."""
