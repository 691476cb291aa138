"""Exceptions raised while talking to the task server."""
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for failures that halt a reconciliation pass."""


class TransportError(SyncError):
    """A remote call failed: network error, timeout or an HTTP error status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReconciliationError(SyncError):
    """The server broke the create contract (no id, or the client id echoed back)."""

    def __init__(self, message: str, *, client_ref: str, server_ref: Optional[str] = None) -> None:
        super().__init__(message)
        self.client_ref = client_ref
        self.server_ref = server_ref


__all__ = ["ReconciliationError", "SyncError", "TransportError"]
