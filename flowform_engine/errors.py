"""Flowform engine custom exceptions for structured error handling."""
from __future__ import annotations


class FlowError(Exception):
    """Base class for all engine errors returned to clients."""


class ConnectionNotFoundError(FlowError):
    """Raised when a mutation references a Connection that is not in the snapshot."""


class RuleNotFoundError(FlowError):
    """Raised when a mutation references a Rule that is not on its Connection."""


class DuplicateConnectionError(FlowError):
    """Raised when two Connections share the same source block."""


class ConfirmationPendingError(FlowError):
    """Raised when the graph is edited while an orphan alert is still open."""


class NoPendingChangeError(FlowError):
    """Raised when confirm/cancel is called with no orphan alert open."""


class StaleSnapshotError(FlowError):
    """Raised when the connection snapshot changed between check and apply.

    Callers should reload the latest snapshot and retry.
    """


class MappingError(FlowError):
    """Raised when a persisted edge row cannot be mapped in strict mode."""
