"""
Error taxonomy shared by the reconciler and its collaborators.

  TRANSIENT_NOT_FOUND  — referenced object absent, may appear later (wait)
  MALFORMED_INPUT      — object exists but fails validation (degraded, warning)
  CONFLICT             — optimistic-concurrency clash (retried, never surfaced)
  UPSTREAM_UNAVAILABLE — collaborator failed for infrastructure reasons (degraded)
"""

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_NOT_FOUND = "transient_not_found"
    MALFORMED_INPUT = "malformed_input"
    CONFLICT = "conflict"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    CANCELLED = "cancelled"


class ReconcileError(Exception):
    """Base class for every error the reconciler raises or classifies."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class NotFoundError(ReconcileError):
    """Raised when a referenced object does not exist (yet)."""

    kind = ErrorKind.TRANSIENT_NOT_FOUND


class MalformedInputError(ReconcileError):
    """Raised when an input object exists but fails validation."""

    kind = ErrorKind.MALFORMED_INPUT


class ConflictError(ReconcileError):
    """Raised when a write loses an optimistic-concurrency race."""

    kind = ErrorKind.CONFLICT


class UpstreamUnavailableError(ReconcileError):
    """Raised when a collaborator call fails for infrastructure reasons."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class ReconcileCancelled(ReconcileError):
    """Raised when the trigger cancelled the invocation between phases."""

    kind = ErrorKind.CANCELLED
