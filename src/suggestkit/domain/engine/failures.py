"""Classify external-call failures into a reason and a retry hint."""

from __future__ import annotations

from suggestkit.domain.errors import BackingStoreError, EngineError


def classify_failure(exc: BaseException, *, timeout: float | None = None) -> tuple[str, bool]:
    """Return ``(reason, can_retry)`` for an exception raised by a store call.

    Timeouts and connection trouble are transient. Adapter errors carry their
    own ``transient`` flag. Anything else is treated as a permanent rejection.
    """

    if isinstance(exc, TimeoutError):
        limit = f" after {timeout:g}s" if timeout is not None else ""
        return f"call timed out{limit}", True
    if isinstance(exc, BackingStoreError):
        return str(exc) or type(exc).__name__, exc.transient
    if isinstance(exc, EngineError):
        return f"{exc.code}: {exc}", False
    if isinstance(exc, ConnectionError):
        return str(exc) or type(exc).__name__, True
    return str(exc) or type(exc).__name__, False
