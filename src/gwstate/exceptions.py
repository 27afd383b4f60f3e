"""Custom exception hierarchy for gwstate."""

from __future__ import annotations


class GwStateError(Exception):
    """Base exception for all gwstate errors."""


class GwConfigError(GwStateError):
    """Invalid or missing configuration."""


class StoreError(GwStateError):
    """Shared store failure (connectivity, serialization).

    The in-memory cache is never modified by an operation that raised
    or returned this error.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str = "",
    ) -> None:
        self.key = key
        super().__init__(message)


class ConfigNotReadyError(GwStateError):
    """Config is not loaded or the monitoring interface is missing.

    Only raised by :meth:`gwstate.system.SystemState.require_ready`;
    classification predicates and accessors return ``None``/``False``
    instead of raising.
    """
