"""Error taxonomy shared by every dispatch component."""

from __future__ import annotations

from typing import Literal

RemoteFailure = Literal[
    "http_status",
    "no_candidates",
    "malformed_payload",
    "timeout",
    "transport",
]


class DirectorError(RuntimeError):
    """Base class for errors raised by the chapter director."""


class ConfigurationError(DirectorError):
    """Raised when fixtures or settings are missing or invalid.

    Fatal at startup: a service that cannot load its sandbox fixtures must not
    come up in a degraded state.
    """


class RemoteDispatchError(DirectorError):
    """Raised by the live client for every remote failure.

    `reason` tells callers which kind of failure happened so they can decide
    whether to fall back to sandbox mode, retry, or surface the error.
    """

    def __init__(
        self,
        message: str,
        reason: RemoteFailure,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code
