"""Exception hierarchy for Serverwarden.

Every failure that can end an update cycle derives from
``ServerWardenError`` so the scheduler can tell expected failures apart
from programming errors in its logs.
"""

from __future__ import annotations


class ServerWardenError(Exception):
    """Base class for all Serverwarden errors."""


class HttpConnectionError(ServerWardenError):
    """Socket, TLS, or deadline failure while talking to a remote host."""


class HttpProtocolError(ServerWardenError):
    """Malformed, truncated, or invalid HTTP response."""


class HttpStatusError(HttpProtocolError):
    """Response carried a non-2xx status code."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"{url} returned HTTP {status_code}")
        self.status_code = status_code
        self.url = url


class ManifestError(ServerWardenError):
    """Manifest or package descriptor is missing a required field."""


class ProcessLaunchError(ServerWardenError):
    """The supervised server process could not be started."""


class ArtifactWriteError(ServerWardenError):
    """The downloaded artifact could not be written to disk."""


class SetupError(ServerWardenError):
    """First-run configuration could not be completed."""
