"""
Error types shared by the relay components.

Only conditions that end the relay (or that the refresher must retry) are
exceptions. Segment fetch failures are reported as values, see
:mod:`liverelay.fetcher`.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class StreamNotLive(RelayError):
    """The resolver confirmed the stream is no longer live. Never retried."""

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "Unable to extract playback URL (is the video a currently live stream?)"
        )


class ResolverError(RelayError):
    """Transient resolver failure (process error, bad output, network)."""


class SinkError(RelayError):
    """The downstream ffmpeg process can no longer accept input."""
