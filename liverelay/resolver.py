"""
Resolvers — turn a stream identifier into a segment base URL and the origin's
current head-sequence number.

The abstract :class:`Resolver` keeps the relay independent of how the address
is obtained; :class:`YtDlpResolver` is the production implementation for
YouTube live streams.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

from .errors import ResolverError

logger = logging.getLogger(__name__)

YTDLP_TIMEOUT = 60  # seconds
HEAD_REQUEST_TIMEOUT = (10, 30)  # (connect, read) seconds
HEAD_SEQNUM_HEADER = "X-Head-Seqnum"


@dataclass(frozen=True)
class Resolution:
    """Where the live edge currently is."""

    url: str
    head_sequence_number: int


class Resolver(ABC):
    """Abstract base class for resolvers."""

    @abstractmethod
    def resolve(self, identifier: str) -> Resolution | None:
        """
        Return the current :class:`Resolution`, or ``None`` if the stream is
        confirmed not live.

        Any other failure raises :class:`~liverelay.errors.ResolverError`.
        """


class YtDlpResolver(Resolver):
    """Resolve a YouTube live stream through yt-dlp's DASH fragment URL."""

    def __init__(
        self,
        executable: str = "yt-dlp",
        session: requests.Session | None = None,
        timeout: float = YTDLP_TIMEOUT,
    ) -> None:
        self.executable = executable
        self.session = session or requests.Session()
        self.timeout = timeout

    def build_command(self, identifier: str) -> list[str]:
        return [
            self.executable,
            "--extractor-args",
            "youtube:include_live_dash;skip=hls",
            "--match-filters",
            "is_live",
            "--break-on-reject",
            "-f",
            "bestaudio[protocol=http_dash_segments]",
            "--print",
            "%(fragment_base_url)s",
            "--",
            identifier,
        ]

    def extract_playback_url(self, identifier: str) -> str:
        """Run yt-dlp and return the fragment base URL ("" when not live)."""
        try:
            result = subprocess.run(
                self.build_command(identifier),
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ResolverError(f"yt-dlp timed out after {self.timeout}s") from exc
        except FileNotFoundError as exc:
            raise ResolverError(f"{self.executable} is not installed") from exc
        except OSError as exc:
            raise ResolverError(f"Unable to run {self.executable}: {exc}") from exc

        if result.returncode != 0:
            raise ResolverError(
                f"yt-dlp failed (rc={result.returncode}): {result.stderr.strip()[:200]}"
            )
        return result.stdout.rstrip("\r\n")

    def fetch_head_sequence_number(self, url: str) -> int:
        try:
            response = self.session.get(url, timeout=HEAD_REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            raise ResolverError(f"Head request failed: {exc}") from exc
        try:
            raw = response.headers.get(HEAD_SEQNUM_HEADER)
        finally:
            response.close()

        try:
            head = int(raw)
        except (TypeError, ValueError) as exc:
            raise ResolverError(f"Unable to parse {HEAD_SEQNUM_HEADER}: {raw!r}") from exc
        if head < 0:
            raise ResolverError(f"Unable to parse {HEAD_SEQNUM_HEADER}: {raw!r}")
        return head

    def resolve(self, identifier: str) -> Resolution | None:
        url = self.extract_playback_url(identifier)
        if not url:
            return None
        logger.debug("Resolved %s → %s", identifier, url[:120])
        return Resolution(url=url, head_sequence_number=self.fetch_head_sequence_number(url))
