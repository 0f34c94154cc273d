"""
Refresher — re-resolves the stream address and installs a new starting index
into the shared :class:`~liverelay.state.StreamState`.

It is driven two ways: reactively by the reader when segments stop arriving,
and proactively from a background thread every few hours so the origin's URL
never expires under the reader. Both paths end in the same atomic
``StreamState.install``; whichever refresh finishes last wins.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from .errors import ResolverError, StreamNotLive
from .resolver import Resolver
from .state import StreamState

logger = logging.getLogger(__name__)

REFRESH_ATTEMPTS = 5
REFRESH_BACKOFF_STEP = 5  # seconds, multiplied by the attempt index
REFRESH_INTERVAL = 3 * 60 * 60  # 3 hours
HEAD_LAG = 2  # segments to stay behind the live edge


def start_index(head_sequence_number: int) -> int:
    """Index to start reading from, kept ``HEAD_LAG`` behind the head."""
    return max(head_sequence_number - HEAD_LAG, 0)


class Refresher:
    def __init__(
        self,
        identifier: str,
        resolver: Resolver,
        state: StreamState,
        *,
        attempts: int = REFRESH_ATTEMPTS,
        backoff_step: float = REFRESH_BACKOFF_STEP,
        interval: float = REFRESH_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self.identifier = identifier
        self.resolver = resolver
        self.state = state
        self.attempts = attempts
        self.backoff_step = backoff_step
        self.interval = interval
        self._sleep = sleep

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._count_lock = threading.Lock()
        self._refresh_count = 0

    @property
    def refresh_count(self) -> int:
        """Number of refreshes that installed a new address."""
        with self._count_lock:
            return self._refresh_count

    def refresh(self) -> None:
        """
        Consult the resolver once and install the result.

        Raises :class:`StreamNotLive` (after flagging the state) when the
        stream has ended, :class:`ResolverError` on any other failure.
        """
        resolution = self.resolver.resolve(self.identifier)
        if resolution is None:
            self.state.mark_over()
            raise StreamNotLive()

        index = start_index(resolution.head_sequence_number)
        self.state.install(resolution.url, index)
        with self._count_lock:
            self._refresh_count += 1
        logger.info("Refreshed URL, current segment=%d", index)

    def refresh_retry(self) -> None:
        """
        :meth:`refresh` with linear back-off: 0, 5, 10, 15, 20 s.

        ``StreamNotLive`` is re-raised at once; after the last failed attempt
        the last ``ResolverError`` is raised.
        """
        last = ResolverError("no refresh attempted")
        for attempt in range(self.attempts):
            try:
                self.refresh()
                return
            except ResolverError as exc:
                last = exc
            logger.warning(
                "Refresh failed (try %d/%d): %s", attempt + 1, self.attempts, last
            )
            self._sleep(attempt * self.backoff_step)
        raise last

    # ---------- background thread ----------
    def start_refreshing(self) -> threading.Thread:
        """Start the proactive refresh loop in a daemon thread."""
        if self._thread and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.refresh_loop, name="refresher", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        self._stop.set()

    def refresh_loop(self) -> None:
        """Refresh every ``interval`` seconds until a refresh fails or ``stop()``."""
        logger.info("Refreshing playback URL every %.0f minutes", self.interval / 60)
        while not self._stop.wait(self.interval):
            try:
                self.refresh_retry()
            except StreamNotLive:
                logger.warning("Stream not live anymore, background refresh stopped")
                return
            except ResolverError as exc:
                logger.error("Failed to refresh URL, background refresh stopped: %s", exc)
                return
            logger.info("Successfully refreshed playback URL")
