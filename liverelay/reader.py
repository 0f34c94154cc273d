"""
Live reader — follows the live edge segment by segment and forwards each
segment to the sink in order.

State machine
-------------
``INITIALIZING``  blocking refresh; any failure, "not live" included, is fatal.
``STREAMING``     fetch ``<base>/sq/<index>``; success advances the index.
``RECOVERING_VIA_REFRESH``
                  blocking refresh after the fetcher gave up. A transient
                  refresh failure goes back to ``STREAMING`` with whatever the
                  shared state holds; only "not live" ends the loop.
``TERMINATED_NOT_LIVE`` / ``TERMINATED_FATAL``
                  terminal; the sink is closed and the refresher stopped.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from .errors import ResolverError, StreamNotLive
from .fetcher import SegmentFetcher, SegmentStatus
from .refresher import Refresher
from .state import StreamState, segment_url

logger = logging.getLogger(__name__)


class Sink(Protocol):
    def write(self, data: bytes) -> object: ...

    def close(self) -> object: ...


class ReaderState(enum.Enum):
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    RECOVERING_VIA_REFRESH = "recovering"
    TERMINATED_NOT_LIVE = "ended"
    TERMINATED_FATAL = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ReaderState.TERMINATED_NOT_LIVE, ReaderState.TERMINATED_FATAL)


@dataclass(frozen=True)
class ReaderStatus:
    state: ReaderState
    base_url: str
    next_segment_index: int
    segments_forwarded: int
    bytes_forwarded: int
    refreshes: int


class _CountingSink:
    """Counts bytes that actually reached the sink."""

    def __init__(self, sink: Sink, on_write: Callable[[int], None]) -> None:
        self._sink = sink
        self._on_write = on_write

    def write(self, data: bytes) -> None:
        self._sink.write(data)
        self._on_write(len(data))


class LiveReader:
    """Owns the main relay loop for one stream."""

    def __init__(
        self,
        state: StreamState,
        refresher: Refresher,
        fetcher: SegmentFetcher,
    ) -> None:
        self.state = state
        self.refresher = refresher
        self.fetcher = fetcher

        self._stats_lock = threading.Lock()
        self._reader_state = ReaderState.INITIALIZING
        self._segments_forwarded = 0
        self._bytes_forwarded = 0

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    @property
    def reader_state(self) -> ReaderState:
        with self._stats_lock:
            return self._reader_state

    def status(self) -> ReaderStatus:
        snap = self.state.snapshot()
        refreshes = self.refresher.refresh_count
        with self._stats_lock:
            return ReaderStatus(
                state=self._reader_state,
                base_url=snap.base_url,
                next_segment_index=snap.next_segment_index,
                segments_forwarded=self._segments_forwarded,
                bytes_forwarded=self._bytes_forwarded,
                refreshes=refreshes,
            )

    def _count_bytes(self, n: int) -> None:
        with self._stats_lock:
            self._bytes_forwarded += n

    def _transition(self, new: ReaderState) -> None:
        with self._stats_lock:
            old, self._reader_state = self._reader_state, new
        if old is not new:
            logger.debug("Reader %s → %s", old.value, new.value)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def run(self, sink: Sink) -> ReaderState:
        """
        Relay segments into *sink* until the stream ends.

        Returns ``TERMINATED_NOT_LIVE`` once a recovery refresh reports the
        stream over. Fatal conditions (initial refresh failing for any
        reason, sink failure) re-raise after the reader has moved to
        ``TERMINATED_FATAL``. The sink is closed either way.
        """
        try:
            self._initialize()
            return self._stream(_CountingSink(sink, self._count_bytes))
        except BaseException:
            self._transition(ReaderState.TERMINATED_FATAL)
            raise
        finally:
            self.refresher.stop()
            sink.close()

    def _initialize(self) -> None:
        self._transition(ReaderState.INITIALIZING)
        self.refresher.refresh_retry()
        self.refresher.start_refreshing()
        self._transition(ReaderState.STREAMING)

    def _stream(self, out: _CountingSink) -> ReaderState:
        while True:
            snap = self.state.snapshot()
            url = segment_url(snap.base_url, snap.next_segment_index)
            outcome = self.fetcher.read_segment(url, out)

            if outcome.status is SegmentStatus.SUCCESS:
                self.state.advance()
                with self._stats_lock:
                    self._segments_forwarded += 1
                continue

            if outcome.status is SegmentStatus.NOT_YET_AVAILABLE:
                logger.warning("Could not find segment in time, forcing refresh")
            else:
                logger.warning("Could not download segment, forcing refresh: %s", outcome.cause)

            self._transition(ReaderState.RECOVERING_VIA_REFRESH)
            try:
                self.refresher.refresh_retry()
            except StreamNotLive:
                logger.info("Stream is not live anymore, stopping")
                self._transition(ReaderState.TERMINATED_NOT_LIVE)
                return ReaderState.TERMINATED_NOT_LIVE
            except ResolverError as exc:
                # Retries the same stale segment; the background refresher
                # may install a fresh address meanwhile.
                logger.error("Refresh failed: %s", exc)
            self._transition(ReaderState.STREAMING)
