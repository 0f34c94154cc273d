"""
Segment fetcher — downloads one numbered segment and streams it straight into
the sink.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import requests

logger = logging.getLogger(__name__)

SEGMENT_ATTEMPTS = 15
SEGMENT_RETRY_DELAY = 1  # seconds
SEGMENT_TIMEOUT = (10, 30)  # (connect, read) seconds
CHUNK_SIZE = 64 * 1024


class Writer(Protocol):
    def write(self, data: bytes) -> object: ...


class SegmentStatus(enum.Enum):
    SUCCESS = "success"
    NOT_YET_AVAILABLE = "not_yet_available"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class SegmentOutcome:
    status: SegmentStatus
    bytes_written: int = 0
    cause: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SegmentStatus.SUCCESS

    @classmethod
    def success(cls, bytes_written: int) -> SegmentOutcome:
        return cls(SegmentStatus.SUCCESS, bytes_written=bytes_written)

    @classmethod
    def not_yet_available(cls) -> SegmentOutcome:
        return cls(SegmentStatus.NOT_YET_AVAILABLE, cause="Segment does not exist (404)")

    @classmethod
    def transient_failure(cls, cause: str) -> SegmentOutcome:
        return cls(SegmentStatus.TRANSIENT_FAILURE, cause=cause)


class SegmentFetcher:
    """Fetch segments with a fixed short retry delay.

    The origin usually publishes a missing segment within a few seconds, so
    there is no back-off growth.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        attempts: int = SEGMENT_ATTEMPTS,
        retry_delay: float = SEGMENT_RETRY_DELAY,
        timeout: float | tuple[float, float] = SEGMENT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session or requests.Session()
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    def fetch_once(self, url: str, out: Writer) -> SegmentOutcome:
        """One GET of *url*. Sink errors propagate, everything else is classified."""
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            return SegmentOutcome.transient_failure(str(exc))

        with response:
            if response.status_code == 404:
                return SegmentOutcome.not_yet_available()
            if response.status_code != 200:
                return SegmentOutcome.transient_failure(
                    f"Non-200 response code {response.status_code}"
                )
            written = 0
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        out.write(chunk)
                        written += len(chunk)
            except requests.RequestException as exc:
                if not written:
                    return SegmentOutcome.transient_failure(str(exc))
                # Bytes already forwarded cannot be taken back; fetching the
                # segment again would repeat them.
                logger.warning("Segment %s truncated after %d bytes: %s", url, written, exc)
            return SegmentOutcome.success(written)

    def read_segment(self, url: str, out: Writer) -> SegmentOutcome:
        """Fetch *url* into *out*, up to ``attempts`` times."""
        last = SegmentOutcome.transient_failure("no attempt made")
        for attempt in range(self.attempts):
            last = self.fetch_once(url, out)
            if last.ok:
                return last
            logger.debug(
                "Segment %s attempt %d/%d: %s", url, attempt + 1, self.attempts, last.cause
            )
            self._sleep(self.retry_delay)
        return last
