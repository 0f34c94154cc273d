"""
Shared stream state — the single record the reader and the refresher both
mutate.

Lock discipline
---------------
* Every read and write goes through one ``threading.Lock``.
* Readers copy the fields out with :meth:`StreamState.snapshot`; nothing keeps
  a reference to the live record outside the lock.
* No network I/O, sleeping or logging happens while the lock is held.
* :meth:`StreamState.install` replaces base URL and index in one lock scope,
  so a half-updated record is never observable.
* Once :meth:`StreamState.mark_over` has been called the flag stays set.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class StreamSnapshot:
    base_url: str
    next_segment_index: int
    is_definitively_over: bool


def segment_url(base_url: str, index: int) -> str:
    """Return the address of segment *index* under *base_url*."""
    if base_url.endswith("/"):
        return f"{base_url}sq/{index}"
    return f"{base_url}/sq/{index}"


class StreamState:
    """Base URL, next segment index and liveness flag behind one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._base_url = ""
        self._next_segment_index = 0
        self._is_definitively_over = False

    def snapshot(self) -> StreamSnapshot:
        with self._lock:
            return StreamSnapshot(
                base_url=self._base_url,
                next_segment_index=self._next_segment_index,
                is_definitively_over=self._is_definitively_over,
            )

    def install(self, base_url: str, next_segment_index: int) -> None:
        """Replace the whole record. Last writer wins."""
        if next_segment_index < 0:
            raise ValueError(f"segment index must be >= 0, got {next_segment_index}")
        with self._lock:
            self._base_url = base_url
            self._next_segment_index = next_segment_index

    def advance(self) -> int:
        """Move to the next segment and return the new index."""
        with self._lock:
            self._next_segment_index += 1
            return self._next_segment_index

    def mark_over(self) -> None:
        with self._lock:
            self._is_definitively_over = True
