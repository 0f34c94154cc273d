"""
FFmpeg sink — receives the assembled segment bytes on stdin and publishes them
to an Icecast server.

Design notes
------------
* FFmpeg is spawned once; the reader writes into its stdin and closing stdin
  is the end-of-input signal.
* A monitor thread waits for FFmpeg to exit. An exit before the relay closed
  stdin is fatal: the monitor logs the stderr tail and calls ``on_failure``.
  The CLI makes that terminate the process.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections import deque
from collections.abc import Callable

from .errors import SinkError

logger = logging.getLogger(__name__)

CLOSE_TIMEOUT = 10  # seconds to wait for FFmpeg after end-of-input
STDERR_TAIL_LINES = 20


class FFmpegSink:
    """Wraps a single FFmpeg process fed through stdin."""

    def __init__(
        self,
        server: str,
        keep_aac: bool = False,
        *,
        executable: str = "ffmpeg",
        on_failure: Callable[[int], None] | None = None,
    ) -> None:
        self.server = server
        self.keep_aac = keep_aac
        self.executable = executable
        self.on_failure = on_failure
        self.process: subprocess.Popen | None = None
        self._closing = False
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._monitor_thread: threading.Thread | None = None

    def build_command(self) -> list[str]:
        cmd = [self.executable, "-re", "-i", "-", "-vn"]
        if self.keep_aac:
            cmd += [
                "-content_type",
                "audio/aac",
                "-f",
                "adts",
            ]
        else:
            cmd += [
                "-c:a",
                "libopus",
                "-vbr",
                "on",
                "-b:a",
                "128k",
                "-content_type",
                "audio/ogg",
                "-f",
                "opus",
            ]
        cmd.append(self.server)
        return cmd

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.process and self.process.poll() is None:
            logger.warning("FFmpeg already running — skipping start()")
            return
        cmd = self.build_command()
        logger.info("Starting FFmpeg (%s)", "aac passthrough" if self.keep_aac else "opus")
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise SinkError(f"Unable to start {self.executable}: {exc}") from exc

        self._closing = False
        self._monitor_thread = threading.Thread(
            target=self._monitor, name="ffmpeg-monitor", daemon=True
        )
        self._monitor_thread.start()

    def write(self, data: bytes) -> int:
        proc = self.process
        if proc is None or proc.stdin is None:
            raise SinkError("FFmpeg is not running")
        try:
            proc.stdin.write(data)
            proc.stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as exc:
            raise SinkError(f"FFmpeg stopped accepting input: {exc}") from exc
        return len(data)

    def close(self) -> int | None:
        """Signal end-of-input and wait for FFmpeg. Returns its exit code."""
        proc = self.process
        if proc is None:
            return None
        self._closing = True
        if proc.stdin:
            try:
                proc.stdin.close()
            except OSError:
                pass
        try:
            ret = proc.wait(timeout=CLOSE_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("FFmpeg did not exit %ds after end of input, killing", CLOSE_TIMEOUT)
            proc.kill()
            ret = proc.wait()
        logger.info("FFmpeg exited with code %d", ret)
        return ret

    # ---------- monitor thread ----------
    def _monitor(self) -> None:
        """Drain stderr, wait for FFmpeg to exit and report unexpected exits."""
        proc = self.process
        if not proc:
            return
        if proc.stderr:
            for raw in proc.stderr:
                line = raw.decode(errors="replace").rstrip()
                if line:
                    self._stderr_tail.append(line)
        ret = proc.wait()

        if ret == 0 and self._closing:
            return
        if self._closing:
            logger.warning("FFmpeg exited code %d after end of input", ret)
            return

        logger.error(
            "FFmpeg failed (code %d). stderr: %s",
            ret,
            self.stderr_tail.replace("\n", " ")[-500:],
        )
        if self.on_failure:
            self.on_failure(ret)
