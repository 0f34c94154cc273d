"""
Tests for the yt-dlp resolver.
"""

import subprocess

import pytest
import requests

from conftest import FakeResponse, FakeSession
from liverelay import resolver as resolver_mod
from liverelay.errors import ResolverError
from liverelay.resolver import Resolution, YtDlpResolver

BASE = "https://rr1.googlevideo.com/videoplayback/id/abc"


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def run_result(monkeypatch):
    """Replace subprocess.run; set ``holder["result"]`` to a result or exception."""
    holder = {"result": completed(), "cmd": None}

    def fake_run(cmd, **kwargs):
        holder["cmd"] = cmd
        result = holder["result"]
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(resolver_mod.subprocess, "run", fake_run)
    return holder


def test_command_filters_live_dash_audio():
    cmd = YtDlpResolver(session=FakeSession()).build_command("jfKfPfyJRdk")
    assert cmd[0] == "yt-dlp"
    assert "is_live" in cmd
    assert "bestaudio[protocol=http_dash_segments]" in cmd
    assert cmd[-2:] == ["--", "jfKfPfyJRdk"]


def test_resolve_reads_head_seqnum(run_result):
    run_result["result"] = completed(stdout=BASE + "\r\n")
    session = FakeSession({BASE: [FakeResponse(200, headers={"X-Head-Seqnum": "1234"})]})

    result = YtDlpResolver(session=session).resolve("jfKfPfyJRdk")

    assert result == Resolution(url=BASE, head_sequence_number=1234)
    assert session.requests == [BASE]


def test_empty_output_means_not_live(run_result):
    run_result["result"] = completed(stdout="\n")
    session = FakeSession()

    assert YtDlpResolver(session=session).resolve("jfKfPfyJRdk") is None
    assert session.requests == []


def test_ytdlp_failure_is_transient(run_result):
    run_result["result"] = completed(returncode=1, stderr="ERROR: network")
    with pytest.raises(ResolverError, match="rc=1"):
        YtDlpResolver(session=FakeSession()).resolve("x")


def test_ytdlp_timeout_is_transient(run_result):
    run_result["result"] = subprocess.TimeoutExpired(cmd="yt-dlp", timeout=60)
    with pytest.raises(ResolverError, match="timed out"):
        YtDlpResolver(session=FakeSession()).resolve("x")


def test_missing_ytdlp_is_transient(run_result):
    run_result["result"] = FileNotFoundError("yt-dlp")
    with pytest.raises(ResolverError, match="not installed"):
        YtDlpResolver(session=FakeSession()).resolve("x")


@pytest.mark.parametrize("header", [{}, {"X-Head-Seqnum": "abc"}, {"X-Head-Seqnum": "-4"}])
def test_bad_head_header_is_transient(run_result, header):
    run_result["result"] = completed(stdout=BASE)
    session = FakeSession({BASE: [FakeResponse(200, headers=header)]})
    with pytest.raises(ResolverError, match="X-Head-Seqnum"):
        YtDlpResolver(session=session).resolve("x")


def test_head_request_error_is_transient(run_result):
    run_result["result"] = completed(stdout=BASE)
    session = FakeSession({BASE: [requests.Timeout("slow")]})
    with pytest.raises(ResolverError, match="Head request failed"):
        YtDlpResolver(session=session).resolve("x")


def write_script(path, body, executable=True):
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755 if executable else 0o644)
    return str(path)


def test_undecodable_ytdlp_output_is_transient(tmp_path):
    script = write_script(tmp_path / "yt-dlp", r"printf '\377\376' >&2; exit 1")
    with pytest.raises(ResolverError, match="rc=1"):
        YtDlpResolver(executable=script, session=FakeSession()).resolve("x")


def test_non_executable_ytdlp_is_transient(tmp_path):
    script = write_script(tmp_path / "yt-dlp", "exit 0", executable=False)
    with pytest.raises(ResolverError, match="Unable to run"):
        YtDlpResolver(executable=script, session=FakeSession()).resolve("x")
