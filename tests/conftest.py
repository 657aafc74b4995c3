"""Shared fixtures: a pipeline config rooted in tmp_path, fake renderers, fake HTTP."""

import stat
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from api.config import PipelineConfig
from api.notify import Notifier
from api.records import JobSpec
from api.store import RelayJobStore

ARCHIVE_URL = "http://archives.test/talk.tar"
CALLBACK_URL = "http://callback.test/hook"

RENDER_OK = """#!/bin/sh
out=""
for arg in "$@"; do
  case "$arg" in
    -o*) out="${arg#-o}" ;;
  esac
done
echo "loading archive"
echo '{"progress": {"complete": 5, "total": 10}}'
echo "decoder warning" >&2
echo '{"progress": {"complete": 10, "total": 10}}'
printf 'video' > "$out"
exit 0
"""

RENDER_EXIT_2 = """#!/bin/sh
echo '{"progress": {"complete": 3, "total": 10}}'
echo "bad archive" >&2
exit 2
"""


def write_script(path: Path, body: str) -> Path:
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def render_ok(tmp_path):
    return write_script(tmp_path / "render-ok.sh", RENDER_OK)


@pytest.fixture
def render_fail(tmp_path):
    return write_script(tmp_path / "render-fail.sh", RENDER_EXIT_2)


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def config(workdir, render_ok):
    return PipelineConfig(
        renderer_path=str(render_ok),
        workdir=workdir,
        s3_bucket="renders",
        s3_prefix="videos",
        progress_min_step=0.0,
    )


@pytest.fixture
def spec():
    return JobSpec(
        job_id="job-1",
        archive_url=ARCHIVE_URL,
        width=640,
        height=480,
        preset="default",
        callback_url=CALLBACK_URL,
    )


class FakeHTTP:
    """Records every request and answers from a per-host table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.archive = b"x" * 4096
        self.archive_status = 200
        self.unreachable = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "archives.test":
            if self.unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(self.archive_status, content=self.archive)
        return httpx.Response(200, json={})

    def posts_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST" and r.url.host == host]


@pytest.fixture
def fake_http():
    return FakeHTTP()


@pytest.fixture
def http_client(fake_http):
    with httpx.Client(transport=httpx.MockTransport(fake_http.handler)) as client:
        yield client


@pytest.fixture
def s3_client():
    return MagicMock()


class RecordingStore(RelayJobStore):
    """In-memory store that remembers every progress value it accepted."""

    def __init__(self, job_id):
        super().__init__(job_id, Notifier(MagicMock()))
        self.progress_writes: list[float] = []

    def set_progress(self, job_id, value):
        applied = super().set_progress(job_id, value)
        if applied:
            self.progress_writes.append(value)
        return applied


@pytest.fixture
def store(spec):
    return RecordingStore(spec.job_id)
