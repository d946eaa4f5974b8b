from __future__ import annotations

import gzip
from unittest.mock import MagicMock

import httpx
import pytest

MANUF_URL = "https://downloads.example.test/manuf.gz"

SAMPLE_MANUF = (
    "# This file was generated by TShark\n"
    "#\n"
    "\n"
    "00:00:0C\tCisco\tCisco Systems, Inc\n"
    "00:00:0C/16\tEarlyCisco\tEarly cards\n"
    "00:1B:C5\tIEEERegi\tIEEE Registration Authority\n"
    "00:1B:C5:00:00:00/36\tConverg\tConverging Systems Inc.\n"
    "00:1B:C5:00:10:00/36\tQuantumI\tQuantum Integrated Systems\n"
    "AC-DE-48\tPrivate\n"
    "08.00.2B   DEC   Digital Equipment Corporation\n"
    "this-is-not-a-prefix\tBroken\n"
    "00:00:01\n"
)


@pytest.fixture
def manuf_text() -> str:
    return SAMPLE_MANUF


@pytest.fixture
def manuf_gz() -> bytes:
    return gzip.compress(SAMPLE_MANUF.encode("utf-8"))


@pytest.fixture
def manuf_file(tmp_path, manuf_gz):
    """A gzip manuf file on disk, as the downloader leaves it."""
    path = tmp_path / "data" / "manuf.gz"
    path.parent.mkdir()
    path.write_bytes(manuf_gz)
    return path


class FakeServer:
    """Counts requests and answers them with a configurable response."""

    def __init__(self, status: int = 200, body: bytes = b"") -> None:
        self.status = status
        self.body = body
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, content=self.body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def server(manuf_gz) -> FakeServer:
    return FakeServer(body=manuf_gz)


@pytest.fixture
def scheduler() -> MagicMock:
    """Stand-in for a BackgroundScheduler; every add_job returns a new job."""
    sched = MagicMock()
    sched.running = True
    sched.add_job.side_effect = lambda *args, **kwargs: MagicMock(next_run_time=None)
    return sched



@pytest.fixture
def manuf_url() -> str:
    return MANUF_URL
