"""Test fixtures for multipart-downloader unit tests."""

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import pytest

from multipart_downloader.core.lifespan import State

BOUNDARY = "----WebKitFormBoundary7MA4YWxkTrZu0gW"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request."""

    _data: dict = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


@dataclass
class MockRequest:
    """Mock Request object for Robyn."""

    body: bytes | str = b""
    headers: MockHeaders = field(default_factory=MockHeaders)
    method: str = "POST"
    path: str = "/"


# -----------------------------------------------------------------------------
# Byte sources
# -----------------------------------------------------------------------------


class FailingSource:
    """Serves ``data`` up to ``fail_at`` bytes, then raises ``error`` on the next read."""

    def __init__(self, data: bytes, fail_at: int, error: BaseException) -> None:
        self.data = data
        self.fail_at = fail_at
        self.error = error
        self.position = 0
        self.reads = 0

    def read(self, size: int, /) -> bytes:
        self.reads += 1
        if self.position >= self.fail_at:
            raise self.error
        chunk = self.data[self.position : min(self.position + size, self.fail_at)]
        self.position += len(chunk)
        return chunk


# -----------------------------------------------------------------------------
# Multipart bodies
# -----------------------------------------------------------------------------


def build_multipart(
    parts: Sequence[tuple[str, bytes]],
    boundary: str = BOUNDARY,
    terminal: bool = True,
    preamble: bytes = b"",
) -> bytes:
    """Encode ``(file_name, data)`` parts the way browsers send file inputs."""
    delimiter = b"--" + boundary.encode()
    body = preamble + delimiter
    for index, (file_name, data) in enumerate(parts):
        body += (
            b"\r\nContent-Disposition: form-data; name=\"file%d\"; filename=\"%s\"\r\n"
            b"Content-Type: application/octet-stream\r\n\r\n" % (index, file_name.encode())
        )
        body += data + b"\r\n" + delimiter
    return body + (b"--\r\n" if terminal else b"\r\n")


@pytest.fixture
def make_body() -> Callable[..., bytes]:
    """Factory fixture building multipart bodies."""
    return build_multipart


@pytest.fixture
def boundary() -> str:
    return BOUNDARY


@pytest.fixture
def content_type() -> str:
    return CONTENT_TYPE


@pytest.fixture
def make_failing_source() -> Callable[..., FailingSource]:
    return FailingSource


@pytest.fixture
def payload() -> bytes:
    """Deterministic binary file contents spanning many packets."""
    return random.Random(7).randbytes(5000)


@pytest.fixture
def output_dir(tmp_path):
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


# -----------------------------------------------------------------------------
# State fixture
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_state() -> State:
    """Create a test state container."""
    return State()


@pytest.fixture
def global_dependencies(test_state: State) -> dict:
    """Setup global dependencies for tests."""
    yield {"state": test_state}
    test_state.clear()


@pytest.fixture
def make_mock_request() -> Callable[..., MockRequest]:
    """Factory fixture to create upload requests."""

    def _make(body: bytes | str = b"", content_type: str = CONTENT_TYPE) -> MockRequest:
        return MockRequest(body=body, headers=MockHeaders({"content-type": content_type}))

    return _make
