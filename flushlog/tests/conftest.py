"""Pytest fixtures for flushlog tests."""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from flushlog.config import SinkConfig, SinkKind
from flushlog.errors import CollectorError
from flushlog.flush import FlushEngine
from flushlog.pool import BufferPool


class FakeForwarder:
    """Records posted records instead of sending them.

    Fails on the post with index ``fail_at`` when set.
    """

    def __init__(self, fail_at: Optional[int] = None, fail_connect: bool = False):
        self.fail_at = fail_at
        self.fail_connect = fail_connect
        self.posted: List[Tuple[str, Dict[str, Any]]] = []
        self.opened = 0
        self.closed = 0

    @property
    def address(self) -> str:
        return "fake:24224"

    def __enter__(self) -> "FakeForwarder":
        if self.fail_connect:
            raise CollectorError(self.address, "connection refused")
        self.opened += 1
        return self

    def __exit__(self, *args) -> None:
        self.closed += 1

    def post(self, tag: str, record: Dict[str, Any]) -> None:
        if self.fail_at is not None and len(self.posted) == self.fail_at:
            raise CollectorError(self.address, "broken pipe")
        self.posted.append((tag, record))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def file_sink(temp_dir):
    """SinkConfig writing local files into temp_dir."""
    return SinkConfig(kind=SinkKind.LOCAL_FILE, base_path=temp_dir)


@pytest.fixture
def s3_sink():
    return SinkConfig(kind=SinkKind.OBJECT_STORE, bucket="test-bucket", region="us-east-1")


@pytest.fixture
def collector_sink():
    return SinkConfig(kind=SinkKind.PUSH_COLLECTOR, collector_host="127.0.0.1", collector_port=24224)


@pytest.fixture
def pool():
    """A small pool that does not echo records to stdout."""
    return BufferPool(capacity=10, echo_stdout=False)


@pytest.fixture
def forwarder():
    return FakeForwarder()


@pytest.fixture
def engine(forwarder):
    """FlushEngine whose collector connections go to a FakeForwarder."""
    return FlushEngine(max_files=5, forwarder_factory=lambda sink: forwarder)
