"""
CollectorForwarder - pushes records to a Fluentd-compatible collector.

Records are sent with the Forward protocol, one msgpack-encoded
``[tag, time, record]`` message per record. A connection is opened for a
single flush and closed once all of its records are sent:

    with CollectorForwarder("127.0.0.1", 24224) as forwarder:
        forwarder.post("checkout.42", {"level": "error", "msg": "boom"})
"""

import logging
import socket
import time
from typing import Any, Dict, Optional

import msgpack

from .config import DEFAULT_COLLECTOR_HOST, DEFAULT_COLLECTOR_PORT, DEFAULT_TIMEOUT_S
from .errors import CollectorError

logger = logging.getLogger(__name__)


class CollectorForwarder:
    """Per-flush connection to a push collector."""

    def __init__(
        self,
        host: str = DEFAULT_COLLECTOR_HOST,
        port: int = DEFAULT_COLLECTOR_PORT,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self._socket: Optional[socket.socket] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        if self._socket is not None:
            return
        try:
            self._socket = socket.create_connection((self.host, self.port), timeout=self.timeout_s)
        except OSError as e:
            raise CollectorError(self.address, str(e)) from e
        logger.debug(f"Connected to collector {self.address}")

    def post(self, tag: str, record: Dict[str, Any]) -> None:
        """
        Send one record tagged with ``tag``.

        Raises:
            CollectorError: If not connected or the send fails
        """
        if self._socket is None:
            raise CollectorError(self.address, "not connected")

        message = msgpack.packb([tag, int(time.time()), record], default=str)
        try:
            self._socket.sendall(message)
        except OSError as e:
            self.close()
            raise CollectorError(self.address, str(e)) from e

    def close(self) -> None:
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError as e:
            logger.warning(f"Error closing collector connection {self.address}: {e}")
        finally:
            self._socket = None

    def __enter__(self) -> "CollectorForwarder":
        self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()
