"""
Configuration for buffers and their flush destinations.

Configuration is supplied programmatically by the embedding application,
either by building the dataclasses directly or by loading a YAML/JSON file:

    max_buffers: 200
    max_files: 20
    sink:
      kind: object_store
      bucket: my-error-logs
      region: eu-west-1
"""

import json
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

DEFAULT_MAX_BUFFERS = 200
DEFAULT_MAX_FILES = 20
DEFAULT_COLLECTOR_HOST = "127.0.0.1"
DEFAULT_COLLECTOR_PORT = 24224
DEFAULT_TIMEOUT_S = 10.0


class SinkKind(Enum):
    """Destination a dirty buffer is flushed to."""
    LOCAL_FILE = "local_file"
    OBJECT_STORE = "object_store"
    PUSH_COLLECTOR = "push_collector"


@dataclass(frozen=True)
class SinkConfig:
    """
    Destination parameters bound to a buffer at creation.

    Attributes:
        kind: Which sink the buffer is flushed to
        base_path: Directory for local log files
        bucket: Object store bucket name
        region: Object store region
        prefix: Optional key prefix within the bucket
        collector_host: Push collector host
        collector_port: Push collector port
        timeout_s: Deadline for remote calls, in seconds
    """
    kind: SinkKind = SinkKind.LOCAL_FILE
    base_path: Optional[Path] = None
    bucket: str = ""
    region: str = "us-east-1"
    prefix: str = ""
    collector_host: str = DEFAULT_COLLECTOR_HOST
    collector_port: int = DEFAULT_COLLECTOR_PORT
    timeout_s: float = DEFAULT_TIMEOUT_S

    def validate(self) -> "SinkConfig":
        """Check that the address fields required by ``kind`` are set."""
        if self.kind is SinkKind.LOCAL_FILE and self.base_path is None:
            raise ValueError("local_file sink requires base_path")
        if self.kind is SinkKind.OBJECT_STORE and not self.bucket:
            raise ValueError("object_store sink requires bucket")
        if self.kind is SinkKind.PUSH_COLLECTOR:
            if not self.collector_host or self.collector_port <= 0:
                raise ValueError("push_collector sink requires collector_host and collector_port")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive, got {self.timeout_s}")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SinkConfig":
        """Build a SinkConfig from a plain mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "kind" in values:
            values["kind"] = SinkKind(values["kind"])
        if values.get("base_path") is not None:
            values["base_path"] = Path(values["base_path"])
        return cls(**values)


@dataclass
class FlushlogConfig:
    """Process-wide tunables, set once at startup."""
    max_buffers: int = DEFAULT_MAX_BUFFERS
    max_files: int = DEFAULT_MAX_FILES
    log_level: int = logging.DEBUG
    echo_stdout: bool = True
    sink: SinkConfig = field(default_factory=SinkConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlushlogConfig":
        """Build a FlushlogConfig from a plain mapping, ignoring unknown keys."""
        config = cls()
        if "max_buffers" in data:
            config.max_buffers = int(data["max_buffers"])
        if "max_files" in data:
            config.max_files = int(data["max_files"])
        if "log_level" in data:
            level = data["log_level"]
            if isinstance(level, str):
                level = logging.getLevelName(level.upper())
                if not isinstance(level, int):
                    raise ValueError(f"Unknown log level: {data['log_level']}")
            config.log_level = int(level)
        if "echo_stdout" in data:
            config.echo_stdout = bool(data["echo_stdout"])
        if data.get("sink"):
            config.sink = SinkConfig.from_dict(data["sink"])
        return config


def load_config(config_path: Union[str, Path]) -> FlushlogConfig:
    """
    Load configuration from a YAML or JSON file.

    Args:
        config_path: Path to a ``.yaml``/``.yml`` or ``.json`` file

    Returns:
        FlushlogConfig instance

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file does not hold a mapping
    """
    path = Path(config_path)
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return FlushlogConfig.from_dict(data)
