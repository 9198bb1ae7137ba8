"""
Configuration Dataclasses

Settings for one Consul-backed configuration source: which key to load,
how to reach the agent, and the hooks the host supplies for error handling.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

import yaml

from .exceptions import ConsulConfigError

DEFAULT_CONSUL_ADDRESS = "http://127.0.0.1:8500"
# Consul caps blocking queries at 10 minutes; 5 minutes is its default
DEFAULT_WATCH_WAIT_S = 300.0
DEFAULT_REQUEST_TIMEOUT_S = 10.0
# Delay between failed watch polls when the host supplies no backoff
DEFAULT_WATCH_BACKOFF = timedelta(seconds=5)
MIN_WATCH_BACKOFF_S = 0.1


@dataclass
class ConsulClientConfiguration:
    """Connection settings for the Consul HTTP API"""
    address: str = DEFAULT_CONSUL_ADDRESS
    token: str | None = None
    datacenter: str | None = None
    wait_time_s: float = DEFAULT_WATCH_WAIT_S  # Max block per long-poll
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S


def parse_json(data: bytes) -> dict[str, Any]:
    """Default parser: decode the raw value as a JSON object"""
    if not data:
        return {}
    parsed = json.loads(data)
    if not isinstance(parsed, dict):
        raise ConsulConfigError("Configuration value must be a JSON object")
    return parsed


def default_watch_backoff(context: Any) -> timedelta:
    """Fixed delay applied after a failed watch poll"""
    return DEFAULT_WATCH_BACKOFF


@dataclass
class ConsulConfigSource:
    """A single Consul key used as a configuration source"""
    key: str
    optional: bool = False
    reload_on_change: bool = False

    # Leading part of the key left out of configuration paths; None drops the whole key
    key_to_remove: str | None = None

    # Set during shutdown; aborts loads and in-flight long-polls
    cancellation: asyncio.Event = field(default_factory=asyncio.Event)

    # Client override hooks
    consul_configuration_options: Callable[[ConsulClientConfiguration], None] | None = None
    http_client_options: Callable[[dict[str, Any]], None] | None = None

    # Error handling hooks
    on_load_exception: Callable[[Any], None] | None = None
    on_watch_exception: Callable[[Any], timedelta] = default_watch_backoff
    min_watch_backoff_s: float = MIN_WATCH_BACKOFF_S

    parser: Callable[[bytes], dict[str, Any]] = parse_json

    def build_client_configuration(self) -> ConsulClientConfiguration:
        """Default client settings with the override hook applied"""
        client_config = ConsulClientConfiguration()
        if self.consul_configuration_options:
            self.consul_configuration_options(client_config)
        return client_config


def load_source_config(path: str | Path) -> ConsulConfigSource:
    """
    Load a ConsulConfigSource from a YAML file.

    Expected layout:
        key: app/config
        optional: false
        reload_on_change: true
        key_to_remove: app/
        consul:
          address: http://127.0.0.1:8500
          token: ...
          datacenter: dc1
          watch_wait_s: 300

    CONSUL_HTTP_ADDR, CONSUL_HTTP_TOKEN and CONSUL_CONFIG_KEY override the
    file values.
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConsulConfigError(f"Config file not found: {path}", recoverable=False)
    except yaml.YAMLError as e:
        raise ConsulConfigError(f"Error parsing config {path}: {e}", recoverable=False)

    return load_source_config_dict(data)


def load_source_config_dict(data: dict) -> ConsulConfigSource:
    """Build a ConsulConfigSource from a dictionary (e.g., parsed YAML)"""
    consul_data = data.get("consul", {}) or {}

    key = os.environ.get("CONSUL_CONFIG_KEY") or data.get("key")
    if not key:
        raise ConsulConfigError("No configuration key specified", recoverable=False)

    address = os.environ.get("CONSUL_HTTP_ADDR") or consul_data.get("address")
    token = os.environ.get("CONSUL_HTTP_TOKEN") or consul_data.get("token")
    datacenter = consul_data.get("datacenter")
    wait_s = consul_data.get("watch_wait_s")
    timeout_s = consul_data.get("request_timeout_s")

    def apply_options(client_config: ConsulClientConfiguration) -> None:
        if address:
            # CONSUL_HTTP_ADDR is commonly given without a scheme
            client_config.address = address if "://" in address else f"http://{address}"
        if token:
            client_config.token = token
        if datacenter:
            client_config.datacenter = datacenter
        if wait_s is not None:
            client_config.wait_time_s = float(wait_s)
        if timeout_s is not None:
            client_config.request_timeout_s = float(timeout_s)

    return ConsulConfigSource(
        key=key,
        optional=bool(data.get("optional", False)),
        reload_on_change=bool(data.get("reload_on_change", False)),
        key_to_remove=data.get("key_to_remove"),
        consul_configuration_options=apply_options,
    )
