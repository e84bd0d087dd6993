from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


_BOOTSTRAP_ENV = "KAFKA_BOOTSTRAP_SERVERS"
_TOPIC_ENV = "KAFKA_TOPIC"
_SECURITY_PROTOCOL_ENV = "KAFKA_SECURITY_PROTOCOL"
_SSL_CERT_ENV = "KAFKA_SSL_CERT_PATH"
_SSL_KEY_ENV = "KAFKA_SSL_KEY_PATH"
_SSL_CA_ENV = "KAFKA_SSL_CA_PATH"
_ACKS_ENV = "KAFKA_ACKS"
_MESSAGE_TIMEOUT_ENV = "KAFKA_MESSAGE_TIMEOUT_MS"
_PUBLISH_TIMEOUT_ENV = "PUBLISH_TIMEOUT_SECONDS"
_INTERVAL_ENV = "DISPATCH_INTERVAL_SECONDS"
_STRATEGY_ENV = "DISPATCH_STRATEGY"
_LOCATIONS_ENV = "SENSOR_LOCATIONS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_BOOTSTRAP_SERVERS = "{KAFKA_SERVICE}.aivencloud.com:{PORT}"
DEFAULT_LOCATIONS = ("bedroom", "livingroom")


@dataclass(frozen=True)
class Settings:
    bootstrap_servers: str
    topic: str
    security_protocol: str
    ssl_cert_path: str
    ssl_key_path: str
    ssl_ca_path: str
    acks: str
    message_timeout_ms: int
    publish_timeout: float
    sleep_interval: float
    strategy: str
    sensor_locations: Tuple[str, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_non_negative_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) and parsed >= 0 else default


def _read_locations(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_LOCATIONS_ENV)
    if value is None:
        return default
    locations = tuple(part.strip() for part in value.split(",") if part.strip())
    return locations or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        bootstrap_servers=_read_str_env(_BOOTSTRAP_ENV, DEFAULT_BOOTSTRAP_SERVERS),
        topic=_read_str_env(_TOPIC_ENV, "iot"),
        security_protocol=_read_str_env(_SECURITY_PROTOCOL_ENV, "ssl"),
        ssl_cert_path=_read_str_env(_SSL_CERT_ENV, "service.cert"),
        ssl_key_path=_read_str_env(_SSL_KEY_ENV, "service.key"),
        ssl_ca_path=_read_str_env(_SSL_CA_ENV, "ca.pem"),
        acks=_read_str_env(_ACKS_ENV, "1"),
        message_timeout_ms=_read_positive_int(_MESSAGE_TIMEOUT_ENV, 5000),
        publish_timeout=_read_non_negative_float(_PUBLISH_TIMEOUT_ENV, 5.0),
        sleep_interval=_read_non_negative_float(_INTERVAL_ENV, 5.0),
        strategy=_read_str_env(_STRATEGY_ENV, "concurrent").lower(),
        sensor_locations=_read_locations(DEFAULT_LOCATIONS),
        log_level=_read_log_level("INFO"),
    )
