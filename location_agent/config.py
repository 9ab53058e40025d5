"""
Configuration for the location telemetry agent.

Two layers:
- Config: agent tuning with safe defaults, loaded from an INI file and
  environment variable overrides.
- DeliveryConfig: immutable endpoint snapshot handed to each flush cycle.
"""
import configparser
import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import structlog

logger = structlog.get_logger()

ALLOWED_METHODS = ('GET', 'POST', 'PUT', 'PATCH')


@dataclass(frozen=True)
class DeliveryConfig:
    """Endpoint URL, HTTP verb, headers, extra payload fields and interval."""

    url: str
    method: str = 'POST'
    headers: Mapping[str, str] = field(default_factory=dict)
    additional_params: Optional[Mapping[str, Any]] = None
    flush_interval_s: float = 300.0

    def __post_init__(self):
        if not self.url:
            raise ValueError("endpoint url is required")

        method = (self.method or 'POST').upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"unsupported HTTP method: {self.method}")

        if self.flush_interval_s <= 0:
            raise ValueError("flush_interval_s must be positive")

        if self.additional_params is not None:
            try:
                json.dumps(dict(self.additional_params))
            except (TypeError, ValueError) as e:
                raise ValueError(f"additional_params must be JSON serializable: {e}") from e

        # Copy caller mappings so later mutation cannot leak into a snapshot
        object.__setattr__(self, 'method', method)
        object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers or {})))
        if self.additional_params is not None:
            object.__setattr__(
                self, 'additional_params', MappingProxyType(dict(self.additional_params))
            )


@dataclass
class Config:
    """Agent configuration with safe defaults."""

    # Endpoint
    endpoint_url: str = ""
    endpoint_method: str = "POST"
    flush_interval_s: float = 300.0  # 5 minutes
    headers: dict[str, str] = field(default_factory=dict)
    additional_params: dict[str, Any] = field(default_factory=dict)

    # Batching and buffering
    batch_size: int = 100
    retry_buffer_max: int = 1000

    # Retry/backoff
    max_attempts: int = 3
    retry_base_delay_s: float = 5.0
    retry_max_delay_s: float = 60.0
    rate_limit_delay_s: float = 60.0
    retry_jitter_s: float = 1.0

    # HTTP timeouts
    connect_timeout_s: float = 30.0
    read_timeout_s: float = 60.0

    # Circuit breaker
    circuit_breaker_fail_max: int = 5
    circuit_breaker_timeout_s: float = 300.0

    def delivery(self) -> Optional[DeliveryConfig]:
        """
        Build the endpoint snapshot.

        Returns:
            DeliveryConfig, or None if no endpoint URL is configured
        """
        if not self.endpoint_url:
            return None
        return DeliveryConfig(
            url=self.endpoint_url,
            method=self.endpoint_method,
            headers=self.headers,
            additional_params=self.additional_params or None,
            flush_interval_s=self.flush_interval_s,
        )


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from INI file and environment variables.

    Priority:
    1. Environment variables (highest)
    2. INI file
    3. Defaults (lowest)

    Environment variable format: LOCATION_AGENT_<SETTING_NAME>
    Example: LOCATION_AGENT_ENDPOINT_URL, LOCATION_AGENT_BATCH_SIZE
    """
    config = Config()

    if config_path and os.path.exists(config_path):
        parser = configparser.ConfigParser()
        # Header names are case sensitive on some servers
        parser.optionxform = str
        parser.read(config_path)

        if parser.has_section('endpoint'):
            config.endpoint_url = parser.get('endpoint', 'url', fallback=config.endpoint_url)
            config.endpoint_method = parser.get('endpoint', 'method', fallback=config.endpoint_method)
            config.flush_interval_s = parser.getfloat('endpoint', 'interval_s', fallback=config.flush_interval_s)

        if parser.has_section('headers'):
            config.headers = dict(parser.items('headers'))

        if parser.has_section('params'):
            config.additional_params = dict(parser.items('params'))

        if parser.has_section('delivery'):
            config.batch_size = parser.getint('delivery', 'batch_size', fallback=config.batch_size)
            config.retry_buffer_max = parser.getint('delivery', 'retry_buffer_max', fallback=config.retry_buffer_max)
            config.max_attempts = parser.getint('delivery', 'max_attempts', fallback=config.max_attempts)
            config.retry_base_delay_s = parser.getfloat('delivery', 'retry_base_delay_s', fallback=config.retry_base_delay_s)
            config.retry_max_delay_s = parser.getfloat('delivery', 'retry_max_delay_s', fallback=config.retry_max_delay_s)
            config.connect_timeout_s = parser.getfloat('delivery', 'connect_timeout_s', fallback=config.connect_timeout_s)
            config.read_timeout_s = parser.getfloat('delivery', 'read_timeout_s', fallback=config.read_timeout_s)

        if parser.has_section('circuit_breaker'):
            config.circuit_breaker_fail_max = parser.getint('circuit_breaker', 'fail_max', fallback=config.circuit_breaker_fail_max)
            config.circuit_breaker_timeout_s = parser.getfloat('circuit_breaker', 'timeout_s', fallback=config.circuit_breaker_timeout_s)

        logger.info("config_loaded_from_file", path=config_path)

    # Override with environment variables (highest priority)
    env_mappings = {
        'LOCATION_AGENT_ENDPOINT_URL': ('endpoint_url', str),
        'LOCATION_AGENT_ENDPOINT_METHOD': ('endpoint_method', str),
        'LOCATION_AGENT_FLUSH_INTERVAL_S': ('flush_interval_s', float),
        'LOCATION_AGENT_BATCH_SIZE': ('batch_size', int),
        'LOCATION_AGENT_RETRY_BUFFER_MAX': ('retry_buffer_max', int),
        'LOCATION_AGENT_MAX_ATTEMPTS': ('max_attempts', int),
        'LOCATION_AGENT_RETRY_BASE_DELAY_S': ('retry_base_delay_s', float),
        'LOCATION_AGENT_CIRCUIT_BREAKER_FAIL_MAX': ('circuit_breaker_fail_max', int),
        'LOCATION_AGENT_CIRCUIT_BREAKER_TIMEOUT_S': ('circuit_breaker_timeout_s', float),
    }

    for env_var, (attr, type_fn) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            setattr(config, attr, type_fn(value))
            logger.debug("config_override_from_env", var=env_var)

    # Enforce lower bounds
    minimums = {
        'batch_size': 1,
        'max_attempts': 1,
        'retry_buffer_max': 1,
        'flush_interval_s': 1,
    }
    for attr, minimum in minimums.items():
        requested = getattr(config, attr)
        if requested < minimum:
            logger.warning(f"{attr}_increased", requested=requested, minimum=minimum)
            setattr(config, attr, minimum)

    return config
