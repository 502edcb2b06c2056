"""Configuration for the CI VirtualMachine Operator."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import yaml


class ConfigurationError(ValueError):
    """Raised when operator configuration is missing or invalid."""


@dataclass(frozen=True)
class SSHConnectionConfig:
    """Retry policy for the SSH connectivity check."""

    retries: int = 30
    delay_seconds: float = 10.0
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class Configuration:
    """Global configuration for launching virtual machines in GCE."""

    project: str
    zone: str
    num_workers: int = 10
    poll_interval_seconds: float = 5.0
    operation_timeout_seconds: float = 600.0
    log_level: str = "INFO"
    metrics_port: int = 8080
    ssh: SSHConnectionConfig = SSHConnectionConfig()


@dataclass(frozen=True)
class WebhookConfiguration:
    """Configuration for the admission webhook server."""

    cert_file: str
    key_file: str
    port: int = 8443
    log_level: str = "INFO"


def _read_config_file(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as config_file:
            data = yaml.safe_load(config_file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"could not read configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration file {path} must contain a mapping")
    return data


def _env_number(name: str, default: str, cast: type) -> Any:
    raw = os.getenv(name, default)
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def load_configuration() -> Configuration:
    """Load operator configuration from the optional YAML file and the environment.

    Environment variables take precedence over values from ``CONFIG_FILE``.

    Raises:
        ConfigurationError: If the project or zone is missing or a value is invalid
    """
    file_data: dict[str, Any] = {}
    config_path = os.getenv("CONFIG_FILE")
    if config_path:
        file_data = _read_config_file(config_path)

    project = os.getenv("GCP_PROJECT") or file_data.get("project")
    zone = os.getenv("GCP_ZONE") or file_data.get("zone")
    if not project:
        raise ConfigurationError("GCP project is required (GCP_PROJECT or 'project' in CONFIG_FILE)")
    if not zone:
        raise ConfigurationError("GCP zone is required (GCP_ZONE or 'zone' in CONFIG_FILE)")

    num_workers = _env_number("NUM_WORKERS", "10", int)
    if num_workers < 1:
        raise ConfigurationError("NUM_WORKERS must be at least 1")

    return Configuration(
        project=str(project),
        zone=str(zone),
        num_workers=num_workers,
        poll_interval_seconds=_env_number("GCE_POLL_INTERVAL_SECONDS", "5", float),
        operation_timeout_seconds=_env_number("GCE_OPERATION_TIMEOUT_SECONDS", "600", float),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        metrics_port=_env_number("METRICS_PORT", "8080", int),
        ssh=SSHConnectionConfig(
            retries=_env_number("SSH_RETRIES", "30", int),
            delay_seconds=_env_number("SSH_DELAY_SECONDS", "10", float),
            timeout_seconds=_env_number("SSH_TIMEOUT_SECONDS", "10", float),
        ),
    )


def load_webhook_configuration() -> WebhookConfiguration:
    """Load admission webhook configuration from the environment."""
    cert_file = os.getenv("TLS_CERT_FILE")
    key_file = os.getenv("TLS_PRIVATE_KEY_FILE")
    if not cert_file or not key_file:
        raise ConfigurationError("TLS_CERT_FILE and TLS_PRIVATE_KEY_FILE are required")

    return WebhookConfiguration(
        cert_file=cert_file,
        key_file=key_file,
        port=_env_number("WEBHOOK_PORT", "8443", int),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
