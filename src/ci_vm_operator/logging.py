"""Structured logging configuration for the CI VirtualMachine Operator."""

import json
import logging
import sys
from typing import Any

from .utils.errors import sanitize_dict

CONTROLLER = "ci-vm-operator"

# Key material that may be passed as extra fields
LOG_SECRET_FIELDS = {"pem", "public_key"}


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured resource event."""
    log_data = {
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
        "message": message,
    }
    log_data.update(sanitize_dict(kwargs, LOG_SECRET_FIELDS))
    logger.log(level, json.dumps(log_data, default=str))
