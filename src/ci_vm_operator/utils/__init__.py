"""Utility functions for the CI VirtualMachine Operator."""

from .errors import sanitize_dict, sanitize_error_message, sanitize_exception
from .events import EventRecorder
from .rate_limit import (
    BucketRateLimiter,
    ItemExponentialFailureRateLimiter,
    MaxOfRateLimiter,
    default_controller_rate_limiter,
    rate_limit_gce,
    rate_limit_k8s,
)
from .secrets import create_credentials_secret, create_secret
from .ssh_keys import SSHConnectionError, new_ssh_keypair, poll_for_ssh_connection
from .workqueue import RateLimitingQueue

__all__ = [
    "sanitize_dict",
    "sanitize_error_message",
    "sanitize_exception",
    "EventRecorder",
    "BucketRateLimiter",
    "ItemExponentialFailureRateLimiter",
    "MaxOfRateLimiter",
    "default_controller_rate_limiter",
    "rate_limit_gce",
    "rate_limit_k8s",
    "create_credentials_secret",
    "create_secret",
    "SSHConnectionError",
    "new_ssh_keypair",
    "poll_for_ssh_connection",
    "RateLimitingQueue",
]
