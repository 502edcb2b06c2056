"""SSH keypair generation and connectivity checks for provisioned instances."""

from __future__ import annotations

import logging
import os
import socket
import subprocess
import tempfile
import time

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..config import SSHConnectionConfig
from ..constants import SSH_PORT, SSH_USER

logger = logging.getLogger(__name__)

KEY_SIZE = 4096


class SSHConnectionError(RuntimeError):
    """Raised when an instance cannot be reached over SSH."""


def new_ssh_keypair(key_size: int = KEY_SIZE) -> tuple[str, str]:
    """Generate a fresh RSA keypair.

    Returns:
        Tuple of (PKCS#1 PEM private key, OpenSSH authorized-key line ending in a newline)
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    pub = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("utf-8")
    return pem, pub + "\n"


def format_authorized_key(pub: str, user: str = SSH_USER) -> str:
    """Format a public key for the GCE ``ssh-keys`` metadata item."""
    return f"{user}:{pub.rstrip()} {user}"


def render_ssh_config(host: str, address: str, port: int = SSH_PORT) -> str:
    """Render an ssh_config stanza for connecting to an instance."""
    return (
        f"Host {host}\n"
        f"  HostName {address}\n"
        f"  Port {port}\n"
        f"  StrictHostKeyChecking no\n"
    )


def _ssh_handshake(hostname: str, port: int, user: str, pem: str, timeout: float) -> bool:
    """Attempt one authenticated SSH session with the system ssh client."""
    with tempfile.TemporaryDirectory(prefix="ci-vm-ssh-") as tmpdir:
        key_path = os.path.join(tmpdir, "id_rsa")
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as key_file:
            key_file.write(pem)

        ssh_cmd = [
            "ssh",
            "-p",
            str(port),
            "-i",
            key_path,
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            f"ConnectTimeout={max(1, int(timeout))}",
            f"{user}@{hostname}",
            "true",
        ]
        try:
            result = subprocess.run(ssh_cmd, capture_output=True, timeout=timeout, check=False)
        except subprocess.TimeoutExpired:
            logger.warning(f"SSH handshake with {hostname} timed out after {timeout}s")
            return False
        except FileNotFoundError as e:
            raise SSHConnectionError("ssh client binary not found") from e

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        logger.warning(f"SSH connection failure for {hostname}: {stderr}")
        return False
    return True


def poll_for_ssh_connection(
    config: SSHConnectionConfig,
    hostname: str,
    pem: str,
    user: str = SSH_USER,
    port: int = SSH_PORT,
) -> None:
    """Wait until an instance accepts an SSH session authenticated with ``pem``.

    Each attempt dials TCP with a per-attempt timeout. Once a dial succeeds a
    single handshake is tried and its outcome is final. Failed dials are
    retried after ``config.delay_seconds``.

    Raises:
        SSHConnectionError: If no attempt succeeds
    """
    for attempt in range(1, config.retries + 1):
        logger.debug(f"dialing host {hostname} (attempt {attempt})")
        try:
            conn = socket.create_connection((hostname, port), timeout=config.timeout_seconds)
        except OSError as e:
            logger.debug(f"dial failure for {hostname} (attempt {attempt}): {e}")
            if attempt < config.retries:
                time.sleep(config.delay_seconds)
            continue

        conn.close()
        logger.debug(f"dial success for {hostname} (attempt {attempt})")
        if _ssh_handshake(hostname, port, user, pem, config.timeout_seconds):
            logger.debug(f"SSH connection success for {hostname}")
            return
        break

    raise SSHConnectionError(f"could not connect to VM over SSH in {config.retries} attempts")
