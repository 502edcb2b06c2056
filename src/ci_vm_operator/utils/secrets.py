"""Utilities for managing Kubernetes secrets."""

from __future__ import annotations

from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP,
    API_GROUP_VERSION,
    FIELD_MANAGER,
    KIND_VIRTUAL_MACHINE,
    SECRET_KEY_PRIVATE,
    SECRET_KEY_PUBLIC,
    SECRET_KEY_SSH_CONFIG,
)
from ..models import VirtualMachine
from ..services.compute.base import Instance
from .rate_limit import rate_limit_k8s
from .ssh_keys import render_ssh_config


def create_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    string_data: dict[str, str],
    owner_references: list[client.V1OwnerReference] | None = None,
    labels: dict[str, str] | None = None,
) -> None:
    """Create a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace for the secret
        secret_name: Name of the secret
        string_data: Secret entries as plain strings
        owner_references: Owner references for the secret
        labels: Labels for the secret
    """
    secret = client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=secret_name,
            namespace=namespace,
            owner_references=owner_references or [],
            labels=labels or {},
        ),
        type="Opaque",
        string_data=string_data,
    )

    rate_limit_k8s(api.create_namespaced_secret)(
        namespace=namespace,
        body=secret,
        field_manager=FIELD_MANAGER,
    )


def owner_reference_for(vm: VirtualMachine) -> client.V1OwnerReference:
    """Build an owner reference so the secret is garbage collected with the resource."""
    return client.V1OwnerReference(
        api_version=API_GROUP_VERSION,
        kind=KIND_VIRTUAL_MACHINE,
        name=vm.name,
        uid=vm.uid,
    )


def credentials_secret_reference(vm: VirtualMachine) -> dict[str, Any]:
    """Object reference to the credentials secret, as stored in status.secretRef."""
    return {"apiVersion": "v1", "kind": "Secret", "namespace": vm.namespace, "name": vm.name}


def create_credentials_secret(
    api: client.CoreV1Api,
    vm: VirtualMachine,
    instance: Instance,
    pem: str,
    pub: str,
) -> None:
    """Upload the SSH keypair and a connection profile for an instance.

    The secret is named after the resource and owned by it. This operator
    never deletes secrets itself; garbage collection removes the secret
    together with the VirtualMachine.
    """
    if not instance.nat_ip:
        raise ValueError(f"instance {instance.name} has no external address")

    create_secret(
        api,
        namespace=vm.namespace,
        secret_name=vm.name,
        string_data={
            SECRET_KEY_PRIVATE: pem,
            SECRET_KEY_PUBLIC: pub,
            SECRET_KEY_SSH_CONFIG: render_ssh_config(instance.name, instance.nat_ip),
        },
        owner_references=[owner_reference_for(vm)],
        labels={f"{API_GROUP}/managed-by": FIELD_MANAGER},
    )
