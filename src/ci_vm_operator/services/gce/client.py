"""Google Compute Engine client implementation."""

from __future__ import annotations

import logging
import posixpath
from typing import Any

from google.cloud import compute_v1

from ...utils.rate_limit import rate_limit_gce
from ..compute.base import Instance, Operation

logger = logging.getLogger(__name__)


def _enum_name(value: Any) -> str:
    """Return the symbolic name of a compute enum field, whatever its wire form."""
    if value is None:
        return ""
    return getattr(value, "name", str(value))


def instance_from_config(config: dict[str, Any]) -> compute_v1.Instance:
    """Convert an instance configuration dict into a compute_v1 Instance."""
    disks = [
        compute_v1.AttachedDisk(
            auto_delete=disk.get("auto_delete", True),
            boot=disk.get("boot", False),
            initialize_params=compute_v1.AttachedDiskInitializeParams(
                **{
                    key: value
                    for key, value in (
                        ("source_image", disk.get("source_image")),
                        ("disk_size_gb", disk.get("disk_size_gb")),
                        ("disk_type", disk.get("disk_type")),
                    )
                    if value is not None
                }
            ),
        )
        for disk in config.get("disks", [])
    ]
    network_interfaces = [
        compute_v1.NetworkInterface(
            network=nic["network"],
            access_configs=[
                compute_v1.AccessConfig(type_=access["type"], name=access["name"])
                for access in nic.get("access_configs", [])
            ],
        )
        for nic in config.get("network_interfaces", [])
    ]
    metadata = compute_v1.Metadata(
        items=[
            compute_v1.Items(key=item["key"], value=item["value"])
            for item in config.get("metadata", {}).get("items", [])
        ]
    )
    return compute_v1.Instance(
        name=config["name"],
        machine_type=config["machine_type"],
        can_ip_forward=config.get("can_ip_forward", False),
        metadata=metadata,
        network_interfaces=network_interfaces,
        disks=disks,
    )


def instance_to_model(instance: Any) -> Instance:
    """Convert a compute_v1 Instance into the provider-neutral model."""
    nat_ip = None
    for nic in instance.network_interfaces or []:
        for access in nic.access_configs or []:
            if access.nat_i_p:
                nat_ip = access.nat_i_p
                break
        if nat_ip:
            break
    return Instance(
        name=instance.name,
        nat_ip=nat_ip,
        self_link=instance.self_link or None,
        status=_enum_name(instance.status) or None,
    )


def operation_to_model(operation: Any) -> Operation:
    """Convert a compute_v1 Operation (or ExtendedOperation) into the provider-neutral model."""
    error = getattr(operation, "error", None)
    errors = tuple(e.message for e in (getattr(error, "errors", None) or []))
    return Operation(
        name=operation.name,
        zone=posixpath.basename(operation.zone or ""),
        status=_enum_name(operation.status),
        operation_type=operation.operation_type or "",
        progress=operation.progress or 0,
        status_message=operation.status_message or "",
        errors=errors,
    )


class GCEProvider:
    """GCE compute provider implementation.

    The underlying clients are safe to share between worker threads.
    """

    def __init__(
        self,
        instances_client: compute_v1.InstancesClient | None = None,
        operations_client: compute_v1.ZoneOperationsClient | None = None,
    ) -> None:
        """Initialize the provider.

        Credentials are resolved by google-auth application default
        credentials (e.g. ``GOOGLE_APPLICATION_CREDENTIALS``).
        """
        self.instances_client = instances_client or compute_v1.InstancesClient()
        self.operations_client = operations_client or compute_v1.ZoneOperationsClient()

    def get_instance(self, project: str, zone: str, name: str) -> Instance:
        instance = rate_limit_gce(self.instances_client.get)(project=project, zone=zone, instance=name)
        return instance_to_model(instance)

    def insert_instance(self, project: str, zone: str, config: dict[str, Any]) -> Operation:
        logger.debug(f"Inserting GCE instance {config['name']} in {project}/{zone}")
        operation = rate_limit_gce(self.instances_client.insert)(
            project=project,
            zone=zone,
            instance_resource=instance_from_config(config),
        )
        return operation_to_model(operation)

    def delete_instance(self, project: str, zone: str, name: str) -> Operation:
        logger.debug(f"Deleting GCE instance {name} in {project}/{zone}")
        operation = rate_limit_gce(self.instances_client.delete)(project=project, zone=zone, instance=name)
        return operation_to_model(operation)

    def get_operation(self, project: str, zone: str, name: str) -> Operation:
        operation = rate_limit_gce(self.operations_client.get)(project=project, zone=zone, operation=name)
        return operation_to_model(operation)
