"""Builder for GCE instance configurations."""

from __future__ import annotations

from typing import Any

from ..constants import GCE_DEFAULT_NETWORK, GCE_SSH_KEYS_METADATA_KEY
from ..models import VirtualMachine


def create_instance_config_from_spec(
    vm: VirtualMachine,
    project: str,
    zone: str,
    authorized_key: str,
) -> dict[str, Any]:
    """Create an instance configuration dict from a VirtualMachine.

    Args:
        vm: The VirtualMachine resource
        project: GCE project
        zone: GCE zone
        authorized_key: Value for the ``ssh-keys`` metadata item

    Returns:
        Configuration dict for instance operations
    """
    spec = vm.spec

    # The boot disk always comes first
    disks: list[dict[str, Any]] = [
        {
            "auto_delete": True,
            "boot": True,
            "source_image": spec.boot_disk.image_family,
            "disk_size_gb": spec.boot_disk.size_gb,
            "disk_type": f"projects/{project}/zones/{zone}/diskTypes/{spec.boot_disk.type}",
        }
    ]
    for disk in spec.disks:
        disks.append(
            {
                "auto_delete": True,
                "boot": False,
                "disk_size_gb": disk.size_gb,
                "disk_type": disk.type,
            }
        )

    config_dict = {
        "name": vm.name,
        "machine_type": f"zones/{zone}/machineTypes/{spec.machine_type}",
        "metadata": {
            "items": [{"key": GCE_SSH_KEYS_METADATA_KEY, "value": authorized_key}],
        },
        "can_ip_forward": True,
        "network_interfaces": [
            {
                "network": GCE_DEFAULT_NETWORK,
                "access_configs": [{"type": "ONE_TO_ONE_NAT", "name": "External NAT"}],
            }
        ],
        "disks": disks,
    }

    return config_dict
