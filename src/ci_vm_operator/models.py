"""Models for the VirtualMachine resource and watch notifications."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Union

from .constants import API_GROUP_VERSION, FINALIZER, KIND_VIRTUAL_MACHINE


class DecodeError(ValueError):
    """Raised when an object cannot be decoded into a VirtualMachine."""


def _require(data: dict[str, Any], key: str, kind: type, path: str) -> Any:
    if key not in data or data[key] is None:
        raise DecodeError(f"{path}{key} is required")
    value = data[key]
    # bool is an int subclass, a size of `true` is not a size
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(f"{path}{key} must be of type {kind.__name__}")
    return value


@dataclass(frozen=True)
class DiskSpec:
    """Initialization parameters for a disk."""

    size_gb: int
    type: str

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> DiskSpec:
        if not isinstance(data, dict):
            raise DecodeError(f"{path or 'disk'} must be an object")
        return cls(
            size_gb=_require(data, "sizeGb", int, path),
            type=_require(data, "type", str, path),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"sizeGb": self.size_gb, "type": self.type}


@dataclass(frozen=True)
class BootDiskSpec:
    """The disk the virtual machine boots from."""

    image_family: str
    size_gb: int
    type: str

    @classmethod
    def from_dict(cls, data: Any) -> BootDiskSpec:
        if not isinstance(data, dict):
            raise DecodeError("spec.bootDisk must be an object")
        return cls(
            image_family=_require(data, "imageFamily", str, "spec.bootDisk."),
            size_gb=_require(data, "sizeGb", int, "spec.bootDisk."),
            type=_require(data, "type", str, "spec.bootDisk."),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"imageFamily": self.image_family, "sizeGb": self.size_gb, "type": self.type}


@dataclass(frozen=True)
class VirtualMachineSpec:
    """Declared intent for a virtual machine. Immutable after creation."""

    machine_type: str
    boot_disk: BootDiskSpec
    disks: tuple[DiskSpec, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> VirtualMachineSpec:
        if not isinstance(data, dict):
            raise DecodeError("spec must be an object")
        raw_disks = data.get("disks") or []
        if not isinstance(raw_disks, list):
            raise DecodeError("spec.disks must be a list")
        return cls(
            machine_type=_require(data, "machineType", str, "spec."),
            boot_disk=BootDiskSpec.from_dict(data.get("bootDisk")),
            disks=tuple(
                DiskSpec.from_dict(disk, f"spec.disks[{index}].")
                for index, disk in enumerate(raw_disks)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "machineType": self.machine_type,
            "bootDisk": self.boot_disk.to_dict(),
        }
        if self.disks:
            spec["disks"] = [disk.to_dict() for disk in self.disks]
        return spec


@dataclass
class VirtualMachine:
    """A VirtualMachine custom resource.

    ``raw`` keeps the object exactly as read from the API server so that
    writes back to it preserve fields this model does not know about.
    """

    name: str
    namespace: str
    uid: str
    spec: VirtualMachineSpec
    status: dict[str, Any] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = None
    resource_version: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, obj: Any) -> VirtualMachine:
        """Decode a VirtualMachine from its JSON representation.

        Raises:
            DecodeError: If the object is not a well-formed VirtualMachine
        """
        if not isinstance(obj, dict):
            raise DecodeError("object must be a JSON object")
        if obj.get("apiVersion") != API_GROUP_VERSION or obj.get("kind") != KIND_VIRTUAL_MACHINE:
            raise DecodeError(
                f"expected {API_GROUP_VERSION}, Kind={KIND_VIRTUAL_MACHINE}, "
                f"got {obj.get('apiVersion')}, Kind={obj.get('kind')}"
            )

        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            raise DecodeError("metadata must be an object")
        finalizers = metadata.get("finalizers") or []
        if not isinstance(finalizers, list) or not all(isinstance(f, str) for f in finalizers):
            raise DecodeError("metadata.finalizers must be a list of strings")
        status = obj.get("status") or {}
        if not isinstance(status, dict):
            raise DecodeError("status must be an object")

        return cls(
            # generateName objects have no name yet at admission time
            name=metadata.get("name") or "",
            namespace=metadata.get("namespace") or "",
            uid=metadata.get("uid") or "",
            spec=VirtualMachineSpec.from_dict(obj.get("spec")),
            status=status,
            finalizers=list(finalizers),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            resource_version=metadata.get("resourceVersion"),
            raw=copy.deepcopy(obj),
        )

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)

    @property
    def deletion_requested(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def has_finalizer(self) -> bool:
        return FINALIZER in self.finalizers

    @property
    def metadata(self) -> dict[str, Any]:
        """Metadata in the shape expected by the logging and event helpers."""
        return {"name": self.name, "namespace": self.namespace, "uid": self.uid}

    def without_finalizer(self) -> dict[str, Any]:
        """Return the raw object with the deletion finalizer removed."""
        updated = copy.deepcopy(self.raw)
        meta = updated.setdefault("metadata", {})
        meta["finalizers"] = [f for f in self.finalizers if f != FINALIZER]
        return updated


def make_key(namespace: str, name: str) -> str:
    """Create a queue key for a namespaced resource."""
    return f"{namespace}/{name}" if namespace else name


def split_key(key: str) -> tuple[str, str]:
    """Split a ``namespace/name`` queue key.

    Raises:
        ValueError: If the key is malformed
    """
    parts = key.split("/")
    if len(parts) == 1 and parts[0]:
        return "", parts[0]
    if len(parts) == 2 and parts[1]:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


@dataclass(frozen=True)
class Added:
    """A resource was observed for the first time."""

    obj: dict[str, Any]


@dataclass(frozen=True)
class Updated:
    """A resource changed."""

    old: dict[str, Any] | None
    obj: dict[str, Any]


@dataclass(frozen=True)
class Deleted:
    """A resource was removed from storage.

    ``final_state_unknown`` marks a tombstone: the deletion was inferred after
    the fact and ``obj`` is the last state known to the watcher.
    """

    obj: dict[str, Any]
    final_state_unknown: bool = False


Notification = Union[Added, Updated, Deleted]


def notification_key(notification: Notification) -> str:
    """Reduce a notification to the queue key of its resource.

    Raises:
        ValueError: If the notification carries no usable identity
    """
    metadata = notification.obj.get("metadata") if isinstance(notification.obj, dict) else None
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise ValueError(f"couldn't get key for object {notification.obj!r}")
    return make_key(metadata.get("namespace") or "", metadata["name"])
