"""Base compute provider interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class Instance:
    """A provider-side compute instance."""

    name: str
    nat_ip: str | None = None
    self_link: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class Operation:
    """A handle to an asynchronous provider-side mutation."""

    name: str
    zone: str
    status: str
    operation_type: str = ""
    progress: int = 0
    status_message: str = ""
    errors: tuple[str, ...] = field(default_factory=tuple)


class ComputeProvider(Protocol):
    """Protocol defining compute instance operations.

    Every call either returns a result or raises. A missing instance or
    operation raises ``google.api_core.exceptions.NotFound``, which callers
    must distinguish from every other failure.
    """

    def get_instance(self, project: str, zone: str, name: str) -> Instance:
        """Look up an instance by name."""
        ...

    def insert_instance(self, project: str, zone: str, config: dict[str, Any]) -> Operation:
        """Request creation of an instance described by ``config``."""
        ...

    def delete_instance(self, project: str, zone: str, name: str) -> Operation:
        """Request deletion of an instance."""
        ...

    def get_operation(self, project: str, zone: str, name: str) -> Operation:
        """Fetch the current state of a zonal operation."""
        ...
