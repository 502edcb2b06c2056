"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from ci_vm_operator.constants import API_GROUP_VERSION, KIND_VIRTUAL_MACHINE

VM_OBJECT: dict[str, Any] = {
    "apiVersion": API_GROUP_VERSION,
    "kind": KIND_VIRTUAL_MACHINE,
    "metadata": {
        "name": "vm-1",
        "namespace": "ci",
        "uid": "uid-1",
        "resourceVersion": "7",
    },
    "spec": {
        "machineType": "n1-standard-4",
        "bootDisk": {"imageFamily": "centos-7", "sizeGb": 50, "type": "pd-ssd"},
    },
}


@pytest.fixture(autouse=True)
def fast_api_rate_limits(monkeypatch):
    """Disable client-side API pacing so tests never sleep."""
    monkeypatch.setattr("ci_vm_operator.utils.rate_limit._K8S_RATE_LIMIT_PER_SECOND", 1e9)
    monkeypatch.setattr("ci_vm_operator.utils.rate_limit._GCE_RATE_LIMIT_PER_SECOND", 1e9)


@pytest.fixture
def vm_object() -> dict[str, Any]:
    """A decoded-ready VirtualMachine object named vm-1 in namespace ci."""
    return copy.deepcopy(VM_OBJECT)
