"""Tests for secret management utilities."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ci_vm_operator.models import VirtualMachine
from ci_vm_operator.services.compute.base import Instance
from ci_vm_operator.utils.secrets import (
    create_credentials_secret,
    create_secret,
    credentials_secret_reference,
    owner_reference_for,
)


class TestCreateSecret:
    """Test cases for create_secret."""

    def test_create_secret(self):
        """Test creating a secret with string data."""
        api = MagicMock()

        create_secret(api, "ci", "vm-1", {"key": "value"}, labels={"a": "b"})

        kwargs = api.create_namespaced_secret.call_args.kwargs
        assert kwargs["namespace"] == "ci"
        assert kwargs["field_manager"] == "ci-vm-operator"
        body = kwargs["body"]
        assert body.metadata.name == "vm-1"
        assert body.metadata.labels == {"a": "b"}
        assert body.type == "Opaque"
        assert body.string_data == {"key": "value"}

    def test_create_secret_error_propagates(self):
        """Test that API errors are raised to the caller."""
        api = MagicMock()
        api.create_namespaced_secret.side_effect = RuntimeError("conflict")

        with pytest.raises(RuntimeError):
            create_secret(api, "ci", "vm-1", {})


class TestCredentialsSecret:
    """Test cases for the VM credentials secret."""

    def test_owner_reference(self, vm_object):
        """Test that the secret is owned by the VirtualMachine."""
        ref = owner_reference_for(VirtualMachine.from_dict(vm_object))

        assert ref.api_version == "ci.openshift.io/v1alpha1"
        assert ref.kind == "VirtualMachine"
        assert ref.name == "vm-1"
        assert ref.uid == "uid-1"

    def test_secret_reference(self, vm_object):
        """Test the status.secretRef object reference."""
        ref = credentials_secret_reference(VirtualMachine.from_dict(vm_object))

        assert ref == {"apiVersion": "v1", "kind": "Secret", "namespace": "ci", "name": "vm-1"}

    def test_secret_contents(self, vm_object):
        """Test the keys and values stored for an instance."""
        api = MagicMock()
        vm = VirtualMachine.from_dict(vm_object)

        create_credentials_secret(api, vm, Instance(name="vm-1", nat_ip="10.0.0.5"), "pem", "pub\n")

        body = api.create_namespaced_secret.call_args.kwargs["body"]
        assert body.string_data == {
            "id_rsa": "pem",
            "id_rsa.pub": "pub\n",
            "ssh_config": "Host vm-1\n  HostName 10.0.0.5\n  Port 22\n  StrictHostKeyChecking no\n",
        }
        assert body.metadata.namespace == "ci"
        assert body.metadata.labels == {"ci.openshift.io/managed-by": "ci-vm-operator"}

    def test_instance_without_address(self, vm_object):
        """Test that an instance without a NAT address is rejected."""
        api = MagicMock()

        with pytest.raises(ValueError, match="no external address"):
            create_credentials_secret(api, VirtualMachine.from_dict(vm_object), Instance(name="vm-1"), "pem", "pub")

        api.create_namespaced_secret.assert_not_called()
