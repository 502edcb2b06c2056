"""Tests for admission decisions."""

from __future__ import annotations

import base64
import copy
import json

import pytest

from ci_vm_operator.constants import FINALIZER
from ci_vm_operator.webhook.review import (
    AdmissionDecision,
    AdmissionRequest,
    ReviewError,
    build_review_response,
    mutate,
    parse_review,
    validate,
)


def _update(old, new, sub_resource=""):
    return AdmissionRequest(
        uid="req-1",
        operation="UPDATE",
        sub_resource=sub_resource,
        name="vm-1",
        namespace="ci",
        object=new,
        old_object=old,
    )


class TestValidate:
    """Test cases for spec immutability."""

    def test_create_is_allowed(self, vm_object):
        """Test that non-update operations are allowed."""
        request = AdmissionRequest(uid="req-1", operation="CREATE", object=vm_object)

        assert validate(request).allowed is True

    def test_unchanged_spec_is_allowed(self, vm_object):
        """Test that metadata-only updates are allowed."""
        new = copy.deepcopy(vm_object)
        new["metadata"]["labels"] = {"job": "e2e"}

        assert validate(_update(vm_object, new)).allowed is True

    def test_spec_change_is_denied(self, vm_object):
        """Test that changing a disk size is forbidden."""
        new = copy.deepcopy(vm_object)
        new["spec"]["bootDisk"]["sizeGb"] = 100

        decision = validate(_update(vm_object, new))

        assert decision.allowed is False
        assert decision.reason == "Forbidden"
        assert decision.message == "Updates to spec are forbidden for VirtualMachines"

    def test_status_subresource_is_allowed(self, vm_object):
        """Test that status updates pass even when the spec looks different."""
        new = copy.deepcopy(vm_object)
        new["spec"]["machineType"] = "n1-standard-8"

        assert validate(_update(vm_object, new, sub_resource="status")).allowed is True

    def test_absent_and_empty_disks_are_equal(self, vm_object):
        """Test that adding an empty disk list is not a change."""
        new = copy.deepcopy(vm_object)
        new["spec"]["disks"] = []

        assert validate(_update(vm_object, new)).allowed is True

    def test_undecodable_object_is_denied(self, vm_object):
        """Test that validation fails closed on decode errors."""
        new = copy.deepcopy(vm_object)
        new["kind"] = "Pod"

        decision = validate(_update(vm_object, new))

        assert decision.allowed is False
        assert "Kind=Pod" in decision.message


class TestMutate:
    """Test cases for finalizer injection."""

    def test_adds_finalizer_list(self, vm_object):
        """Test the patch for an object without finalizers."""
        decision = mutate(AdmissionRequest(uid="req-1", operation="CREATE", object=vm_object))

        assert decision.allowed is True
        assert decision.patch_ops == (
            {"op": "add", "path": "/metadata/finalizers", "value": [FINALIZER]},
        )

    def test_appends_to_existing_finalizers(self, vm_object):
        """Test that existing finalizers are kept in order."""
        vm_object["metadata"]["finalizers"] = ["b.example.com", "a.example.com"]

        decision = mutate(AdmissionRequest(uid="req-1", operation="CREATE", object=vm_object))

        assert decision.patch_ops == (
            {
                "op": "replace",
                "path": "/metadata/finalizers",
                "value": ["b.example.com", "a.example.com", FINALIZER],
            },
        )

    def test_finalizer_present(self, vm_object):
        """Test that an object with the finalizer needs no patch."""
        vm_object["metadata"]["finalizers"] = [FINALIZER]

        decision = mutate(AdmissionRequest(uid="req-1", operation="CREATE", object=vm_object))

        assert decision == AdmissionDecision.allow()

    def test_undecodable_object_is_denied(self):
        """Test that mutation fails closed on decode errors."""
        decision = mutate(AdmissionRequest(uid="req-1", operation="CREATE", object={"kind": "Pod"}))

        assert decision.allowed is False
        assert decision.patch_ops is None


class TestReviewEnvelope:
    """Test cases for AdmissionReview parsing and responses."""

    def test_parse_review(self, vm_object):
        """Test parsing a v1 review."""
        body = json.dumps({
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": "req-1",
                "operation": "UPDATE",
                "subResource": "status",
                "name": "vm-1",
                "namespace": "ci",
                "object": vm_object,
                "oldObject": vm_object,
            },
        }).encode()

        api_version, request = parse_review(body)

        assert api_version == "admission.k8s.io/v1"
        assert request.uid == "req-1"
        assert request.sub_resource == "status"
        assert request.old_object == vm_object

    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b"[]",
            b'{"apiVersion": "v1", "kind": "AdmissionReview", "request": {}}',
            b'{"apiVersion": "admission.k8s.io/v1", "kind": "AdmissionReview"}',
        ],
    )
    def test_parse_review_rejects(self, body):
        """Test that malformed reviews are rejected."""
        with pytest.raises(ReviewError):
            parse_review(body)

    def test_denied_response(self):
        """Test the response for a denial."""
        decision = AdmissionDecision.deny("Updates to spec are forbidden for VirtualMachines", reason="Forbidden")

        review = build_review_response("admission.k8s.io/v1", "req-1", decision)

        assert review["apiVersion"] == "admission.k8s.io/v1"
        assert review["kind"] == "AdmissionReview"
        assert review["response"] == {
            "uid": "req-1",
            "allowed": False,
            "status": {
                "code": 403,
                "reason": "Forbidden",
                "message": "Updates to spec are forbidden for VirtualMachines",
            },
        }

    def test_patch_response(self):
        """Test that patches are base64-encoded JSON patches."""
        operations = [{"op": "add", "path": "/metadata/finalizers", "value": [FINALIZER]}]

        review = build_review_response("admission.k8s.io/v1beta1", "req-1", AdmissionDecision.patch(operations))

        response = review["response"]
        assert response["allowed"] is True
        assert response["patchType"] == "JSONPatch"
        assert json.loads(base64.b64decode(response["patch"])) == operations
        assert "status" not in response

    def test_response_never_echoes_object(self, vm_object):
        """Test that the request payload is not part of the response."""
        review = build_review_response("admission.k8s.io/v1", "req-1", AdmissionDecision.allow())

        assert "vm-1" not in json.dumps(review)
