"""Admission decisions for VirtualMachine resources.

``validate`` keeps the spec immutable outside the status sub-resource and
``mutate`` makes sure every new VirtualMachine carries the deletion
finalizer. Both are pure functions over an ``AdmissionRequest``.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

from ..constants import (
    FINALIZER,
    MESSAGE_SPEC_FORBIDDEN,
    OPERATION_UPDATE,
    PATCH_TYPE_JSON_PATCH,
    REASON_FORBIDDEN,
    SUBRESOURCE_STATUS,
)
from ..models import DecodeError, VirtualMachine

logger = logging.getLogger(__name__)

ADMISSION_API_VERSIONS = ("admission.k8s.io/v1", "admission.k8s.io/v1beta1")


class ReviewError(ValueError):
    """Raised when a request body is not a usable AdmissionReview."""


@dataclass(frozen=True)
class AdmissionRequest:
    """The parts of an AdmissionReview request the decisions look at."""

    uid: str
    operation: str
    sub_resource: str = ""
    name: str = ""
    namespace: str = ""
    resource: dict[str, Any] | None = None
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, request: dict[str, Any]) -> AdmissionRequest:
        if not isinstance(request, dict):
            raise ReviewError("request must be an object")
        return cls(
            uid=request.get("uid") or "",
            operation=request.get("operation") or "",
            sub_resource=request.get("subResource") or "",
            name=request.get("name") or "",
            namespace=request.get("namespace") or "",
            resource=request.get("resource"),
            object=request.get("object"),
            old_object=request.get("oldObject"),
        )

    def log_fields(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "subresource": self.sub_resource,
            "name": self.name,
            "namespace": self.namespace,
            "operation": self.operation,
        }


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission decision.

    Build instances with ``allow``, ``deny`` or ``patch``.
    """

    allowed: bool
    reason: str | None = None
    message: str | None = None
    code: int | None = None
    patch_ops: tuple[dict[str, Any], ...] | None = None

    @classmethod
    def allow(cls) -> AdmissionDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, message: str, reason: str | None = None, code: int = 403) -> AdmissionDecision:
        return cls(allowed=False, reason=reason, message=message, code=code)

    @classmethod
    def patch(cls, operations: list[dict[str, Any]]) -> AdmissionDecision:
        return cls(allowed=True, patch_ops=tuple(operations))


def _decode(obj: Any) -> VirtualMachine:
    try:
        return VirtualMachine.from_dict(obj)
    except DecodeError as e:
        logger.error(f"Failed to decode VirtualMachine in admission request body: {e}")
        raise


def validate(request: AdmissionRequest) -> AdmissionDecision:
    """Allow a write only if it leaves the spec unchanged."""
    logger.info(
        "Validating VirtualMachine to ensure only status is updated: "
        + json.dumps(request.log_fields(), default=str)
    )
    if request.operation != OPERATION_UPDATE or request.sub_resource == SUBRESOURCE_STATUS:
        return AdmissionDecision.allow()

    try:
        new_vm = _decode(request.object)
        old_vm = _decode(request.old_object)
    except DecodeError as e:
        return AdmissionDecision.deny(str(e), code=400)

    if old_vm.spec != new_vm.spec:
        logger.info(f"VirtualMachine {request.namespace}/{request.name} was invalid")
        return AdmissionDecision.deny(MESSAGE_SPEC_FORBIDDEN, reason=REASON_FORBIDDEN)

    logger.info(f"VirtualMachine {request.namespace}/{request.name} was valid")
    return AdmissionDecision.allow()


def mutate(request: AdmissionRequest) -> AdmissionDecision:
    """Add the deletion finalizer to the incoming object if it lacks one."""
    logger.info(
        "Mutating VirtualMachine to ensure finalizer is present: "
        + json.dumps(request.log_fields(), default=str)
    )
    try:
        vm = _decode(request.object)
    except DecodeError as e:
        return AdmissionDecision.deny(str(e), code=400)

    if vm.has_finalizer:
        return AdmissionDecision.allow()

    current = vm.raw.get("metadata", {}).get("finalizers")
    if current is None:
        operation = {"op": "add", "path": "/metadata/finalizers", "value": [FINALIZER]}
    else:
        operation = {"op": "replace", "path": "/metadata/finalizers", "value": [*current, FINALIZER]}
    return AdmissionDecision.patch([operation])


def parse_review(body: bytes) -> tuple[str, AdmissionRequest]:
    """Parse an AdmissionReview request body.

    Returns:
        Tuple of (review apiVersion, request)

    Raises:
        ReviewError: If the body is not an AdmissionReview with a request
    """
    try:
        review = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise ReviewError(f"failed to decode admission request body: {e}") from e
    if not isinstance(review, dict):
        raise ReviewError("admission review must be an object")

    api_version = review.get("apiVersion")
    if api_version not in ADMISSION_API_VERSIONS or review.get("kind") != "AdmissionReview":
        raise ReviewError(f"unsupported admission review {api_version}, Kind={review.get('kind')}")
    if "request" not in review:
        raise ReviewError("admission review has no request")
    return api_version, AdmissionRequest.from_dict(review["request"])


def build_review_response(api_version: str, uid: str, decision: AdmissionDecision) -> dict[str, Any]:
    """Wrap a decision in an AdmissionReview response.

    The request payload is never echoed back.
    """
    response: dict[str, Any] = {"uid": uid, "allowed": decision.allowed}
    if not decision.allowed:
        status: dict[str, Any] = {"message": decision.message or ""}
        if decision.code is not None:
            status["code"] = decision.code
        if decision.reason:
            status["reason"] = decision.reason
        response["status"] = status
    if decision.patch_ops is not None:
        response["patchType"] = PATCH_TYPE_JSON_PATCH
        response["patch"] = base64.b64encode(json.dumps(list(decision.patch_ops)).encode("utf-8")).decode("ascii")
    return {"apiVersion": api_version, "kind": "AdmissionReview", "response": response}
