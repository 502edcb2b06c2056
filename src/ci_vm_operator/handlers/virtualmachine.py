"""VirtualMachine reconcile handler."""

from __future__ import annotations

from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP,
    API_VERSION,
    KIND_VIRTUAL_MACHINE,
    PHASE_ERROR,
    PHASE_PROVISIONED,
    PLURAL_VIRTUAL_MACHINES,
)
from ..metrics import MetricsSink
from ..models import VirtualMachine, split_key
from ..services.gce.lifecycle import InstanceLifecycle
from ..tracing import trace_span
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder
from ..utils.rate_limit import rate_limit_k8s
from ..utils.secrets import credentials_secret_reference
from .base import BaseHandler

# Matches client-go's DefaultRetry for RetryOnConflict
CONFLICT_RETRIES = 5


class VirtualMachineHandler(BaseHandler):
    """Converges one VirtualMachine towards its GCE instance.

    ======================  =================  ===============================
    deletion requested      finalizer present  action
    ======================  =================  ===============================
    no                      any                ensure the instance exists
    yes                     no                 nothing
    yes                     yes                delete the instance, then
                                               remove the finalizer
    ======================  =================  ===============================
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        lifecycle: InstanceLifecycle,
        events: EventRecorder | None = None,
        metrics: MetricsSink | None = None,
        conflict_retries: int = CONFLICT_RETRIES,
    ) -> None:
        super().__init__(KIND_VIRTUAL_MACHINE, events=events, metrics=metrics)
        self.custom_api = custom_api
        self.lifecycle = lifecycle
        self.conflict_retries = conflict_retries

    def reconcile(self, key: str) -> None:
        """Reconcile the VirtualMachine stored under ``key``.

        Raises:
            ValueError: If the key is malformed or the object cannot be decoded
            Exception: Any provider or API failure, for the caller to retry
        """
        namespace, name = split_key(key)

        with trace_span("reconcile", kind=self.kind, attributes={"vm.key": key}):
            obj = self._get(namespace, name)
            if obj is None:
                self.logger.debug(f"VirtualMachine {key} no longer exists")
                return

            vm = VirtualMachine.from_dict(obj)
            self.reconcile_with_metrics(vm.metadata, lambda: self._reconcile(vm))

    def _reconcile(self, vm: VirtualMachine) -> None:
        if not vm.deletion_requested:
            self._ensure(vm)
            return

        if not vm.has_finalizer:
            self.log_info(vm.metadata, "Deletion requested, no cleanup pending", reason="FinalizerAbsent")
            return

        self._teardown(vm)

    def _ensure(self, vm: VirtualMachine) -> None:
        try:
            instance = self.lifecycle.ensure(vm)
        except Exception as e:
            self._record_error(vm, f"error creating GCE instance: {sanitize_exception(e)}")
            raise

        if instance is None:
            return

        self.log_info(
            vm.metadata,
            "GCE instance created",
            event="created",
            reason="InstanceCreated",
            address=instance.nat_ip,
        )
        self.events.emit_instance_created(vm.metadata, instance.nat_ip)
        self._update_status_best_effort(
            vm,
            {
                "state": {"processingPhase": PHASE_PROVISIONED, "message": ""},
                "selfLink": instance.self_link,
                "secretRef": credentials_secret_reference(vm),
            },
        )

    def _teardown(self, vm: VirtualMachine) -> None:
        try:
            deleted = self.lifecycle.teardown(vm)
        except Exception as e:
            self._record_error(vm, f"error deleting GCE instance: {sanitize_exception(e)}")
            raise

        if deleted:
            self.events.emit_instance_deleted(vm.metadata)
        if self._remove_finalizer(vm):
            self.log_info(vm.metadata, "Cleanup complete, finalizer removed", event="deleted", reason="FinalizerRemoved")
            self.events.emit_finalizer_removed(vm.metadata)

    def _get(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return rate_limit_k8s(self.custom_api.get_namespaced_custom_object)(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=PLURAL_VIRTUAL_MACHINES,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def _remove_finalizer(self, vm: VirtualMachine) -> bool:
        """Persist ``vm`` without the finalizer, re-reading on write conflicts.

        Returns:
            True if this call removed the finalizer
        """
        current = vm
        for attempt in range(1, self.conflict_retries + 1):
            try:
                rate_limit_k8s(self.custom_api.replace_namespaced_custom_object)(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=current.namespace,
                    plural=PLURAL_VIRTUAL_MACHINES,
                    name=current.name,
                    body=current.without_finalizer(),
                )
                return True
            except client.exceptions.ApiException as e:
                if e.status != 409 or attempt == self.conflict_retries:
                    raise
                self.log_warning(current.metadata, "Conflict removing finalizer, retrying", reason="Conflict")

            obj = self._get(current.namespace, current.name)
            if obj is None:
                return False
            current = VirtualMachine.from_dict(obj)
            if not current.has_finalizer:
                return False
        return False

    def _record_error(self, vm: VirtualMachine, message: str) -> None:
        self._update_status_best_effort(
            vm,
            {"state": {"processingPhase": PHASE_ERROR, "message": message}},
        )

    def _update_status_best_effort(self, vm: VirtualMachine, status: dict[str, Any]) -> None:
        """Merge ``status`` into the status sub-resource. Failures are logged only."""
        try:
            rate_limit_k8s(self.custom_api.patch_namespaced_custom_object_status)(
                group=API_GROUP,
                version=API_VERSION,
                namespace=vm.namespace,
                plural=PLURAL_VIRTUAL_MACHINES,
                name=vm.name,
                body={"status": status},
            )
        except Exception as e:
            self.log_warning(
                vm.metadata,
                "Failed to update status",
                reason="StatusUpdateFailed",
                error=sanitize_exception(e),
            )
