"""Drive GCE instances through creation and deletion for VirtualMachines."""

from __future__ import annotations

import logging
import time
from typing import Callable

from google.api_core.exceptions import NotFound
from kubernetes import client

from ...builders.instance import create_instance_config_from_spec
from ...constants import GCE_OPERATION_DONE, KIND_VIRTUAL_MACHINE
from ...metrics import MetricsSink, NullMetrics
from ...models import VirtualMachine
from ...tracing import add_span_attribute, trace_span
from ...utils.secrets import create_credentials_secret
from ...utils.ssh_keys import format_authorized_key, new_ssh_keypair
from ..compute.base import ComputeProvider, Instance, Operation

logger = logging.getLogger(__name__)

GCE_TIMEOUT_SECONDS = 600.0
GCE_WAIT_SLEEP_SECONDS = 5.0


class OperationError(RuntimeError):
    """Raised when a GCE operation reports errors."""

    def __init__(self, operation: Operation) -> None:
        self.operation = operation
        super().__init__("\n".join(operation.errors))


class OperationTimeoutError(TimeoutError):
    """Raised when a GCE operation does not finish before the deadline."""

    def __init__(self, operation: Operation, elapsed: float) -> None:
        self.operation = operation
        self.elapsed = elapsed
        super().__init__(
            f"gce operation {operation.operation_type} {operation.name!r} timed out after {elapsed:.1f}s"
        )


class InstanceLifecycle:
    """Creates and deletes the GCE instance backing a VirtualMachine.

    Provider state is never cached: every call starts with a fresh lookup.
    """

    def __init__(
        self,
        provider: ComputeProvider,
        project: str,
        zone: str,
        core_api: client.CoreV1Api,
        poll_interval: float = GCE_WAIT_SLEEP_SECONDS,
        timeout: float = GCE_TIMEOUT_SECONDS,
        metrics: MetricsSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.project = project
        self.zone = zone
        self.core_api = core_api
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.metrics = metrics if metrics is not None else NullMetrics()
        self._clock = clock
        self._sleep = sleep

    def _lookup(self, name: str) -> Instance | None:
        try:
            return self.provider.get_instance(self.project, self.zone, name)
        except NotFound:
            return None

    def ensure(self, vm: VirtualMachine) -> Instance | None:
        """Make sure an instance exists for ``vm``.

        An existing instance is left untouched. Otherwise a fresh keypair is
        generated, the instance is created with the public half authorized
        for root, and the credentials are stored in a secret owned by ``vm``.

        Returns:
            The created instance, or None if it already existed
        """
        with trace_span("gce.ensure", kind=KIND_VIRTUAL_MACHINE, attributes={"vm.name": vm.name}):
            if self._lookup(vm.name) is not None:
                logger.info(f"Skipped creating VM {vm.key} that is already created")
                add_span_attribute("gce.created", False)
                return None

            logger.info(f"Creating SSH keypair for VM {vm.key}")
            pem, pub = new_ssh_keypair()
            config = create_instance_config_from_spec(
                vm, self.project, self.zone, format_authorized_key(pub)
            )

            logger.info(f"Creating GCE instance for VM {vm.key}")
            start_time = time.time()
            try:
                operation = self.provider.insert_instance(self.project, self.zone, config)
                self.wait_for_operation(operation)
            except Exception as e:
                self.metrics.gce_operation("insert", _result_for(e), time.time() - start_time)
                logger.error(f"Failed to create GCE instance for VM {vm.key}: {type(e).__name__}")
                raise
            self.metrics.gce_operation("insert", "success", time.time() - start_time)

            instance = self.provider.get_instance(self.project, self.zone, vm.name)

            logger.info(f"Uploading SSH keypair for VM {vm.key} to the cluster")
            create_credentials_secret(self.core_api, vm, instance, pem, pub)
            add_span_attribute("gce.created", True)
            return instance

    def teardown(self, vm: VirtualMachine) -> bool:
        """Delete the instance for ``vm``. A missing instance counts as deleted.

        Returns:
            True if this call deleted an instance
        """
        with trace_span("gce.teardown", kind=KIND_VIRTUAL_MACHINE, attributes={"vm.name": vm.name}):
            if self._lookup(vm.name) is None:
                logger.info(f"Skipped deleting VM {vm.key} that is already deleted")
                return False

            logger.info(f"Deleting GCE instance for VM {vm.key}")
            start_time = time.time()
            try:
                operation = self.provider.delete_instance(self.project, self.zone, vm.name)
                self.wait_for_operation(operation)
            except Exception as e:
                self.metrics.gce_operation("delete", _result_for(e), time.time() - start_time)
                logger.error(f"Failed to delete GCE instance for VM {vm.key}: {type(e).__name__}")
                raise
            self.metrics.gce_operation("delete", "success", time.time() - start_time)
            return True

    def wait_for_operation(self, operation: Operation) -> Operation:
        """Poll ``operation`` until it is done.

        Raises:
            OperationError: If the operation reports errors
            OperationTimeoutError: If the operation is still running at the deadline
        """
        logger.info(f"Waiting for {operation.operation_type} {operation.name!r}")
        start = self._clock()
        deadline = start + self.timeout

        while True:
            if operation.errors:
                raise OperationError(operation)
            if operation.status == GCE_OPERATION_DONE:
                logger.info(f"Finished waiting for {operation.operation_type} {operation.name!r}")
                return operation

            logger.debug(
                f"Waiting for {operation.operation_type} {operation.name!r}: "
                f"{operation.status} ({operation.progress}%): {operation.status_message}"
            )
            now = self._clock()
            if now >= deadline:
                raise OperationTimeoutError(operation, now - start)
            self._sleep(min(self.poll_interval, deadline - now))
            operation = self.provider.get_operation(
                self.project, operation.zone or self.zone, operation.name
            )


def _result_for(error: Exception) -> str:
    if isinstance(error, OperationTimeoutError):
        return "timeout"
    return "error"
