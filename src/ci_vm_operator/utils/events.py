"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP_VERSION,
    CONTROLLER_NAME,
    EVENT_REASON_FINALIZER_REMOVED,
    EVENT_REASON_INSTANCE_CREATED,
    EVENT_REASON_INSTANCE_DELETED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    KIND_VIRTUAL_MACHINE,
)

logger = logging.getLogger(__name__)


class EventRecorder:
    """Records events against VirtualMachine resources.

    Recording is best effort: failures are logged and never raised, so an
    unavailable events API cannot fail a reconcile.
    """

    def __init__(self, api: client.CoreV1Api | None) -> None:
        self.api = api

    def emit_event(
        self,
        meta: dict[str, Any],
        reason: str,
        message: str,
        type_: str = "Normal",
    ) -> None:
        """Emit a Kubernetes event.

        Args:
            meta: Resource metadata (name, namespace, uid)
            reason: Event reason
            message: Event message
            type_: Event type (Normal or Warning)
        """
        if self.api is None:
            return
        namespace = meta.get("namespace") or "default"
        now = datetime.now(timezone.utc)
        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{meta.get('name', 'unknown')}."),
            involved_object=client.V1ObjectReference(
                api_version=API_GROUP_VERSION,
                kind=KIND_VIRTUAL_MACHINE,
                name=meta.get("name"),
                namespace=namespace,
                uid=meta.get("uid"),
            ),
            reason=reason,
            message=message,
            type=type_,
            source=client.V1EventSource(component=CONTROLLER_NAME),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self.api.create_namespaced_event(namespace=namespace, body=body)
        except Exception as e:
            logger.warning(f"Failed to record event {reason} for {namespace}/{meta.get('name')}: {e}")

    def emit_reconcile_started(self, meta: dict[str, Any]) -> None:
        """Emit reconcile started event."""
        self.emit_event(meta, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")

    def emit_reconcile_failed(self, meta: dict[str, Any], message: str) -> None:
        """Emit reconcile failed event."""
        self.emit_event(meta, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")

    def emit_instance_created(self, meta: dict[str, Any], address: str | None) -> None:
        """Emit instance created event."""
        self.emit_event(meta, EVENT_REASON_INSTANCE_CREATED, f"GCE instance created with address {address}")

    def emit_instance_deleted(self, meta: dict[str, Any]) -> None:
        """Emit instance deleted event."""
        self.emit_event(meta, EVENT_REASON_INSTANCE_DELETED, "GCE instance deleted")

    def emit_finalizer_removed(self, meta: dict[str, Any]) -> None:
        """Emit finalizer removed event."""
        self.emit_event(meta, EVENT_REASON_FINALIZER_REMOVED, "Cleanup complete, finalizer removed")
