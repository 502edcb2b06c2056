"""Main entry point for the CI VirtualMachine Operator.

Run with ``kopf run -m ci_vm_operator.main --all-namespaces``. kopf owns the
watch and the process lifecycle; reconciliation itself runs on the
operator's own worker pool so that retries follow a per-key backoff.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import kopf
from kubernetes import client, config
from werkzeug.serving import make_server

from . import health
from . import logging as structured_logging
from .config import load_configuration
from .constants import API_GROUP, API_VERSION, CONTROLLER_NAME, PLURAL_VIRTUAL_MACHINES
from .controller import Controller
from .handlers.virtualmachine import VirtualMachineHandler
from .metrics import PrometheusMetrics
from .models import Added, Deleted, Notification, Updated
from .services.gce.client import GCEProvider
from .services.gce.lifecycle import InstanceLifecycle
from .tracing import initialize_tracing
from .utils.events import EventRecorder
from .utils.rate_limit import rate_limit_k8s
from .utils.workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def list_virtual_machines(api: client.CustomObjectsApi) -> list[dict[str, Any]]:
    """List every VirtualMachine in the cluster."""
    result = rate_limit_k8s(api.list_cluster_custom_object)(
        group=API_GROUP,
        version=API_VERSION,
        plural=PLURAL_VIRTUAL_MACHINES,
    )
    return result.get("items", [])


def notification_for(event: dict[str, Any]) -> Notification | None:
    """Translate a raw watch event into a notification.

    The initial listing is delivered with no event type and is treated as
    an addition.
    """
    event_type = event.get("type")
    obj = event.get("object")
    if not isinstance(obj, dict):
        return None
    if event_type in (None, "ADDED"):
        return Added(obj)
    if event_type == "MODIFIED":
        return Updated(None, obj)
    if event_type == "DELETED":
        return Deleted(obj)
    return None


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Configure the operator and start the worker pool."""
    # Configuration errors are fatal: kopf stops the operator if startup fails
    operator_config = load_configuration()
    structured_logging.setup_structured_logging(operator_config.log_level)
    initialize_tracing()

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    settings.watching.server_timeout = 300

    metrics = PrometheusMetrics()
    load_kube_config()
    custom_api = client.CustomObjectsApi()
    core_api = client.CoreV1Api()

    lifecycle = InstanceLifecycle(
        GCEProvider(),
        project=operator_config.project,
        zone=operator_config.zone,
        core_api=core_api,
        poll_interval=operator_config.poll_interval_seconds,
        timeout=operator_config.operation_timeout_seconds,
        metrics=metrics,
    )
    handler = VirtualMachineHandler(custom_api, lifecycle, events=EventRecorder(core_api), metrics=metrics)
    controller = Controller(
        handler.reconcile,
        queue=RateLimitingQueue(name=CONTROLLER_NAME, metrics=metrics),
        metrics=metrics,
    )

    # Start metrics HTTP server with health check endpoints
    combined_app = health.create_combined_wsgi_app(ready_check=controller.has_synced)
    server = make_server("", operator_config.metrics_port, combined_app, threaded=True)
    threading.Thread(target=server.serve_forever, daemon=True).start()

    stop_event = threading.Event()
    worker_thread = threading.Thread(
        target=controller.run,
        args=(operator_config.num_workers, stop_event),
        name=f"{CONTROLLER_NAME}-controller",
        daemon=True,
    )
    worker_thread.start()

    for obj in list_virtual_machines(custom_api):
        controller.handle(Added(obj))
    controller.mark_synced()

    memo.controller = controller
    memo.stop_event = stop_event
    memo.worker_thread = worker_thread
    memo.metrics_server = server
    logger.info(f"Started {CONTROLLER_NAME} controller for {operator_config.project}/{operator_config.zone}")


@kopf.on.event(API_GROUP, API_VERSION, PLURAL_VIRTUAL_MACHINES)
def handle_event(event: dict[str, Any], memo: kopf.Memo, **_: Any) -> None:
    """Hand every watch event to the controller's queue."""
    controller: Controller | None = memo.get("controller")
    if controller is None:
        return
    notification = notification_for(event)
    if notification is None:
        logger.debug(f"Ignoring watch event of type {event.get('type')}")
        return
    controller.handle(notification)


@kopf.on.cleanup()
def shutdown(memo: kopf.Memo, **_: Any) -> None:
    """Stop the worker pool and wait for in-flight reconciles to finish."""
    stop_event: threading.Event | None = memo.get("stop_event")
    if stop_event is None:
        return
    logger.info("Shutting down controller")
    stop_event.set()
    memo.worker_thread.join()
    memo.metrics_server.shutdown()
