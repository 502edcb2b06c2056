"""Prometheus metrics for the CI VirtualMachine Operator.

Collectors are created and registered once, when ``PrometheusMetrics`` is
constructed during process wiring. Components receive a ``MetricsSink`` and
never touch a registry themselves.
"""

from __future__ import annotations

from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class MetricsSink(Protocol):
    """Metrics reported by the queue, the reconciler and the orchestrator."""

    def queue_added(self, queue: str) -> None:
        ...

    def queue_depth(self, queue: str, depth: int) -> None:
        ...

    def queue_retried(self, queue: str) -> None:
        ...

    def queue_dropped(self, queue: str) -> None:
        ...

    def reconcile_finished(self, result: str, duration: float) -> None:
        ...

    def gce_operation(self, operation: str, result: str, duration: float) -> None:
        ...

    def admission_decision(self, endpoint: str, allowed: bool) -> None:
        ...


class NullMetrics:
    """A sink that discards everything."""

    def queue_added(self, queue: str) -> None:
        pass

    def queue_depth(self, queue: str, depth: int) -> None:
        pass

    def queue_retried(self, queue: str) -> None:
        pass

    def queue_dropped(self, queue: str) -> None:
        pass

    def reconcile_finished(self, result: str, duration: float) -> None:
        pass

    def gce_operation(self, operation: str, result: str, duration: float) -> None:
        pass

    def admission_decision(self, endpoint: str, allowed: bool) -> None:
        pass


class PrometheusMetrics:
    """A sink backed by prometheus_client collectors."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        # Reconciliation metrics
        self.reconcile_total = Counter(
            "ci_vm_operator_reconcile_total",
            "Total number of reconciliations",
            ["result"],
            registry=registry,
        )
        self.reconcile_duration_seconds = Histogram(
            "ci_vm_operator_reconcile_duration_seconds",
            "Duration of reconciliations in seconds",
            buckets=[0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, 600.0],
            registry=registry,
        )

        # Work queue metrics
        self.queue_adds_total = Counter(
            "ci_vm_operator_workqueue_adds_total",
            "Total number of items added to the work queue",
            ["name"],
            registry=registry,
        )
        self.queue_depth_gauge = Gauge(
            "ci_vm_operator_workqueue_depth",
            "Current depth of the work queue",
            ["name"],
            registry=registry,
        )
        self.queue_retries_total = Counter(
            "ci_vm_operator_workqueue_retries_total",
            "Total number of rate-limited requeues",
            ["name"],
            registry=registry,
        )
        self.queue_drops_total = Counter(
            "ci_vm_operator_workqueue_drops_total",
            "Total number of items dropped after exhausting retries",
            ["name"],
            registry=registry,
        )

        # GCE operation metrics
        self.gce_operations_total = Counter(
            "ci_vm_operator_gce_operations_total",
            "Total number of GCE instance operations",
            ["operation", "result"],
            registry=registry,
        )
        self.gce_operation_duration_seconds = Histogram(
            "ci_vm_operator_gce_operation_duration_seconds",
            "Duration of GCE instance operations in seconds",
            ["operation"],
            buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0],
            registry=registry,
        )

        # Admission metrics
        self.admission_total = Counter(
            "ci_vm_operator_admission_total",
            "Total number of admission decisions",
            ["endpoint", "allowed"],
            registry=registry,
        )

    def queue_added(self, queue: str) -> None:
        self.queue_adds_total.labels(name=queue).inc()

    def queue_depth(self, queue: str, depth: int) -> None:
        self.queue_depth_gauge.labels(name=queue).set(depth)

    def queue_retried(self, queue: str) -> None:
        self.queue_retries_total.labels(name=queue).inc()

    def queue_dropped(self, queue: str) -> None:
        self.queue_drops_total.labels(name=queue).inc()

    def reconcile_finished(self, result: str, duration: float) -> None:
        self.reconcile_total.labels(result=result).inc()
        self.reconcile_duration_seconds.observe(duration)

    def gce_operation(self, operation: str, result: str, duration: float) -> None:
        self.gce_operations_total.labels(operation=operation, result=result).inc()
        self.gce_operation_duration_seconds.labels(operation=operation).observe(duration)

    def admission_decision(self, endpoint: str, allowed: bool) -> None:
        self.admission_total.labels(endpoint=endpoint, allowed=str(allowed).lower()).inc()
