"""Tests for Kubernetes event utilities."""

from __future__ import annotations

from unittest.mock import MagicMock

from ci_vm_operator.utils.events import EventRecorder

META = {"name": "vm-1", "namespace": "ci", "uid": "uid-1"}


class TestEmitEvent:
    """Test cases for EventRecorder.emit_event."""

    def test_emit_event_normal(self):
        """Test emitting a normal event."""
        api = MagicMock()

        EventRecorder(api).emit_event(META, "TestReason", "Test message")

        kwargs = api.create_namespaced_event.call_args.kwargs
        assert kwargs["namespace"] == "ci"
        body = kwargs["body"]
        assert body.reason == "TestReason"
        assert body.message == "Test message"
        assert body.type == "Normal"
        assert body.involved_object.kind == "VirtualMachine"
        assert body.involved_object.uid == "uid-1"
        assert body.metadata.generate_name == "vm-1."

    def test_emit_event_warning(self):
        """Test emitting a warning event."""
        api = MagicMock()

        EventRecorder(api).emit_event(META, "ErrorReason", "Error occurred", type_="Warning")

        assert api.create_namespaced_event.call_args.kwargs["body"].type == "Warning"

    def test_emit_event_failure_is_swallowed(self):
        """Test that a failing events API does not raise."""
        api = MagicMock()
        api.create_namespaced_event.side_effect = RuntimeError("forbidden")

        EventRecorder(api).emit_event(META, "TestReason", "Test message")

    def test_no_api_is_noop(self):
        """Test that a recorder without an API client does nothing."""
        EventRecorder(None).emit_reconcile_started(META)


class TestEventHelpers:
    """Test cases for the named event helpers."""

    def _reason_and_type(self, emit):
        api = MagicMock()
        emit(EventRecorder(api))
        body = api.create_namespaced_event.call_args.kwargs["body"]
        return body.reason, body.type, body.message

    def test_reconcile_started(self):
        """Test the ReconcileStarted event."""
        reason, type_, _ = self._reason_and_type(lambda r: r.emit_reconcile_started(META))
        assert (reason, type_) == ("ReconcileStarted", "Normal")

    def test_reconcile_failed(self):
        """Test the ReconcileFailed event."""
        reason, type_, message = self._reason_and_type(lambda r: r.emit_reconcile_failed(META, "boom"))
        assert (reason, type_, message) == ("ReconcileFailed", "Warning", "boom")

    def test_instance_created(self):
        """Test the InstanceCreated event includes the address."""
        reason, _, message = self._reason_and_type(lambda r: r.emit_instance_created(META, "10.0.0.5"))
        assert reason == "InstanceCreated"
        assert "10.0.0.5" in message

    def test_instance_deleted(self):
        """Test the InstanceDeleted event."""
        reason, _, _ = self._reason_and_type(lambda r: r.emit_instance_deleted(META))
        assert reason == "InstanceDeleted"

    def test_finalizer_removed(self):
        """Test the FinalizerRemoved event."""
        reason, _, _ = self._reason_and_type(lambda r: r.emit_finalizer_removed(META))
        assert reason == "FinalizerRemoved"
