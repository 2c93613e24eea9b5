"""Unit tests for cluster event records."""

import dataclasses
from datetime import datetime, timezone

import pytest

from events import (
    DEFAULT_REPORTING_CONTROLLER,
    MAX_NOTE_LENGTH,
    ClusterEvent,
    EventConstructionError,
    EventType,
    format_event_time,
)

# ==================== EventType tests ====================


class TestEventType:
    """Tests for the EventType enum."""

    def test_normal_value(self):
        assert EventType.NORMAL.value == "Normal"

    def test_warning_value(self):
        assert EventType.WARNING.value == "Warning"

    def test_all_members(self):
        assert len(EventType) == 2


# ==================== ClusterEvent tests ====================


class TestClusterEvent:
    """Tests for the ClusterEvent dataclass."""

    @pytest.fixture
    def sample_event(self, sample_subject):
        return ClusterEvent(
            regarding=sample_subject,
            related=None,
            event_type=EventType.NORMAL,
            reason="Successful Update",
            action="update",
            message="Resource update was successful.",
        )

    def test_immutable(self, sample_event):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_event.reason = "Other"

    def test_new_defaults_related(self, sample_subject):
        event = ClusterEvent.new(
            regarding=sample_subject,
            event_type="Warning",
            reason="Failed",
            action="update",
            message="boom",
        )
        assert event.related is None
        assert event.event_type is EventType.WARNING

    def test_new_missing_field_raises(self, sample_subject):
        with pytest.raises(EventConstructionError) as exc_info:
            ClusterEvent.new(
                regarding=sample_subject,
                event_type=EventType.NORMAL,
                action="update",
                message="ok",
            )
        assert "reason" in str(exc_info.value)

    def test_new_unknown_field_raises(self, sample_subject):
        with pytest.raises(EventConstructionError) as exc_info:
            ClusterEvent.new(
                regarding=sample_subject,
                event_type=EventType.NORMAL,
                reason="r",
                action="update",
                message="ok",
                severity="high",
            )
        assert "severity" in str(exc_info.value)

    def test_to_manifest(self, sample_event):
        when = datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
        manifest = sample_event.to_manifest(
            operator="widget-operator", reporting_instance="pod-1", event_time=when
        )

        assert manifest["apiVersion"] == "events.k8s.io/v1"
        assert manifest["kind"] == "Event"
        assert manifest["metadata"] == {"generateName": "foo.", "namespace": "default"}
        assert manifest["regarding"] == {
            "apiVersion": "example.com/v1",
            "kind": "Widget",
            "name": "foo",
            "namespace": "default",
            "uid": "8f4b1c2e-0000-4000-8000-000000000001",
            "resourceVersion": "42",
        }
        assert manifest["type"] == "Normal"
        assert manifest["reason"] == "Successful Update"
        assert manifest["action"] == "update"
        assert manifest["note"] == "Resource update was successful."
        assert manifest["eventTime"] == "2024-01-15T10:30:00.123456Z"
        assert manifest["reportingController"] == "widget-operator"
        assert manifest["reportingInstance"] == "pod-1"
        assert "related" not in manifest

    def test_to_manifest_default_controller(self, sample_event):
        manifest = sample_event.to_manifest()
        assert manifest["reportingController"] == DEFAULT_REPORTING_CONTROLLER
        assert manifest["eventTime"].endswith("Z")

    def test_to_manifest_related(self, sample_subject):
        event = ClusterEvent.new(
            regarding=sample_subject,
            related={"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p1"}},
            event_type=EventType.WARNING,
            reason="Crash",
            action="update",
            message="pod crashed",
        )
        manifest = event.to_manifest()
        assert manifest["related"] == {"apiVersion": "v1", "kind": "Pod", "name": "p1"}

    def test_to_manifest_cluster_scoped(self):
        event = ClusterEvent.new(
            regarding={"apiVersion": "v1", "kind": "Node", "metadata": {"name": "n1"}},
            event_type=EventType.NORMAL,
            reason="Ready",
            action="reconcile",
            message="node ready",
        )
        assert event.to_manifest()["metadata"]["namespace"] == "default"

    def test_to_manifest_truncates_note(self, sample_subject):
        event = ClusterEvent.new(
            regarding=sample_subject,
            event_type=EventType.WARNING,
            reason="Failed",
            action="update",
            message="x" * 5000,
        )
        note = event.to_manifest()["note"]
        assert len(note) == MAX_NOTE_LENGTH
        assert note.endswith("...")

    def test_series_key_equal_for_same_event(self, sample_event, sample_subject):
        again = dataclasses.replace(sample_event, regarding=dict(sample_subject))
        assert again.series_key() == sample_event.series_key()

    def test_series_key_ignores_resource_version(self, sample_event, sample_subject):
        newer = dict(sample_subject)
        newer["metadata"] = dict(sample_subject["metadata"], resourceVersion="43")
        again = dataclasses.replace(sample_event, regarding=newer)
        assert again.series_key() == sample_event.series_key()

    def test_series_key_differs_by_message(self, sample_event):
        other = dataclasses.replace(sample_event, message="different")
        assert other.series_key() != sample_event.series_key()


class TestFormatEventTime:
    """Tests for format_event_time."""

    def test_naive_treated_as_utc(self):
        assert format_event_time(datetime(2024, 1, 1, 0, 0, 0)) == (
            "2024-01-01T00:00:00.000000Z"
        )
