"""
Cluster Events - Immutable records of cluster-visible events.

Events are registered on an action context by handler stages and emitted
after the pipeline completes. Rendering follows the ``events.k8s.io/v1``
Event schema.
"""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from manifests import object_reference

DEFAULT_REPORTING_CONTROLLER = "action-context"
MAX_NOTE_LENGTH = 1024


class EventConstructionError(TypeError):
    """Raised when an event record is built from an incomplete field set."""


class EventType(Enum):
    """Types of cluster events."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class ClusterEvent:
    """Event describing something that happened to a resource."""

    regarding: Dict[str, Any]
    related: Optional[Dict[str, Any]]
    event_type: EventType
    reason: str
    action: str
    message: str

    @classmethod
    def new(cls, **kwargs: Any) -> "ClusterEvent":
        """
        Build an event from keyword fields.

        ``related`` is optional and defaults to ``None``.

        Raises:
            EventConstructionError: If a required field is missing or an
                unknown field is given.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise EventConstructionError(
                f"Unknown event fields: {', '.join(unknown)}"
            )

        kwargs.setdefault("related", None)
        missing = sorted(
            name for name in known - {"related"} if kwargs.get(name) is None
        )
        if missing:
            raise EventConstructionError(
                f"Missing required event fields: {', '.join(missing)}"
            )

        kwargs["event_type"] = EventType(kwargs["event_type"])
        return cls(**kwargs)

    def series_key(self) -> Tuple[Any, ...]:
        """Key identifying repeated occurrences of the same event."""
        related = None
        if self.related is not None:
            related = _reference_key(object_reference(self.related))
        return (
            _reference_key(object_reference(self.regarding)),
            related,
            self.event_type.value,
            self.reason,
            self.action,
            self.message,
        )

    def to_manifest(
        self,
        operator: Optional[str] = None,
        reporting_instance: str = "local",
        event_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Render the event as an ``events.k8s.io/v1`` Event document.

        Args:
            operator: Reporting controller name.
            reporting_instance: Identifier of the reporting instance.
            event_time: Time of the event, defaults to now (UTC).

        Returns:
            Event document ready to be created in the cluster.
        """
        regarding = object_reference(self.regarding)
        event_time = event_time or datetime.now(timezone.utc)
        name = regarding.get("name") or "event"

        note = self.message
        if len(note) > MAX_NOTE_LENGTH:
            note = note[: MAX_NOTE_LENGTH - 3] + "..."

        manifest = {
            "apiVersion": "events.k8s.io/v1",
            "kind": "Event",
            "metadata": {
                "generateName": f"{name}.",
                "namespace": regarding.get("namespace") or "default",
            },
            "regarding": regarding,
            "type": self.event_type.value,
            "reason": self.reason,
            "action": self.action,
            "note": note,
            "eventTime": format_event_time(event_time),
            "reportingController": operator or DEFAULT_REPORTING_CONTROLLER,
            "reportingInstance": reporting_instance,
        }
        if self.related is not None:
            manifest["related"] = object_reference(self.related)
        return manifest


def format_event_time(value: datetime) -> str:
    """Format a datetime as an RFC 3339 MicroTime string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _reference_key(reference: Dict[str, Any]) -> Tuple[Any, ...]:
    # resourceVersion changes on every write of the object
    return tuple(
        sorted(item for item in reference.items() if item[0] != "resourceVersion")
    )
