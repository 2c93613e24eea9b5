"""
Action Context - Accumulator threaded through reconciliation handler stages.

Handler stages receive a context, decide what should happen to the subject
resource and register deferred side effects on it: cluster events,
descendant resources and a pending status document. No I/O happens here;
the executor flushes the accumulated effects once the pipeline completes.

Every operation returns a new context, the original is never modified.
"""

import copy
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from events import ClusterEvent, EventType
from manifests import add_owner_reference


class ContextConstructionError(TypeError):
    """Raised when a context is built without its required fields."""


class Action(Enum):
    """Reconciliation action kinds."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RECONCILE = "reconcile"


REQUIRED_FIELDS = ("connection", "subject", "action")

StatusTransform = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class ActionContext:
    """State accumulated while handling one change to a subject resource."""

    action: Union[Action, str]
    connection: Any
    subject: Dict[str, Any]
    status: Optional[Dict[str, Any]] = None
    handler: Optional[str] = None
    assigns: Dict[str, Any] = field(default_factory=dict)
    descendants: Tuple[Dict[str, Any], ...] = ()
    events: Tuple[ClusterEvent, ...] = ()
    halted: bool = False
    operator: Optional[str] = None

    @classmethod
    def new(cls, **kwargs: Any) -> "ActionContext":
        """
        Build a context for one reconciliation attempt.

        Args:
            **kwargs: Context fields. ``connection``, ``subject`` and
                ``action`` are required, everything else has a default.

        Returns:
            A fresh ActionContext in the accumulating phase.

        Raises:
            ContextConstructionError: If a required field is missing or
                ``None``, or an unknown field is given.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ContextConstructionError(
                f"Unknown context fields: {', '.join(unknown)}"
            )

        missing = [name for name in REQUIRED_FIELDS if kwargs.get(name) is None]
        if missing:
            raise ContextConstructionError(
                f"Missing required context fields: {', '.join(missing)}"
            )

        action = kwargs["action"]
        if isinstance(action, str):
            try:
                kwargs["action"] = Action(action)
            except ValueError:
                # Custom action tags are passed through as-is
                pass

        for name in ("descendants", "events"):
            if name in kwargs:
                kwargs[name] = tuple(kwargs[name])

        return cls(**kwargs)

    @property
    def action_name(self) -> str:
        """The action as a plain string, e.g. 'update'."""
        if isinstance(self.action, Action):
            return self.action.value
        return str(self.action)

    @property
    def action_title(self) -> str:
        """Display form of the action: first letter upper-cased."""
        name = self.action_name
        return name[:1].upper() + name[1:]

    # Events

    def event(
        self,
        event_type: Union[EventType, str],
        reason: str,
        action: str,
        message: str,
        related: Optional[Dict[str, Any]] = None,
    ) -> "ActionContext":
        """
        Register an event regarding the subject resource.

        Args:
            event_type: Normal or Warning.
            reason: Short machine-readable reason.
            action: What was done, e.g. 'Scale'.
            message: Human-readable description.
            related: Optional secondary resource involved in the event.

        Returns:
            A new context with the event registered.
        """
        event = ClusterEvent(
            regarding=self.subject,
            related=related,
            event_type=EventType(event_type),
            reason=reason,
            action=action,
            message=message,
        )
        return self._add_event(event)

    def success_event(self, **overrides: Any) -> "ActionContext":
        """
        Register a Normal event reporting that the action succeeded.

        ``reason`` and ``message`` default to 'Successful <Action>' and
        'Resource <action> was successful.'. The event type, the regarding
        object and the action always come from this context, even when
        passed in ``overrides``.
        """
        values = {
            "reason": f"Successful {self.action_title}",
            "message": f"Resource {self.action_name} was successful.",
        }
        values.update(overrides)
        values.update(
            event_type=EventType.NORMAL,
            regarding=self.subject,
            action=self.action_name,
        )
        return self._add_event(ClusterEvent.new(**values))

    def failed_event(self, **overrides: Any) -> "ActionContext":
        """
        Register a Warning event reporting that the action failed.

        Same rules as :meth:`success_event`, with 'Failed <Action>' and
        'Resource <action> has failed, no reason as specified.' defaults.
        """
        values = {
            "reason": f"Failed {self.action_title}",
            "message": (
                f"Resource {self.action_name} has failed, no reason as specified."
            ),
        }
        values.update(overrides)
        values.update(
            event_type=EventType.WARNING,
            regarding=self.subject,
            action=self.action_name,
        )
        return self._add_event(ClusterEvent.new(**values))

    def _add_event(self, event: ClusterEvent) -> "ActionContext":
        return replace(self, events=(event,) + self.events)

    # Descendants

    def add_descendant(
        self, descendant: Dict[str, Any], omit_owner_ref: bool = False
    ) -> "ActionContext":
        """
        Register a descendant resource to be applied.

        An owner reference to the subject is added so the descendant is
        garbage collected with it. Pass ``omit_owner_ref=True`` for
        descendants living in another namespace, where such a reference is
        invalid; the descendant is then registered unmodified.

        Args:
            descendant: The child resource document.
            omit_owner_ref: Skip stamping the owner reference.

        Returns:
            A new context with the descendant registered.
        """
        if not omit_owner_ref:
            descendant = add_owner_reference(descendant, self.subject)
        return replace(self, descendants=(descendant,) + self.descendants)

    # Status

    def update_status(self, transform: StatusTransform) -> "ActionContext":
        """
        Compute a new pending status for the subject.

        ``transform`` receives the current status and returns the updated
        one. The current status is the pending one if a previous call set
        it, otherwise the subject's observed status, otherwise an empty
        dict. Can be called multiple times.
        """
        if self.status is not None:
            current = self.status
        else:
            current = self.subject.get("status")
            if current is None:
                current = {}

        new_status = transform(copy.deepcopy(current))
        return replace(self, status=new_status)

    # Assigns and halting

    def assign(
        self, key: Optional[str] = None, value: Any = None, **kwargs: Any
    ) -> "ActionContext":
        """
        Store values in the assigns bag.

        Accepts either a single ``key``/``value`` pair or keyword arguments.
        """
        assigns = dict(self.assigns)
        if key is not None:
            assigns[key] = value
        assigns.update(kwargs)
        return replace(self, assigns=assigns)

    def halt(self) -> "ActionContext":
        """Stop the remaining handler stages from running."""
        return replace(self, halted=True)


def new(**kwargs: Any) -> ActionContext:
    """Build a new context. See :meth:`ActionContext.new`."""
    return ActionContext.new(**kwargs)
