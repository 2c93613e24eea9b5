"""
Action Executor - Flushes the side effects accumulated on an action context.

Runs after the handler pipeline has completed: applies descendants,
applies the pending status and emits the registered events. Each flush
operation reads the context and never modifies it.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from action_context import ActionContext
from cluster import ClusterClient
from config import Config, get_config
from event_recorder import EventRecorder
from manifests import metadata

logger = logging.getLogger(__name__)

# Returned by apply_status when there is no pending status
NOOP = "noop"


class DescendantApplyError(Exception):
    """Raised when one or more descendants could not be applied."""

    def __init__(
        self,
        failures: List[Tuple[Dict[str, Any], Exception]],
        applied: int,
    ):
        self.failures = failures
        self.applied = applied
        names = ", ".join(
            f"{d.get('kind')}/{metadata(d).get('name')}" for d, _ in failures
        )
        super().__init__(
            f"Failed to apply {len(failures)} of {len(failures) + applied} "
            f"descendant(s): {names}"
        )


def new(**kwargs: Any) -> ActionContext:
    """Build a fresh action context. See :meth:`ActionContext.new`."""
    return ActionContext.new(**kwargs)


class ActionExecutor:
    """
    Applies an action context's accumulated effects to the cluster.

    Collaborators are injected so tests can substitute doubles for the
    cluster client and the event recorder.
    """

    def __init__(self, client: ClusterClient, recorder: EventRecorder):
        self.client = client
        self.recorder = recorder

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "ActionExecutor":
        config = config or get_config()
        client = ClusterClient.from_config(config)
        return cls(client, EventRecorder.from_config(client, config))

    async def emit_events(self, ctx: ActionContext) -> None:
        """
        Emit every event registered on the context.

        Best effort: a failure to record one event is logged and the
        remaining events are still emitted.
        """
        for event in ctx.events:
            try:
                await self.recorder.emit(event, ctx.operator, ctx.connection)
            except Exception as e:
                logger.warning(
                    f"Failed to emit event '{event.reason}' for "
                    f"{_subject_name(ctx)}: {e}",
                    exc_info=True,
                )

    async def apply_status(self, ctx: ActionContext, **options: Any) -> Any:
        """
        Apply the pending status to the subject's status subresource.

        Args:
            ctx: The action context.
            **options: Passed through to the cluster client.

        Returns:
            The cluster client's result, or NOOP if no status is pending.
        """
        if ctx.status is None:
            logger.debug(f"No status to apply for {_subject_name(ctx)}")
            return NOOP

        resource = dict(ctx.subject)
        resource["status"] = ctx.status
        logger.debug(f"Applying status for {_subject_name(ctx)}")
        return await self.client.apply_status(resource, ctx.connection, **options)

    async def apply_descendants(self, ctx: ActionContext, **options: Any) -> None:
        """
        Apply every descendant registered on the context.

        All descendants are attempted even if some fail.

        Raises:
            DescendantApplyError: If any descendant failed to apply.
        """
        failures: List[Tuple[Dict[str, Any], Exception]] = []
        applied = 0

        for descendant in ctx.descendants:
            try:
                await self.client.apply(descendant, ctx.connection, **options)
                applied += 1
            except Exception as e:
                logger.error(
                    f"Failed to apply descendant {descendant.get('kind')}/"
                    f"{metadata(descendant).get('name')} of "
                    f"{_subject_name(ctx)}: {e}"
                )
                failures.append((descendant, e))

        if failures:
            raise DescendantApplyError(failures, applied) from failures[0][1]

        if applied:
            logger.info(f"Applied {applied} descendant(s) of {_subject_name(ctx)}")

    async def flush(self, ctx: ActionContext, **options: Any) -> Any:
        """
        Run all three flush operations.

        Descendants are applied first, then the status. Events are emitted
        even if an apply step failed; the first failure is then re-raised.

        Returns:
            The result of :meth:`apply_status`.
        """
        error: Optional[Exception] = None
        result: Any = None

        try:
            await self.apply_descendants(ctx, **options)
        except Exception as e:
            error = e

        try:
            result = await self.apply_status(ctx, **options)
        except Exception as e:
            error = error or e

        await self.emit_events(ctx)

        if error is not None:
            raise error
        return result


def _subject_name(ctx: ActionContext) -> str:
    meta = metadata(ctx.subject)
    if meta.get("namespace"):
        return f"{meta['namespace']}/{meta.get('name')}"
    return str(meta.get("name"))
