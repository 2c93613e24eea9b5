"""
Handler Pipeline - Runs an action context through an ordered list of stages.

A stage is any callable taking an ActionContext and returning a new one,
either directly or as an awaitable. A stage halts the pipeline by
returning a context with ``halted`` set.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from action_context import ActionContext
from executor import ActionExecutor
from manifests import metadata

logger = logging.getLogger(__name__)

Stage = Callable[[ActionContext], Union[ActionContext, Awaitable[ActionContext]]]


class Pipeline:
    """Ordered sequence of handler stages."""

    def __init__(self, stages: Optional[Sequence[Stage]] = None):
        self.stages: List[Stage] = list(stages or [])

    def add_stage(self, stage: Stage) -> "Pipeline":
        """Append a stage. Returns the pipeline for chaining."""
        self.stages.append(stage)
        return self

    async def run(self, ctx: ActionContext) -> ActionContext:
        """
        Run the context through every stage in order.

        Stops before the next stage once the context is halted.

        Args:
            ctx: The initial action context.

        Returns:
            The context produced by the last stage that ran.

        Raises:
            TypeError: If a stage does not return an ActionContext.
        """
        subject_name = metadata(ctx.subject).get("name")

        for stage in self.stages:
            if ctx.halted:
                logger.debug(f"Pipeline halted for {subject_name}")
                break

            stage_name = getattr(stage, "__name__", repr(stage))
            logger.debug(f"Running stage {stage_name} for {subject_name}")

            result = stage(ctx)
            if inspect.isawaitable(result):
                result = await result

            if not isinstance(result, ActionContext):
                raise TypeError(
                    f"Stage {stage_name} returned {type(result).__name__}, "
                    f"expected ActionContext"
                )
            ctx = result

        return ctx


async def reconcile(
    ctx: ActionContext,
    pipeline: Pipeline,
    executor: ActionExecutor,
    **options: Any,
) -> ActionContext:
    """
    Run the pipeline and flush the resulting context.

    Returns:
        The final context after the pipeline ran.
    """
    ctx = await pipeline.run(ctx)
    await executor.flush(ctx, **options)
    return ctx
