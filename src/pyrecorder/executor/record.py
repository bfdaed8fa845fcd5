"""
Step recording: turns a Step into recorder tasks.

``record_step`` is what every actor call goes through. It announces the
step (``step.before``), queues its execution, and queues the bookkeeping
that reports the outcome (``step.passed`` / ``step.failed`` and
``step.finished``). The returned future resolves with the step's value,
or rejects with its failure.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from pyrecorder.core.status import StepStatus
from pyrecorder.core.step import Step, StepConfig, now_ms
from pyrecorder.core.timeout import TimeoutOrder
from pyrecorder.events import StepEvent

if TYPE_CHECKING:
    import asyncio

    from pyrecorder.context import SchedulerContext

logger = logging.getLogger(__name__)

__all__ = ["record_step", "retry_step"]


def record_step(
    ctx: SchedulerContext, step: Step, args: list[Any] | tuple[Any, ...]
) -> asyncio.Future[Any]:
    """
    Queue ``step`` for execution on the context's recorder.

    A trailing StepConfig argument is consumed and configures this step
    only (options, timeout in seconds, retry budget).

    Args:
        ctx: Scheduler context of the run
        step: Step to execute
        args: Arguments of the actor call

    Returns:
        Future resolving with the value returned by the step
    """
    recorder = ctx.recorder
    dispatcher = ctx.dispatcher
    args = list(args)
    step.set_status(StepStatus.QUEUED)

    if args and isinstance(args[-1], StepConfig):
        config = args.pop().get_config()
        if config["opts"]:
            applied = json.dumps(config["opts"], default=str)
            logger.debug(f"Step {step.name}: options applied {applied}")
            ctx.store.step_options = config["opts"]
            step.opts = config["opts"]
        if config["timeout"]:
            logger.debug(f"Step {step.name} timeout {config['timeout']}s")
            step.set_timeout(config["timeout"] * 1000, TimeoutOrder.CODE_LIMIT_TIME)
        if config["retry"]:
            retry_step(ctx, config["retry"])

    step.set_arguments(args)
    dispatcher.emit(StepEvent.BEFORE, step)

    outcome: dict[str, Any] = {}

    def execute() -> Any:
        outcome["ran"] = True
        if not step.start_time:
            # announced once, not on every replay
            dispatcher.emit(StepEvent.STARTED, step)
            step.start_time = now_ms()
        result = step.run(ctx, *args)
        if inspect.isawaitable(result):
            return _keep(result, outcome)
        outcome["value"] = result
        return result

    recorder.add(f"{step.name}: {step.humanize_args()}", execute, timeout_ms=step.timeout)

    dispatcher.emit(StepEvent.AFTER, step)

    def passed() -> None:
        step.end_time = now_ms()
        dispatcher.emit(StepEvent.PASSED, step, outcome.get("value"))
        dispatcher.emit(StepEvent.FINISHED, step)

    def failed(err: BaseException) -> None:
        if "ran" not in outcome:
            # the failure comes from an earlier task; this step never ran
            raise err
        step.set_status(StepStatus.FAILED)
        step.end_time = now_ms()
        dispatcher.emit(StepEvent.FAILED, step, err)
        dispatcher.emit(StepEvent.FINISHED, step)
        raise err

    recorder.add("step passed", passed)
    recorder.catch_without_stop(failed)
    return recorder.add("return result", lambda: outcome.get("value"))


def retry_step(ctx: SchedulerContext, opts: Any = None) -> None:
    """
    Replay the next step on failure.

    Pushes a retry frame now and pops it once the step has finished.
    """
    recorder = ctx.recorder
    recorder.retry(opts)

    def pop_frame(*_: Any) -> None:
        if recorder.retries:
            recorder.retries.pop()

    recorder.add(
        "remove retry frame on step finish",
        lambda: ctx.dispatcher.once(StepEvent.FINISHED, pop_frame),
        retry=False,
    )


async def _keep(awaitable: Any, outcome: dict[str, Any]) -> Any:
    outcome["value"] = await awaitable
    return outcome["value"]
