"""Stage budgets and retry policies shared by the harvest pipeline.

Every browser-driven stage runs as an asyncio task raced against a budget.
The result is a :class:`StageOutcome` that tells the caller whether the stage
completed, failed with an exception, or never settled within its budget.

Timed-out stages are cancelled by default so that Playwright pages opened by
the stage are closed through their scoped handles. Passing
``cancel_on_timeout=False`` keeps the task running in the background; the
outcome then exposes the pending task and its eventual failure is logged
instead of surfacing as an unhandled task exception.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageStatus(enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class StageOutcome(Generic[T]):
    """Result of a stage raced against its budget."""

    label: str
    status: StageStatus
    value: T | None = None
    error: BaseException | None = None
    pending: asyncio.Task[Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status is StageStatus.COMPLETED

    @property
    def timed_out(self) -> bool:
        return self.status is StageStatus.TIMED_OUT

    @property
    def running_in_background(self) -> bool:
        """True when a timed-out stage was left running instead of cancelled."""

        return self.pending is not None and not self.pending.done()


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times a stage may be attempted and how long each attempt may take."""

    max_attempts: int
    per_attempt_budget: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.per_attempt_budget <= 0:
            raise ValueError("per_attempt_budget must be positive")

    @property
    def total_budget(self) -> float:
        return self.max_attempts * self.per_attempt_budget


def _consume_background_result(label: str) -> Callable[[asyncio.Task[Any]], None]:
    def _done(task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("[stage] background %s finished with error: %s", label, exc)
        else:
            logger.debug("[stage] background %s finished after its budget", label)

    return _done


async def run_stage(
    factory: Callable[[], Awaitable[T]],
    budget: float,
    *,
    label: str = "stage",
    cancel_on_timeout: bool = True,
) -> StageOutcome[T]:
    """Run ``factory()`` as a task and wait at most ``budget`` seconds for it."""

    task: asyncio.Task[T] = asyncio.ensure_future(factory())
    try:
        done, _ = await asyncio.wait({task}, timeout=budget)
    except asyncio.CancelledError:
        # The caller was cancelled (e.g. an enclosing budget expired).
        task.cancel()
        raise

    if not done:
        if cancel_on_timeout:
            task.cancel()
            # Let the task unwind its finally blocks before returning.
            await asyncio.gather(task, return_exceptions=True)
            logger.info("[stage] %s cancelled after %.1fs budget", label, budget)
            return StageOutcome(label=label, status=StageStatus.TIMED_OUT)
        task.add_done_callback(_consume_background_result(label))
        logger.info("[stage] %s exceeded %.1fs budget; left running", label, budget)
        return StageOutcome(label=label, status=StageStatus.TIMED_OUT, pending=task)

    if task.cancelled():
        return StageOutcome(
            label=label, status=StageStatus.FAILED, error=asyncio.CancelledError()
        )
    exc = task.exception()
    if exc is not None:
        return StageOutcome(label=label, status=StageStatus.FAILED, error=exc)
    return StageOutcome(label=label, status=StageStatus.COMPLETED, value=task.result())


async def retry_stage(
    factory: Callable[[], Awaitable[T | None]],
    policy: RetryPolicy,
    *,
    label: str = "stage",
    accept: Callable[[T | None], bool] = bool,
) -> T | None:
    """Attempt ``factory`` under ``policy`` until ``accept`` approves a result.

    Returns the accepted value, or the last completed value (possibly empty)
    once every attempt is spent. Failures and timeouts count as attempts.
    """

    last: T | None = None
    for attempt in range(1, policy.max_attempts + 1):
        outcome = await run_stage(
            factory,
            policy.per_attempt_budget,
            label=f"{label} attempt {attempt}/{policy.max_attempts}",
        )
        if outcome.ok:
            last = outcome.value
            if accept(outcome.value):
                return outcome.value
        elif outcome.error is not None:
            logger.warning("[stage] %s attempt %d failed: %s", label, attempt, outcome.error)
    return last
