"""Reconciliation of elapsed eligibility windows.

Two layers:
- `reconcile_task` / `plan_reconciliation`: pure functions that compare each
  task's schedule against `now` and describe the resulting state transitions.
- `ReconciliationLoop`: a small polling service bound to one TaskSession that
  runs a pass every interval, persists changed tasks one at a time, and merges
  the store's confirmed rows back into the session.

The loop never marks anything completed; it only makes tasks eligible again
or moves a missed boundary forward.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from taskreset.engine.reset_policy import reschedule
from taskreset.errors import NotFoundError, PersistenceError
from taskreset.models.constants import DEFAULT_RECONCILE_INTERVAL_SECONDS, MIN_RECONCILE_INTERVAL_SECONDS
from taskreset.models.task import (
    FLAT_DURATION_CATEGORIES,
    SubTask,
    Task,
    TaskCategory,
    TaskUpdate,
    ensure_utc,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskTransition:
    """One task's change in a reconciliation pass, plus its persistence request."""

    task_id: str
    before: Task
    after: Task
    reasons: Tuple[str, ...]
    update: TaskUpdate


def _elapsed(at: Optional[datetime], now: datetime) -> bool:
    return at is not None and at <= now


def _reset_sub_task(task: Task, sub_task: SubTask, now: datetime) -> SubTask:
    return sub_task.model_copy(
        update={
            "is_completed": False,
            "last_completion_at": None,
            "next_eligible_at": reschedule(
                sub_task.category,
                sub_task.reset_params,
                now,
                False,
                subject=f"task {task.id} sub-task {sub_task.title!r}",
            ),
        }
    )


def _clear_unscheduled(sub_task: SubTask) -> SubTask:
    if sub_task.category is not None:
        return sub_task
    if not sub_task.is_completed:
        return sub_task
    return sub_task.model_copy(
        update={"is_completed": False, "last_completion_at": None, "next_eligible_at": None}
    )


def reconcile_task(task: Task, now: datetime) -> Optional[TaskTransition]:
    """Evaluate one task against `now`.

    Args:
        task: Task to evaluate
        now: Current instant

    Returns:
        TaskTransition if anything changed, else None
    """
    now = ensure_utc(now)
    if task.category == TaskCategory.ENDED:
        return None

    reasons: List[str] = []

    # 1. Sub-tasks with their own schedule reset independently.
    sub_tasks: List[SubTask] = []
    for sub_task in task.sub_tasks:
        if sub_task.has_own_schedule and sub_task.is_completed and _elapsed(sub_task.next_eligible_at, now):
            sub_tasks.append(_reset_sub_task(task, sub_task, now))
            reasons.append(f"sub-task {sub_task.title!r} re-eligible")
        else:
            sub_tasks.append(sub_task)
    sub_task_reset = bool(reasons)

    # 2. Parent.
    updates = {}
    if task.is_completed and _elapsed(task.next_eligible_at, now):
        updates = {
            "is_completed": False,
            "last_completion_at": None,
            "next_eligible_at": reschedule(task.category, task.reset_params, now, False, subject=f"task {task.id}"),
        }
        # Sub-tasks without a schedule always follow the parent.
        sub_tasks = [_clear_unscheduled(st) for st in sub_tasks]
        reasons.append("re-eligible")
    elif (
        not task.is_completed
        and _elapsed(task.next_eligible_at, now)
        and task.category not in FLAT_DURATION_CATEGORIES
    ):
        # Missed calendar boundary: move it forward, keep completion as is.
        # Flat-duration tasks stay overdue instead.
        updates = {
            "next_eligible_at": reschedule(task.category, task.reset_params, now, False, subject=f"task {task.id}"),
        }
        reasons.append("missed boundary advanced")
    elif task.is_completed and sub_task_reset:
        # A parent cannot stay completed with a re-eligible child.
        updates = {"is_completed": False, "last_completion_at": None}
        reasons.append("un-completed by sub-task reset")

    if not reasons:
        return None

    after = task.model_copy(update={**updates, "sub_tasks": sub_tasks, "updated_at": now})
    return TaskTransition(
        task_id=task.id,
        before=task,
        after=after,
        reasons=tuple(reasons),
        update=TaskUpdate.between(task, after),
    )


def plan_reconciliation(tasks: Sequence[Task], now: datetime) -> List[TaskTransition]:
    """Transitions for every task that changes at `now`, in input order."""
    transitions: List[TaskTransition] = []
    for task in tasks:
        transition = reconcile_task(task, now)
        if transition is not None:
            transitions.append(transition)
    return transitions


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    now: datetime
    checked: int = 0
    transitions: List[TaskTransition] = field(default_factory=list)
    persisted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    discarded: bool = False


class ReconciliationLoop:
    """Periodic reconciliation bound to the lifetime of one TaskSession.

    `start()` schedules the loop on the running event loop; `stop()` cancels it.
    Each tick awaits its own writes before sleeping, so ticks never overlap.
    """

    def __init__(
        self,
        session,
        *,
        interval_seconds: float = DEFAULT_RECONCILE_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.interval_seconds = max(MIN_RECONCILE_INTERVAL_SECONDS, float(interval_seconds))
        self.clock = clock or session.clock
        self._runner: Optional[asyncio.Task] = None
        self._pass_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        """Start ticking on the running event loop (no-op if already running)."""
        if self.is_running:
            return
        self._runner = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            f"Reconciliation started for owner {self.session.owner_id} (every {self.interval_seconds:g}s)"
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass
        logger.info(f"Reconciliation stopped for owner {self.session.owner_id}")

    async def _run(self) -> None:
        while self.session.is_alive:
            try:
                await self.run_once()
            except Exception:
                logger.exception(f"Reconciliation tick failed for owner {self.session.owner_id}")
            await asyncio.sleep(self.interval_seconds)

    async def run_once(self, now: Optional[datetime] = None) -> ReconciliationReport:
        """Run one pass: plan, persist sequentially, merge confirmed rows.

        Passes never overlap; a manual pass waits for a running tick.

        Args:
            now: Instant to evaluate against (defaults to the clock)

        Returns:
            ReconciliationReport for the pass
        """
        async with self._pass_lock:
            return await self._run_pass(ensure_utc(now) if now is not None else self.clock())

    async def _run_pass(self, now: datetime) -> ReconciliationReport:
        report = ReconciliationReport(now=now)
        if not self.session.is_alive:
            report.discarded = True
            return report

        tasks = self.session.tasks()
        report.checked = len(tasks)
        report.transitions = plan_reconciliation(tasks, now)

        for transition in report.transitions:
            if not self.session.is_alive:
                report.discarded = True
                break
            try:
                stored = self.session.persist(transition.task_id, transition.update)
            except (PersistenceError, NotFoundError) as e:
                # The un-reset snapshot stays in memory; the next tick retries.
                logger.error(f"Failed to persist reconciled task {transition.task_id}: {e}")
                report.failed.append(transition.task_id)
                continue

            if self.session.commit(stored):
                report.persisted.append(transition.task_id)
                logger.info(f"Reconciled task {transition.task_id}: {', '.join(transition.reasons)}")
            else:
                report.discarded = True

            # Let other coroutines (user toggles, shutdown) run between writes.
            await asyncio.sleep(0)

        if report.discarded:
            logger.info(f"Discarded pending reconciliation results for owner {self.session.owner_id}")
        return report
