"""Completion cascade for user-initiated toggles.

A toggle on a parent task propagates down to its sub-tasks; a toggle on a
sub-task propagates up through the completion rollup. Both produce a new Task
value; nothing is persisted here.
"""

from datetime import datetime
from typing import List, Optional

from taskreset.engine.reset_policy import reschedule
from taskreset.errors import NotFoundError
from taskreset.models.task import SubTask, Task, TaskCategory, ensure_utc, rollup_completed, utc_now


def _set_sub_task_completion(task: Task, sub_task: SubTask, completed: bool, now: datetime) -> SubTask:
    """New sub-task value with its completion flag and own schedule updated."""
    if sub_task.category is None:
        return sub_task.model_copy(
            update={"is_completed": completed, "last_completion_at": None, "next_eligible_at": None}
        )
    return sub_task.model_copy(
        update={
            "is_completed": completed,
            "last_completion_at": now if completed else None,
            "next_eligible_at": reschedule(
                sub_task.category,
                sub_task.reset_params,
                now,
                completed,
                subject=f"task {task.id} sub-task {sub_task.title!r}",
            ),
        }
    )


def _parent_last_completion(task: Task, completed: bool, now: datetime) -> Optional[datetime]:
    if completed:
        return now
    # A countdown restarts from scratch when un-completed; other categories
    # keep the previous completion for reference.
    if task.category == TaskCategory.COUNTDOWN_24H:
        return None
    return task.last_completion_at


def toggle(task: Task, sub_task_title: Optional[str] = None, now: Optional[datetime] = None) -> Task:
    """Toggle completion of a task or one of its sub-tasks.

    Args:
        task: Task to toggle
        sub_task_title: Title of the sub-task to toggle; None toggles the parent
        now: Instant of the toggle (defaults to the current time)

    Returns:
        New Task value (the same object when the target is Ended)

    Raises:
        NotFoundError: If sub_task_title does not name a sub-task of this task
    """
    now = ensure_utc(now) if now is not None else utc_now()

    if sub_task_title is not None:
        target = task.find_sub_task(sub_task_title)
        if target is None:
            raise NotFoundError(f"Sub-task {sub_task_title!r} not found in task {task.id}")
        if target.category == TaskCategory.ENDED:
            return task

        sub_tasks: List[SubTask] = [
            _set_sub_task_completion(task, st, not st.is_completed, now) if st is target else st
            for st in task.sub_tasks
        ]
        completed = rollup_completed(sub_tasks)
    else:
        if task.category == TaskCategory.ENDED:
            return task

        completed = not task.is_completed
        sub_tasks = [
            st if st.category == TaskCategory.ENDED else _set_sub_task_completion(task, st, completed, now)
            for st in task.sub_tasks
        ]

    if task.category == TaskCategory.ENDED:
        # Ended parents stay completed with no schedule; only children change.
        return task.model_copy(update={"sub_tasks": sub_tasks, "updated_at": now})

    return task.model_copy(
        update={
            "sub_tasks": sub_tasks,
            "is_completed": completed,
            "last_completion_at": _parent_last_completion(task, completed, now),
            "next_eligible_at": reschedule(
                task.category, task.reset_params, now, completed, subject=f"task {task.id}"
            ),
            "updated_at": now,
        }
    )
