"""Task creation and edit factory for taskreset.

This module centralizes the edit-boundary validation and the lifecycle rules
for new and edited tasks, so the API and the session apply them consistently.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from taskreset.engine.reset_policy import compute_next_eligible
from taskreset.errors import ValidationError
from taskreset.models.task import (
    ResetParams,
    SubTask,
    SubTaskInput,
    Task,
    TaskCategory,
    TaskEdit,
    TaskInput,
    rollup_completed,
)


def validate_reset_params(
    category: Optional[TaskCategory],
    days: Optional[Sequence[int]],
    hours: Optional[int],
    *,
    subject: str = "task",
) -> None:
    """Reject structurally invalid category/params combinations.

    Args:
        category: Reset category (None for a sub-task without its own schedule)
        days: Weekday indices for SpecificDay (0=Sunday ... 6=Saturday)
        hours: Hour count for SpecificHours
        subject: Name used in error messages

    Raises:
        ValidationError: If the combination is invalid
    """
    if category == TaskCategory.SPECIFIC_HOURS:
        if isinstance(hours, bool) or not isinstance(hours, int) or hours <= 0:
            raise ValidationError(f"{subject}: 'SpecificHours' requires a positive whole number of hours")
    if category == TaskCategory.SPECIFIC_DAY:
        if not days:
            raise ValidationError(f"{subject}: 'SpecificDay' requires at least one weekday")
        invalid = [d for d in days if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6]
        if invalid:
            raise ValidationError(f"{subject}: weekday indices must be 0 (Sunday) to 6 (Saturday), got {invalid}")


def validate_sub_task_inputs(sub_tasks: Sequence[SubTaskInput]) -> None:
    """Sub-tasks need non-empty, unique titles and valid params.

    Toggles address sub-tasks by title, so duplicates would be ambiguous.
    """
    seen = set()
    for sub_task in sub_tasks:
        title = sub_task.title.strip()
        if not title:
            raise ValidationError("Sub-task title must not be empty")
        if title in seen:
            raise ValidationError(f"Duplicate sub-task title: {title!r}")
        seen.add(title)
        validate_reset_params(
            sub_task.category,
            sub_task.specific_reset_days,
            sub_task.specific_reset_hours,
            subject=f"sub-task {title!r}",
        )


def _sorted_days(category: Optional[TaskCategory], days: Sequence[int]) -> List[int]:
    if category != TaskCategory.SPECIFIC_DAY:
        return []
    return sorted(set(days))


def create_sub_task(sub_task_input: SubTaskInput, now: datetime) -> SubTask:
    """Build a fresh sub-task: incomplete, scheduled from `now` if it has a category."""
    category = sub_task_input.category
    days = _sorted_days(category, sub_task_input.specific_reset_days)
    hours = sub_task_input.specific_reset_hours if category == TaskCategory.SPECIFIC_HOURS else None

    if category is None or category == TaskCategory.ENDED:
        return SubTask(title=sub_task_input.title.strip(), category=category)

    return SubTask(
        title=sub_task_input.title.strip(),
        is_completed=False,
        category=category,
        specific_reset_days=days,
        specific_reset_hours=hours,
        next_eligible_at=compute_next_eligible(category, ResetParams(days=days, hours=hours), now, False),
    )


def create_task(owner_id: str, task_input: TaskInput, now: datetime) -> Task:
    """Create a task with its initial schedule.

    Args:
        owner_id: Owner of the new task
        task_input: Validated creation payload
        now: Creation instant

    Returns:
        New Task (Ended tasks are created completed with no schedule)

    Raises:
        ValidationError: If the title, params or sub-tasks are invalid
    """
    title = task_input.title.strip()
    if not title:
        raise ValidationError("Task title must not be empty")
    validate_reset_params(
        task_input.category, task_input.specific_reset_days, task_input.specific_reset_hours
    )
    validate_sub_task_inputs(task_input.sub_tasks)

    category = task_input.category
    days = _sorted_days(category, task_input.specific_reset_days)
    hours = task_input.specific_reset_hours if category == TaskCategory.SPECIFIC_HOURS else None

    return Task(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        title=title,
        description=task_input.description,
        tags=list(task_input.tags),
        category=category,
        specific_reset_days=days,
        specific_reset_hours=hours,
        is_completed=category == TaskCategory.ENDED,
        last_completion_at=None,
        next_eligible_at=compute_next_eligible(category, ResetParams(days=days, hours=hours), now, False),
        sub_tasks=[create_sub_task(st, now) for st in task_input.sub_tasks],
        created_at=now,
        updated_at=now,
    )


def _edit_sub_tasks(current: Sequence[SubTask], inputs: Sequence[SubTaskInput], now: datetime) -> List[SubTask]:
    """Keep state for sub-tasks whose title and schedule are unchanged."""
    existing: Dict[str, SubTask] = {st.title: st for st in current}
    out: List[SubTask] = []
    for sub_task_input in inputs:
        fresh = create_sub_task(sub_task_input, now)
        kept = existing.get(fresh.title)
        if (
            kept is not None
            and kept.category == fresh.category
            and kept.specific_reset_days == fresh.specific_reset_days
            and kept.specific_reset_hours == fresh.specific_reset_hours
        ):
            out.append(kept)
        else:
            out.append(fresh)
    return out


def apply_task_edit(task: Task, edit: TaskEdit, now: datetime) -> Task:
    """Apply a user edit to a task.

    Changing the category or its params recomputes the schedule from `now`
    using the current completion flag (a completed countdown is re-based on
    its last completion). Switching to Ended completes the task; leaving Ended
    reopens it.

    Args:
        task: Current task value
        edit: Fields to change (unset fields are kept)
        now: Instant of the edit

    Returns:
        New Task value

    Raises:
        ValidationError: If the edited task would be invalid
    """
    fields = edit.model_fields_set
    if "category" in fields and edit.category is None:
        raise ValidationError("Task category is required")

    title = task.title
    if "title" in fields:
        title = (edit.title or "").strip()
        if not title:
            raise ValidationError("Task title must not be empty")

    category = edit.category if "category" in fields else task.category
    raw_days = edit.specific_reset_days if "specific_reset_days" in fields else task.specific_reset_days
    hours = edit.specific_reset_hours if "specific_reset_hours" in fields else task.specific_reset_hours
    raw_days = raw_days or []
    validate_reset_params(category, raw_days, hours)
    days = _sorted_days(category, raw_days)
    if category != TaskCategory.SPECIFIC_HOURS:
        hours = None

    sub_tasks = task.sub_tasks
    if "sub_tasks" in fields and edit.sub_tasks is not None:
        validate_sub_task_inputs(edit.sub_tasks)
        sub_tasks = _edit_sub_tasks(task.sub_tasks, edit.sub_tasks, now)

    updates = {
        "title": title,
        "description": edit.description if "description" in fields and edit.description is not None else task.description,
        "tags": list(edit.tags) if "tags" in fields and edit.tags is not None else task.tags,
        "category": category,
        "specific_reset_days": days,
        "specific_reset_hours": hours,
        "sub_tasks": sub_tasks,
    }

    schedule_changed = (
        category != task.category
        or days != task.specific_reset_days
        or hours != task.specific_reset_hours
    )
    is_completed = task.is_completed
    last_completion_at = task.last_completion_at
    if category == TaskCategory.ENDED:
        is_completed = True
    elif task.category == TaskCategory.ENDED:
        is_completed = False
        last_completion_at = None
    elif sub_tasks and "sub_tasks" in fields:
        is_completed = rollup_completed(sub_tasks)
        if not is_completed:
            last_completion_at = None
        elif not task.is_completed:
            last_completion_at = now

    if schedule_changed or is_completed != task.is_completed:
        base = now
        if category == TaskCategory.COUNTDOWN_24H and is_completed and last_completion_at is not None:
            base = last_completion_at
        updates["next_eligible_at"] = compute_next_eligible(
            category, ResetParams(days=days, hours=hours), base, is_completed
        )
    updates["is_completed"] = is_completed
    updates["last_completion_at"] = last_completion_at

    updated = task.model_copy(update=updates)
    if updated == task:
        return task
    return updated.model_copy(update={"updated_at": now})
