"""Filtering and ordering of task lists.

Produces the deterministic list shown to the owner: filters are applied first,
then one of a fixed set of sort orders.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from taskreset.models.task import Task, TaskCategory, ensure_utc


class TaskSortOption(str, Enum):
    """Supported list orders."""
    DEFAULT = "default"
    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"
    NEXT_RESET_ASC = "next_reset_asc"


class TaskFilters(BaseModel):
    """List filters; unset filters match everything."""

    category: Optional[TaskCategory] = Field(None, description="Only tasks of this category")
    tags: List[str] = Field(default_factory=list, description="Tasks must carry all of these tags")
    search_text: str = Field("", description="Case-insensitive match on title or description")
    show_completed: bool = Field(True, description="Include completed tasks")


def matches(task: Task, filters: TaskFilters) -> bool:
    """Whether a task passes all filters."""
    if not filters.show_completed and task.is_completed:
        return False
    if filters.category is not None and task.category != filters.category:
        return False
    if filters.tags and not set(filters.tags).issubset(task.tags):
        return False
    needle = filters.search_text.strip().lower()
    if needle and needle not in task.title.lower() and needle not in task.description.lower():
        return False
    return True


def _reset_sort_key(task: Task) -> tuple:
    """Soonest reset first; tasks without one go last."""
    if task.next_eligible_at:
        return (0, task.next_eligible_at.timestamp())
    return (1, float('inf'))


def _default_sort_key(task: Task) -> tuple:
    # Incomplete first, ordered by soonest reset; ties and completed
    # tasks fall back to newest first.
    if task.is_completed:
        return (1, (1, 0.0), -task.created_at.timestamp())
    return (0, _reset_sort_key(task), -task.created_at.timestamp())


def sort_tasks(tasks: Sequence[Task], sort: TaskSortOption = TaskSortOption.DEFAULT) -> List[Task]:
    """Sort tasks by the given option (stable, deterministic).

    Args:
        tasks: Tasks to sort
        sort: Sort option

    Returns:
        New sorted list
    """
    if sort == TaskSortOption.CREATED_DESC:
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)
    if sort == TaskSortOption.CREATED_ASC:
        return sorted(tasks, key=lambda t: t.created_at)
    if sort == TaskSortOption.TITLE_ASC:
        return sorted(tasks, key=lambda t: t.title.lower())
    if sort == TaskSortOption.TITLE_DESC:
        return sorted(tasks, key=lambda t: t.title.lower(), reverse=True)
    if sort == TaskSortOption.NEXT_RESET_ASC:
        return sorted(tasks, key=lambda t: (t.is_completed, _reset_sort_key(t)))
    return sorted(tasks, key=_default_sort_key)


def filter_and_sort(
    tasks: Sequence[Task],
    filters: Optional[TaskFilters] = None,
    sort: TaskSortOption = TaskSortOption.DEFAULT,
) -> List[Task]:
    """Apply filters, then sort."""
    filters = filters or TaskFilters()
    return sort_tasks([task for task in tasks if matches(task, filters)], sort)


def is_overdue(task: Task, now: datetime) -> bool:
    """An incomplete task whose eligibility boundary has already passed."""
    if task.is_completed or task.next_eligible_at is None:
        return False
    return task.next_eligible_at <= ensure_utc(now)
