"""Data models for taskreset."""

from taskreset.models.task import (
    FLAT_DURATION_CATEGORIES,
    ResetParams,
    SubTask,
    SubTaskInput,
    Task,
    TaskCategory,
    TaskEdit,
    TaskInput,
    TaskUpdate,
    parse_category,
    rollup_completed,
)

__all__ = [
    "FLAT_DURATION_CATEGORIES",
    "ResetParams",
    "SubTask",
    "SubTaskInput",
    "Task",
    "TaskCategory",
    "TaskEdit",
    "TaskInput",
    "TaskUpdate",
    "parse_category",
    "rollup_completed",
]
