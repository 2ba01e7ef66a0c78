"""Task data model for taskreset."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from taskreset.errors import ValidationError


class TaskCategory(str, Enum):
    """Reset category enumeration (values are the wire labels)."""
    DAILY = "Daily"
    COUNTDOWN_24H = "Countdown24h"
    WEEKLY_MONDAY = "WeeklyMonday"
    SPECIFIC_DAY = "SpecificDay"
    SPECIFIC_HOURS = "SpecificHours"
    ENDED = "Ended"


# Fixed offset from the base instant, no calendar alignment
FLAT_DURATION_CATEGORIES = frozenset({TaskCategory.COUNTDOWN_24H, TaskCategory.SPECIFIC_HOURS})

# Labels written by earlier versions of the app
LEGACY_CATEGORY_LABELS = {
    "24h Countdown": TaskCategory.COUNTDOWN_24H,
    "Weekly (Monday)": TaskCategory.WEEKLY_MONDAY,
    "Specific Day": TaskCategory.SPECIFIC_DAY,
    "Specific Hours": TaskCategory.SPECIFIC_HOURS,
}


def parse_category(raw: Any, *, allow_empty: bool = False) -> Optional[TaskCategory]:
    """Convert a persisted/wire category label to TaskCategory.

    Args:
        raw: Label (or enum member) to convert
        allow_empty: Treat None/"" as "no category" instead of an error

    Returns:
        TaskCategory, or None when allow_empty and the label is empty

    Raises:
        ValidationError: If the label is unknown (or empty and not allowed)
    """
    if isinstance(raw, TaskCategory):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if allow_empty:
            return None
        raise ValidationError("Task category is required")
    if not isinstance(raw, str):
        raise ValidationError(f"Unknown task category: {raw!r}")

    label = raw.strip()
    legacy = LEGACY_CATEGORY_LABELS.get(label)
    if legacy is not None:
        return legacy
    try:
        return TaskCategory(label)
    except ValueError:
        raise ValidationError(f"Unknown task category: {raw!r}") from None


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize_schedule_fields(data: Dict[str, Any], *, optional_category: bool) -> Dict[str, Any]:
    """Apply the category/params/timestamp invariants to raw model input."""
    out = dict(data)
    category = parse_category(out.get("category"), allow_empty=optional_category)
    out["category"] = category

    if category is None:
        out.update(
            specific_reset_days=[],
            specific_reset_hours=None,
            last_completion_at=None,
            next_eligible_at=None,
        )
        return out

    if category == TaskCategory.ENDED:
        out.update(
            is_completed=True,
            specific_reset_days=[],
            specific_reset_hours=None,
            next_eligible_at=None,
        )
        if optional_category:
            out["last_completion_at"] = None
        return out

    if category != TaskCategory.SPECIFIC_DAY:
        out["specific_reset_days"] = []
    elif out.get("specific_reset_days") is None:
        out["specific_reset_days"] = []
    if category != TaskCategory.SPECIFIC_HOURS:
        out["specific_reset_hours"] = None
    return out


class ResetParams(BaseModel):
    """Category parameters: weekday set for SpecificDay, hour count for SpecificHours."""

    days: List[int] = Field(default_factory=list, description="Weekday indices (0=Sunday ... 6=Saturday)")
    hours: Optional[int] = Field(None, description="Hour count for SpecificHours")

    class Config:
        """Pydantic configuration."""
        frozen = True


class SubTask(BaseModel):
    """Child task of a Task.

    Without its own category a sub-task has no schedule and only resets
    together with its parent.
    """

    title: str = Field(..., description="Sub-task title (unique within its parent)")
    is_completed: bool = Field(False, description="Completion flag")
    category: Optional[TaskCategory] = Field(None, description="Independent reset category")
    specific_reset_days: List[int] = Field(default_factory=list, description="Weekdays for SpecificDay")
    specific_reset_hours: Optional[int] = Field(None, description="Hours for SpecificHours")
    last_completion_at: Optional[datetime] = Field(None, description="Last time completion was set")
    next_eligible_at: Optional[datetime] = Field(None, description="When the sub-task becomes eligible again")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _apply_invariants(cls, data):
        if not isinstance(data, dict):
            return data
        return _normalize_schedule_fields(data, optional_category=True)

    @field_validator("last_completion_at", "next_eligible_at")
    @classmethod
    def _as_utc(cls, v):
        return ensure_utc(v)

    @property
    def reset_params(self) -> ResetParams:
        return ResetParams(days=list(self.specific_reset_days), hours=self.specific_reset_hours)

    @property
    def has_own_schedule(self) -> bool:
        return self.category is not None and self.category != TaskCategory.ENDED


class Task(BaseModel):
    """Canonical recurring Task model."""

    id: str = Field(..., description="Unique task identifier")
    owner_id: str = Field(..., description="Owner who may read and write this task")
    title: str = Field(..., description="Task title")
    description: str = Field("", description="Free-form description")
    tags: List[str] = Field(default_factory=list, description="Free-form labels used for filtering")
    category: TaskCategory = Field(..., description="Reset category")
    specific_reset_days: List[int] = Field(default_factory=list, description="Weekdays for SpecificDay")
    specific_reset_hours: Optional[int] = Field(None, description="Hours for SpecificHours")
    is_completed: bool = Field(False, description="Completion flag")
    last_completion_at: Optional[datetime] = Field(None, description="Last time completion was set")
    next_eligible_at: Optional[datetime] = Field(
        None, description="When the task becomes eligible again (None only for Ended)"
    )
    sub_tasks: List[SubTask] = Field(default_factory=list, description="Ordered sub-tasks")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _apply_invariants(cls, data):
        if not isinstance(data, dict):
            return data
        return _normalize_schedule_fields(data, optional_category=False)

    @field_validator("last_completion_at", "next_eligible_at", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, v):
        return ensure_utc(v)

    @property
    def reset_params(self) -> ResetParams:
        return ResetParams(days=list(self.specific_reset_days), hours=self.specific_reset_hours)

    def find_sub_task(self, title: str) -> Optional[SubTask]:
        for sub_task in self.sub_tasks:
            if sub_task.title == title:
                return sub_task
        return None


def rollup_completed(sub_tasks: Iterable[SubTask]) -> bool:
    """Parent completion derived from its sub-tasks (Ended sub-tasks count as done)."""
    return all(st.is_completed or st.category == TaskCategory.ENDED for st in sub_tasks)


class SubTaskInput(BaseModel):
    """Sub-task as supplied when creating or editing a task."""
    title: str
    category: Optional[TaskCategory] = None
    specific_reset_days: List[int] = Field(default_factory=list)
    specific_reset_hours: Optional[int] = None


class TaskInput(BaseModel):
    """Payload for creating a task."""
    title: str = Field(..., description="Task title")
    description: str = Field("", description="Free-form description")
    tags: List[str] = Field(default_factory=list)
    category: TaskCategory = Field(..., description="Reset category")
    specific_reset_days: List[int] = Field(default_factory=list)
    specific_reset_hours: Optional[int] = None
    sub_tasks: List[SubTaskInput] = Field(default_factory=list)


class TaskEdit(BaseModel):
    """Partial edit of a task; only fields that are set are applied."""
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[TaskCategory] = None
    specific_reset_days: Optional[List[int]] = None
    specific_reset_hours: Optional[int] = None
    sub_tasks: Optional[List[SubTaskInput]] = None


# Fields a store update may touch
UPDATABLE_FIELDS = (
    "title",
    "description",
    "tags",
    "category",
    "specific_reset_days",
    "specific_reset_hours",
    "is_completed",
    "last_completion_at",
    "next_eligible_at",
    "sub_tasks",
    "updated_at",
)


class TaskUpdate(BaseModel):
    """Partial persistence request; only explicitly set fields are written."""
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[TaskCategory] = None
    specific_reset_days: Optional[List[int]] = None
    specific_reset_hours: Optional[int] = None
    is_completed: Optional[bool] = None
    last_completion_at: Optional[datetime] = None
    next_eligible_at: Optional[datetime] = None
    sub_tasks: Optional[List[SubTask]] = None
    updated_at: Optional[datetime] = None

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly set on this update (None included)."""
        return {name: getattr(self, name) for name in UPDATABLE_FIELDS if name in self.model_fields_set}

    def apply_to(self, task: Task) -> Task:
        """Apply this update to a task value, returning the new value."""
        return task.model_copy(update=self.changes())

    @classmethod
    def between(cls, before: Task, after: Task) -> "TaskUpdate":
        """Build the update that turns `before` into `after`."""
        changed = {
            name: getattr(after, name)
            for name in UPDATABLE_FIELDS
            if getattr(before, name) != getattr(after, name)
        }
        return cls(**changed)
