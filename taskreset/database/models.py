"""SQLAlchemy database models for taskreset."""

from datetime import datetime, timezone
from typing import Optional, TypeVar, Union
import uuid
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from taskreset.database.database import Base
from taskreset.errors import ValidationError
from taskreset.models.task import Task, TaskCategory, ensure_utc, parse_category
from taskreset.models.wire import decode_sub_tasks, encode_sub_tasks

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def to_db_instant(value: Optional[datetime]) -> Optional[datetime]:
    """Store instants as naive UTC (portable across SQLite and Postgres)."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def _utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "managed_tasks"

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Owner association (all queries are scoped by it)
    owner_id = Column(String, nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)

    # Schedule
    category = Column(String, nullable=False, default=TaskCategory.DAILY.value)
    specific_reset_days = Column(JSON, nullable=True)
    specific_reset_hours = Column(Integer, nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    last_completion_at = Column(DateTime, nullable=True)
    next_eligible_at = Column(DateTime, nullable=True, index=True)

    # Sub-tasks (JSON-encoded wire array)
    sub_tasks = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=_utcnow_naive)
    updated_at = Column(DateTime, nullable=False, default=_utcnow_naive)

    def to_pydantic(self) -> Task:
        """Convert database model to Pydantic model.

        Raises:
            ValidationError: If the stored category, sub-tasks or any column is malformed
        """
        try:
            return Task(
                id=self.id,
                owner_id=self.owner_id,
                title=self.title,
                description=self.description or "",
                tags=self.tags or [],
                # Legacy labels ("24h Countdown", ...) are mapped here.
                category=parse_category(self.category),
                specific_reset_days=self.specific_reset_days or [],
                specific_reset_hours=self.specific_reset_hours,
                is_completed=bool(self.is_completed),
                last_completion_at=self.last_completion_at,
                next_eligible_at=self.next_eligible_at,
                sub_tasks=decode_sub_tasks(self.sub_tasks),
                created_at=self.created_at,
                updated_at=self.updated_at,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid stored task {self.id!r}: {e}") from e

    @classmethod
    def from_pydantic(cls, task: Task) -> "TaskDB":
        """Create database model from Pydantic model."""
        return cls(
            id=task.id,
            owner_id=task.owner_id,
            title=task.title,
            description=task.description,
            tags=list(task.tags),
            category=enum_to_value(task.category),
            specific_reset_days=list(task.specific_reset_days) or None,
            specific_reset_hours=task.specific_reset_hours,
            is_completed=task.is_completed,
            last_completion_at=to_db_instant(task.last_completion_at),
            next_eligible_at=to_db_instant(task.next_eligible_at),
            sub_tasks=encode_sub_tasks(task.sub_tasks),
            created_at=to_db_instant(task.created_at),
            updated_at=to_db_instant(task.updated_at),
        )

    def apply_changes(self, changes: dict) -> None:
        """Copy a TaskUpdate's explicit changes onto this row."""
        for name, value in changes.items():
            if name == "category":
                value = enum_to_value(value)
            elif name in ("last_completion_at", "next_eligible_at", "updated_at"):
                value = to_db_instant(value)
            elif name == "sub_tasks":
                value = encode_sub_tasks(value or [])
            elif name == "specific_reset_days":
                value = list(value) if value else None
            elif name == "tags":
                value = list(value or [])
            setattr(self, name, value)
