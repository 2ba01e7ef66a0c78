"""Wire/persisted representation of tasks.

- Timestamps are ISO-8601 strings (or null).
- `category` is the enumeration label.
- `subTasks` is a JSON-encoded array of sub-task objects.
- `specificResetDays` / `specificResetHours` are present only for the
  category that uses them.

Sub-task objects written by earlier versions of the app used snake_case keys
(`last_completion_timestamp`, `next_reset_timestamp`, ...) and an empty string
for "no category"; those are still accepted when decoding.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from taskreset.errors import ValidationError
from taskreset.models.task import SubTask, Task, TaskCategory, ensure_utc, parse_category


def format_instant(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for an instant (UTC), or None."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_instant(raw: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (or pass a datetime through) as aware UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not isinstance(raw, str):
        raise ValidationError(f"Invalid timestamp: {raw!r}")
    try:
        return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {raw!r}") from None


def _first(obj: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in obj and obj[key] is not None:
            return obj[key]
    return None


def _completion_flag(obj: Dict[str, Any]) -> Any:
    """Raw `isCompleted` value; pydantic parses "false"/0 strictly and rejects junk."""
    raw = obj.get("isCompleted")
    return False if raw is None else raw


def _schedule_params_to_wire(category: Optional[TaskCategory], days: List[int], hours: Optional[int]) -> Dict[str, Any]:
    if category == TaskCategory.SPECIFIC_DAY:
        return {"specificResetDays": list(days)}
    if category == TaskCategory.SPECIFIC_HOURS:
        return {"specificResetHours": hours}
    return {}


def sub_task_to_wire(sub_task: SubTask) -> Dict[str, Any]:
    out: Dict[str, Any] = {"title": sub_task.title, "isCompleted": sub_task.is_completed}
    if sub_task.category is not None:
        out["category"] = sub_task.category.value
    out.update(_schedule_params_to_wire(sub_task.category, sub_task.specific_reset_days, sub_task.specific_reset_hours))
    out["lastCompletionInstant"] = format_instant(sub_task.last_completion_at)
    out["nextEligibleInstant"] = format_instant(sub_task.next_eligible_at)
    return out


def sub_task_from_wire(obj: Any) -> SubTask:
    if not isinstance(obj, dict):
        raise ValidationError(f"Sub-task must be an object, got {type(obj).__name__}")
    title = obj.get("title")
    # Toggles address sub-tasks by title.
    if not isinstance(title, str) or not title.strip():
        raise ValidationError(f"Sub-task title must be a non-empty string, got {title!r}")
    try:
        return SubTask(
            title=title,
            is_completed=_completion_flag(obj),
            category=parse_category(obj.get("category"), allow_empty=True),
            specific_reset_days=_first(obj, "specificResetDays", "specific_reset_days") or [],
            specific_reset_hours=_first(obj, "specificResetHours", "specific_reset_hours"),
            last_completion_at=parse_instant(_first(obj, "lastCompletionInstant", "last_completion_timestamp")),
            next_eligible_at=parse_instant(_first(obj, "nextEligibleInstant", "next_reset_timestamp")),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid sub-task {obj.get('title')!r}: {e}") from e


def encode_sub_tasks(sub_tasks: List[SubTask]) -> str:
    """JSON-encode sub-tasks for storage/transport."""
    return json.dumps([sub_task_to_wire(st) for st in sub_tasks])


def decode_sub_tasks(raw: Any) -> List[SubTask]:
    """Decode a JSON-encoded (or already parsed) sub-task array."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"subTasks is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ValidationError("subTasks must be a JSON array")
    return [sub_task_from_wire(obj) for obj in raw]


def task_to_wire(task: Task) -> Dict[str, Any]:
    """Wire representation of a task."""
    out: Dict[str, Any] = {
        "id": task.id,
        "ownerId": task.owner_id,
        "title": task.title,
        "description": task.description,
        "tags": list(task.tags),
        "category": task.category.value,
        "isCompleted": task.is_completed,
    }
    out.update(_schedule_params_to_wire(task.category, task.specific_reset_days, task.specific_reset_hours))
    out.update(
        {
            "lastCompletionInstant": format_instant(task.last_completion_at),
            "nextEligibleInstant": format_instant(task.next_eligible_at),
            "subTasks": encode_sub_tasks(task.sub_tasks),
            "createdAt": format_instant(task.created_at),
            "updatedAt": format_instant(task.updated_at),
        }
    )
    return out


def task_from_wire(obj: Dict[str, Any]) -> Task:
    """Parse a task from its wire representation.

    Raises:
        ValidationError: If the category is unknown or any field is malformed
    """
    if not isinstance(obj, dict):
        raise ValidationError("Task must be an object")
    category = parse_category(obj.get("category"))
    try:
        return Task(
            id=obj.get("id"),
            owner_id=obj.get("ownerId"),
            title=obj.get("title") or "",
            description=obj.get("description") or "",
            tags=obj.get("tags") or [],
            category=category,
            specific_reset_days=obj.get("specificResetDays") or [],
            specific_reset_hours=obj.get("specificResetHours"),
            is_completed=_completion_flag(obj),
            last_completion_at=parse_instant(obj.get("lastCompletionInstant")),
            next_eligible_at=parse_instant(obj.get("nextEligibleInstant")),
            sub_tasks=decode_sub_tasks(obj.get("subTasks")),
            created_at=parse_instant(obj.get("createdAt")),
            updated_at=parse_instant(obj.get("updatedAt")),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid task {obj.get('id')!r}: {e}") from e
