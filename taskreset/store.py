"""Store port used by the session and the reconciliation loop.

The core depends on this Protocol instead of a concrete database, which keeps
the SQL store swappable and makes testing easier.
"""

from typing import List, Protocol

from taskreset.models.task import Task, TaskUpdate


class TaskStore(Protocol):
    """Owner-scoped task persistence.

    Every operation is scoped to (task id, owner id); a task that belongs to
    another owner must be reported as not found (NotFoundError). Failed writes
    raise PersistenceError.
    """

    def load_tasks(self, owner_id: str) -> List[Task]: ...

    def insert_task(self, owner_id: str, task: Task) -> Task: ...

    def update_task(self, owner_id: str, task_id: str, update: TaskUpdate) -> Task: ...

    def delete_task(self, owner_id: str, task_id: str) -> None: ...
