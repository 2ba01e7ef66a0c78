"""Owner-scoped task session.

A TaskSession holds the in-memory task list for one owner, applies user
actions through the lifecycle factory and the completion cascade, writes every
change through the TaskStore, and only keeps what the store confirmed.

Once closed (owner signed out, app shutting down) the session ignores further
results, so a late reconciliation write can never repopulate it.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from taskreset.engine.cascade import toggle as cascade_toggle
from taskreset.errors import NotFoundError, PersistenceError, TaskResetError
from taskreset.models.task import Task, TaskEdit, TaskInput, TaskUpdate, utc_now
from taskreset.models.task_factory import apply_task_edit, create_task
from taskreset.store import TaskStore

logger = logging.getLogger(__name__)


class TaskSession:
    """In-memory view of one owner's tasks, backed by a TaskStore."""

    def __init__(self, owner_id: str, store: TaskStore, clock: Callable[[], datetime] = utc_now):
        if not owner_id:
            raise ValueError("owner_id is required")
        self.owner_id = owner_id
        self.store = store
        self.clock = clock
        self._tasks: Dict[str, Task] = {}
        self._alive = True

    @property
    def is_alive(self) -> bool:
        return self._alive

    def close(self) -> None:
        """Stop accepting results for this session and drop its tasks."""
        if not self._alive:
            return
        self._alive = False
        self._tasks.clear()
        logger.info(f"Closed task session for owner {self.owner_id}")

    def load(self) -> List[Task]:
        """(Re)load the owner's tasks from the store."""
        try:
            tasks = self.store.load_tasks(self.owner_id)
        except TaskResetError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load tasks for owner {self.owner_id}: {e}") from e
        if self._alive:
            self._tasks = {task.id: task for task in tasks}
        logger.debug(f"Loaded {len(tasks)} tasks for owner {self.owner_id}")
        return tasks

    def tasks(self) -> List[Task]:
        """Snapshot of the session's tasks."""
        return list(self._tasks.values())

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def commit(self, task: Task) -> bool:
        """Merge a store-confirmed task into the session.

        Returns:
            False if the session is closed and the value was dropped
        """
        if not self._alive:
            logger.warning(f"Dropping result for task {task.id}: session for owner {self.owner_id} is closed")
            return False
        self._tasks[task.id] = task
        return True

    def persist(self, task_id: str, update: TaskUpdate) -> Task:
        """Write an update through the store and return the stored task.

        Raises:
            NotFoundError: If the store has no such task for this owner
            PersistenceError: If the write fails
        """
        try:
            return self.store.update_task(self.owner_id, task_id, update)
        except TaskResetError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update task {task_id}: {e}") from e

    def create_task(self, task_input: TaskInput, now: Optional[datetime] = None) -> Task:
        """Create, store and track a new task."""
        task = create_task(self.owner_id, task_input, now or self.clock())
        try:
            stored = self.store.insert_task(self.owner_id, task)
        except TaskResetError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to insert task {task.id}: {e}") from e
        self.commit(stored)
        logger.info(f"Created task {stored.id} ({stored.category.value}) for owner {self.owner_id}")
        return stored

    def edit_task(self, task_id: str, edit: TaskEdit, now: Optional[datetime] = None) -> Task:
        """Apply a user edit, writing only the changed fields."""
        current = self.get(task_id)
        edited = apply_task_edit(current, edit, now or self.clock())
        if edited is current:
            return current
        stored = self.persist(task_id, TaskUpdate.between(current, edited))
        self.commit(stored)
        return stored

    def toggle(self, task_id: str, sub_task_title: Optional[str] = None, now: Optional[datetime] = None) -> Task:
        """Toggle a task (or one of its sub-tasks) and persist the result.

        If the write fails the in-memory task is left unchanged.
        """
        current = self.get(task_id)
        toggled = cascade_toggle(current, sub_task_title, now or self.clock())
        if toggled is current:
            logger.debug(f"Toggle on task {task_id} ignored (Ended)")
            return current
        stored = self.persist(task_id, TaskUpdate.between(current, toggled))
        self.commit(stored)
        return stored

    def delete_task(self, task_id: str) -> None:
        """Delete a task from the store and the session."""
        try:
            self.store.delete_task(self.owner_id, task_id)
        except TaskResetError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete task {task_id}: {e}") from e
        self._tasks.pop(task_id, None)
        logger.info(f"Deleted task {task_id} for owner {self.owner_id}")
