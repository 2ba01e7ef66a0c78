"""Repository layer for database operations."""

import logging
from typing import List, Optional

from sqlalchemy import asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskreset.database.models import TaskDB
from taskreset.errors import NotFoundError, PersistenceError, ValidationError
from taskreset.models.task import Task, TaskUpdate

logger = logging.getLogger(__name__)


class TaskRepository:
    """SQL implementation of the TaskStore protocol.

    Every query is scoped by owner: a task owned by someone else is reported
    exactly like a missing one.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, owner_id: str, task_id: str) -> Optional[TaskDB]:
        return self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.owner_id == owner_id,
        ).first()

    def load_tasks(self, owner_id: str) -> List[Task]:
        """Get all tasks for an owner (oldest first).

        Rows that cannot be parsed (unknown category, corrupt sub-task JSON)
        are logged and skipped so one bad row does not hide the rest.
        """
        try:
            rows = self.db.query(TaskDB).filter(
                TaskDB.owner_id == owner_id,
            ).order_by(asc(TaskDB.created_at)).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load tasks for owner {owner_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to load tasks for owner {owner_id}") from e

        tasks: List[Task] = []
        for row in rows:
            try:
                tasks.append(row.to_pydantic())
            except ValidationError as e:
                logger.error(f"Skipping unreadable task {row.id}: {e}")
        return tasks

    def get(self, owner_id: str, task_id: str) -> Task:
        """Get one task.

        Raises:
            NotFoundError: If the task does not exist for this owner
        """
        row = self._get_row(owner_id, task_id)
        if row is None:
            raise NotFoundError(f"Task {task_id} not found")
        return row.to_pydantic()

    def insert_task(self, owner_id: str, task: Task) -> Task:
        """Insert a new task for an owner."""
        if task.owner_id != owner_id:
            raise ValidationError(f"Task {task.id} does not belong to owner {owner_id}")
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to create task {task.id}") from e

    def update_task(self, owner_id: str, task_id: str, update: TaskUpdate) -> Task:
        """Write the explicitly set fields of `update` and return the stored task.

        Raises:
            NotFoundError: If the task does not exist for this owner
            PersistenceError: If the write fails
        """
        try:
            task_db = self._get_row(owner_id, task_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read task {task_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to read task {task_id}") from e
        if task_db is None:
            raise NotFoundError(f"Task {task_id} not found")

        changes = update.changes()
        try:
            task_db.apply_changes(changes)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task_id}: {', '.join(sorted(changes)) or 'no fields'}")
            return task_db.to_pydantic()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to update task {task_id}") from e

    def delete_task(self, owner_id: str, task_id: str) -> None:
        """Permanently delete a task.

        Raises:
            NotFoundError: If the task does not exist for this owner
        """
        task_db = self._get_row(owner_id, task_id)
        if task_db is None:
            raise NotFoundError(f"Task {task_id} not found")
        try:
            self.db.delete(task_db)
            self.db.commit()
            logger.debug(f"Deleted task {task_id}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise PersistenceError(f"Failed to delete task {task_id}") from e
