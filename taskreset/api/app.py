"""FastAPI web application for taskreset."""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from taskreset.database.database import SessionLocal, init_db
from taskreset.database.repository import TaskRepository
from taskreset.engine.ordering import TaskFilters, TaskSortOption, filter_and_sort
from taskreset.engine.reconciliation import ReconciliationLoop, ReconciliationReport
from taskreset.errors import NotFoundError, PersistenceError, ValidationError
from taskreset.models.constants import DEFAULT_RECONCILE_INTERVAL_SECONDS
from taskreset.models.task import TaskEdit, TaskInput, parse_category
from taskreset.models.wire import task_to_wire
from taskreset.session import TaskSession

logger = logging.getLogger(__name__)


def auto_reconcile_enabled() -> bool:
    return os.getenv("AUTO_RECONCILE", "True").lower() == "true"


def reconcile_interval_seconds() -> float:
    return float(os.getenv("RECONCILE_INTERVAL_SECONDS", str(DEFAULT_RECONCILE_INTERVAL_SECONDS)))


class SessionRegistry:
    """Open TaskSessions (and their reconciliation loops) keyed by owner."""

    def __init__(self):
        self._entries: Dict[str, Tuple[TaskSession, Optional[ReconciliationLoop], Session]] = {}

    def get(self, owner_id: str) -> Optional[TaskSession]:
        entry = self._entries.get(owner_id)
        return entry[0] if entry else None

    def loop_for(self, owner_id: str) -> Optional[ReconciliationLoop]:
        entry = self._entries.get(owner_id)
        return entry[1] if entry else None

    def open(self, owner_id: str, db_factory: Callable[[], Session]) -> TaskSession:
        """Return the owner's session, loading it (and starting its loop) on first use."""
        existing = self.get(owner_id)
        if existing is not None and existing.is_alive:
            return existing

        db = db_factory()
        session = TaskSession(owner_id, TaskRepository(db))
        try:
            session.load()
        except Exception:
            db.close()
            raise

        loop = None
        if auto_reconcile_enabled():
            loop = ReconciliationLoop(session, interval_seconds=reconcile_interval_seconds())
            loop.start()
        self._entries[owner_id] = (session, loop, db)
        return session

    async def close(self, owner_id: str) -> bool:
        """Stop the owner's loop and close their session."""
        entry = self._entries.pop(owner_id, None)
        if entry is None:
            return False
        session, loop, db = entry
        if loop is not None:
            await loop.stop()
        session.close()
        db.close()
        return True

    async def close_all(self) -> None:
        for owner_id in list(self._entries):
            await self.close(owner_id)


sessions = SessionRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    await sessions.close_all()


# Initialize FastAPI app
app = FastAPI(
    title="taskreset API",
    description="Recurring tasks that become eligible again on their own schedule",
    version="0.1.0",
    lifespan=lifespan,
)


# Dependencies
def get_db_session_factory() -> Callable[[], Session]:
    """Factory for the long-lived DB session backing each owner's TaskSession."""
    return SessionLocal


def get_owner_id(x_owner_id: str = Header(default="", alias="X-Owner-Id")) -> str:
    owner_id = x_owner_id.strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Owner-Id header",
        )
    return owner_id


async def get_task_session(
    owner_id: str = Depends(get_owner_id),
    db_factory: Callable[[], Session] = Depends(get_db_session_factory),
) -> TaskSession:
    return sessions.open(owner_id, db_factory)


# Error mapping
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# Request/response models
class ToggleRequest(BaseModel):
    """Toggle request; omit sub_task_title to toggle the task itself."""
    sub_task_title: Optional[str] = None


class TaskResponse(BaseModel):
    """Single task in wire format."""
    task: Dict[str, Any]


class TaskListResponse(BaseModel):
    """Filtered, sorted task list in wire format."""
    tasks: List[Dict[str, Any]]
    count: int


class TransitionInfo(BaseModel):
    task_id: str
    reasons: List[str]


class ReconcileResponse(BaseModel):
    """Result of a reconciliation pass."""
    now: datetime
    checked: int
    transitions: List[TransitionInfo] = Field(default_factory=list)
    persisted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    discarded: bool = False


def _report_response(report: ReconciliationReport) -> ReconcileResponse:
    return ReconcileResponse(
        now=report.now,
        checked=report.checked,
        transitions=[TransitionInfo(task_id=t.task_id, reasons=list(t.reasons)) for t in report.transitions],
        persisted=report.persisted,
        failed=report.failed,
        discarded=report.discarded,
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/tasks", response_model=TaskListResponse)
async def list_tasks(
    category: Optional[str] = None,
    tag: List[str] = Query(default=[]),
    search: str = "",
    show_completed: bool = True,
    sort: TaskSortOption = TaskSortOption.DEFAULT,
    session: TaskSession = Depends(get_task_session),
):
    """List the owner's tasks with filters and a sort order."""
    filters = TaskFilters(
        category=parse_category(category, allow_empty=True),
        tags=tag,
        search_text=search,
        show_completed=show_completed,
    )
    tasks = filter_and_sort(session.tasks(), filters, sort)
    return TaskListResponse(tasks=[task_to_wire(t) for t in tasks], count=len(tasks))


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_input: TaskInput, session: TaskSession = Depends(get_task_session)):
    """Create a task."""
    task = session.create_task(task_input)
    return TaskResponse(task=task_to_wire(task))


@app.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, session: TaskSession = Depends(get_task_session)):
    """Get one task."""
    return TaskResponse(task=task_to_wire(session.get(task_id)))


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
async def edit_task(task_id: str, edit: TaskEdit, session: TaskSession = Depends(get_task_session)):
    """Edit a task; only the fields present in the body change."""
    return TaskResponse(task=task_to_wire(session.edit_task(task_id, edit)))


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, session: TaskSession = Depends(get_task_session)):
    """Delete a task."""
    session.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/tasks/{task_id}/toggle", response_model=TaskResponse)
async def toggle_task(
    task_id: str,
    body: Optional[ToggleRequest] = None,
    session: TaskSession = Depends(get_task_session),
):
    """Toggle completion of a task or one of its sub-tasks."""
    sub_task_title = body.sub_task_title if body else None
    return TaskResponse(task=task_to_wire(session.toggle(task_id, sub_task_title)))


@app.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(session: TaskSession = Depends(get_task_session)):
    """Run a reconciliation pass for the owner right now."""
    loop = sessions.loop_for(session.owner_id) or ReconciliationLoop(session)
    report = await loop.run_once()
    return _report_response(report)


@app.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(owner_id: str = Depends(get_owner_id)):
    """Sign out: stop reconciliation and drop the owner's in-memory tasks."""
    await sessions.close(owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
