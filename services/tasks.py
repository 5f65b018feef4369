# services/tasks.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlmodel import select
from sqlalchemy import and_, case, func

from storage.db import get_session
from models.completion import Completion
from models.patch import TaskPatch
from models.sync_payloads import DUE_TIME_PATTERN
from models.task import TASK_STATUSES, Task
from services.recurrence import RecurrenceError, compute_next_occurrence
from datetime_utils import midnight_utc, start_of_week, today, utc_now


logger = logging.getLogger("taskbox.tasks")

VIEWS = ("inbox", "today")


class TaskServiceError(Exception):
    pass


class TaskNotFoundError(TaskServiceError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


@dataclass
class CompletedTaskRow:
    completion_id: str
    task_id: str
    title: str
    completed_at: datetime
    due_date: Optional[date]
    due_time: Optional[str]
    is_recurring: bool
    rrule_human: Optional[str]


@dataclass
class CompletionStats:
    today: int
    this_week: int
    total: int


def _clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise TaskServiceError("Task title cannot be empty")
    return cleaned


def _check_status(status: str) -> str:
    if status not in TASK_STATUSES:
        raise TaskServiceError(f"Unsupported task status: {status}")
    return status


def _check_due_time(due_time: Optional[str]) -> Optional[str]:
    if not due_time:
        return None
    if not re.fullmatch(DUE_TIME_PATTERN, due_time):
        raise TaskServiceError(f"Due time must be HH:MM, got {due_time!r}")
    return due_time


class TaskService:
    _listeners = {
        "after_create": set(),
        "after_update": set(),
        "after_complete": set(),
        "after_delete": set(),
        "after_reorder": set(),
    }

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    @classmethod
    def subscribe(cls, event: str, callback):
        if event not in cls._listeners:
            raise ValueError(f"Unsupported event: {event}")
        cls._listeners[event].add(callback)

    @classmethod
    def unsubscribe(cls, event: str, callback):
        if event not in cls._listeners:
            return
        cls._listeners[event].discard(callback)

    @classmethod
    def _emit(cls, event: str, task_id: str):
        listeners = list(cls._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(task_id)
            except Exception:
                logger.exception("Listener for %s failed (task %s)", event, task_id)

    # ---------- mutations ----------
    def create(
        self,
        title: str,
        *,
        due_date: Optional[date] = None,
        due_time: Optional[str] = None,
        rrule: Optional[str] = None,
        rrule_human: Optional[str] = None,
        is_recurring: bool = False,
        status: str = "active",
        context: Optional[str] = None,
        task_id: Optional[str] = None,
        emit: bool = True,
    ) -> Task:
        """Insert a task; ``task_id`` keeps an id minted elsewhere (mobile)."""

        clean_title = _clean_title(title)
        _check_status(status)
        due_time = _check_due_time(due_time)
        if is_recurring and rrule and due_date is None:
            try:
                due_date = compute_next_occurrence(rrule)
            except RecurrenceError as exc:
                raise TaskServiceError(str(exc)) from exc

        with self._session_factory() as s:
            if task_id and s.get(Task, task_id) is not None:
                raise TaskServiceError(f"Task already exists: {task_id}")
            t = Task(
                title=clean_title,
                due_date=due_date,
                due_time=due_time,
                rrule=rrule or None,
                rrule_human=rrule_human or None,
                is_recurring=bool(is_recurring),
                sort_order=self._next_sort_order(s),
                status=status,
                context=context,
            )
            if task_id:
                t.id = task_id
            s.add(t)
            s.commit()
            s.refresh(t)
        if emit:
            self._emit("after_create", t.id)
        return t

    def update(self, task_id: str, patch: TaskPatch, *, emit: bool = True) -> Task:
        changes = patch.changes()
        if "title" in changes:
            changes["title"] = _clean_title(changes["title"])
        if "status" in changes:
            _check_status(changes["status"])
        if "due_time" in changes:
            changes["due_time"] = _check_due_time(changes["due_time"])

        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                raise TaskNotFoundError(task_id)
            for key, value in changes.items():
                setattr(t, key, value)
            t.updated_at = utc_now()
            s.add(t)
            s.commit()
            s.refresh(t)
        if emit:
            self._emit("after_update", t.id)
        return t

    def complete(self, task_id: str, *, emit: bool = True) -> Task:
        """Log a completion; recurring tasks move to their next due date."""

        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                raise TaskNotFoundError(task_id)

            s.add(Completion(task_id=t.id, due_date=t.due_date))

            next_due = None
            if t.is_recurring and t.rrule:
                current = t.due_date or today()
                try:
                    next_due = compute_next_occurrence(t.rrule, current, current)
                except RecurrenceError as exc:
                    raise TaskServiceError(str(exc)) from exc

            if next_due is not None:
                t.due_date = next_due
            else:
                t.is_completed = True
            t.updated_at = utc_now()
            s.add(t)
            s.commit()
            s.refresh(t)
        if emit:
            self._emit("after_complete", t.id)
        return t

    def delete(self, task_id: str, *, emit: bool = True) -> bool:
        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                return False
            s.delete(t)
            s.commit()
        if emit:
            self._emit("after_delete", task_id)
        return True

    def reorder(self, task_id: str, new_order: float, *, emit: bool = True) -> Task:
        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                raise TaskNotFoundError(task_id)
            t.sort_order = float(new_order)
            t.updated_at = utc_now()
            s.add(t)
            s.commit()
            s.refresh(t)
        if emit:
            self._emit("after_reorder", t.id)
        return t

    # ---------- queries ----------
    def get(self, task_id: str) -> Optional[Task]:
        with self._session_factory() as s:
            return s.get(Task, task_id)

    def exists(self, task_id: str) -> bool:
        return self.get(task_id) is not None

    def next_sort_order(self) -> float:
        with self._session_factory() as s:
            return self._next_sort_order(s)

    def _next_sort_order(self, s) -> float:
        stmt = select(func.max(Task.sort_order)).where(Task.is_completed == False)  # noqa: E712
        current = s.exec(stmt).one()
        return float(current or 0) + 1

    def list_tasks(self, view: str = "inbox") -> List[Task]:
        if view not in VIEWS:
            raise TaskServiceError(f"Unknown view: {view}")
        day = today()
        with self._session_factory() as s:
            if view == "today":
                stmt = (
                    select(Task)
                    .where(
                        and_(
                            Task.is_completed == False,  # noqa: E712
                            Task.due_date != None,  # noqa: E711
                            Task.due_date <= day,
                        )
                    )
                    .order_by(Task.due_date.asc(), Task.sort_order.asc())
                )
            else:
                # undated first (triage), then overdue, today, upcoming
                bucket = case(
                    (Task.due_date == None, 0),  # noqa: E711
                    (Task.due_date < day, 1),
                    (Task.due_date == day, 2),
                    else_=3,
                )
                stmt = (
                    select(Task)
                    .where(Task.is_completed == False)  # noqa: E712
                    .order_by(bucket, Task.due_date.asc(), Task.sort_order.asc())
                )
            return list(s.exec(stmt))

    def list_for_sync(self) -> List[Task]:
        """Active tasks published to the relay; review tasks stay local."""

        with self._session_factory() as s:
            stmt = (
                select(Task)
                .where(and_(Task.is_completed == False, Task.status == "active"))  # noqa: E712
                .order_by(Task.sort_order.asc())
            )
            return list(s.exec(stmt))

    def search(self, query: str) -> List[Task]:
        needle = (query or "").strip()
        if not needle:
            return []
        with self._session_factory() as s:
            stmt = (
                select(Task)
                .where(and_(Task.is_completed == False, Task.title.ilike(f"%{needle}%")))  # noqa: E712
                .order_by(Task.sort_order.asc())
            )
            return list(s.exec(stmt))

    def due_today_count(self) -> int:
        with self._session_factory() as s:
            stmt = (
                select(func.count())
                .select_from(Task)
                .where(
                    and_(
                        Task.is_completed == False,  # noqa: E712
                        Task.due_date != None,  # noqa: E711
                        Task.due_date <= today(),
                    )
                )
            )
            return int(s.exec(stmt).one())

    # ---------- history ----------
    def completions(self, task_id: str) -> List[Completion]:
        with self._session_factory() as s:
            stmt = (
                select(Completion)
                .where(Completion.task_id == task_id)
                .order_by(Completion.completed_at.desc())
            )
            return list(s.exec(stmt))

    def completion_history(self, limit: int = 100) -> List[CompletedTaskRow]:
        with self._session_factory() as s:
            stmt = (
                select(Completion, Task)
                .join(Task, Task.id == Completion.task_id)
                .order_by(Completion.completed_at.desc())
                .limit(limit)
            )
            rows: Iterable = s.exec(stmt).all()
            return [
                CompletedTaskRow(
                    completion_id=completion.id,
                    task_id=task.id,
                    title=task.title,
                    completed_at=completion.completed_at,
                    due_date=completion.due_date,
                    due_time=task.due_time,
                    is_recurring=task.is_recurring,
                    rrule_human=task.rrule_human,
                )
                for completion, task in rows
            ]

    def completion_stats(self) -> CompletionStats:
        day = today()
        day_start = midnight_utc(day)
        week_start = midnight_utc(start_of_week(day))
        with self._session_factory() as s:
            def _count(*conditions) -> int:
                stmt = select(func.count()).select_from(Completion)
                for cond in conditions:
                    stmt = stmt.where(cond)
                return int(s.exec(stmt).one())

            return CompletionStats(
                today=_count(Completion.completed_at >= day_start),
                this_week=_count(Completion.completed_at >= week_start),
                total=_count(),
            )


__all__ = [
    "CompletedTaskRow",
    "CompletionStats",
    "TaskNotFoundError",
    "TaskService",
    "TaskServiceError",
]
