# models/task.py
from typing import Optional
from datetime import date, datetime
import uuid

from sqlmodel import SQLModel, Field

from datetime_utils import utc_now


TASK_STATUSES = ("active", "review")


def new_task_id() -> str:
    return uuid.uuid4().hex


class Task(SQLModel, table=True):
    id: str = Field(default_factory=new_task_id, primary_key=True)
    title: str
    due_date: Optional[date] = Field(default=None, index=True)
    due_time: Optional[str] = None          # HH:MM
    rrule: Optional[str] = None
    rrule_human: Optional[str] = None
    is_recurring: bool = False
    is_completed: bool = Field(default=False, index=True)
    sort_order: float = 0.0
    status: str = "active"                  # active / review
    context: Optional[str] = None           # opaque JSON
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
