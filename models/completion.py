"""Completion log written every time a task is completed."""
from typing import Optional
from datetime import date, datetime
import uuid

from sqlalchemy import Column, ForeignKey, String
from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class Completion(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("task.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    completed_at: datetime = Field(default_factory=utc_now, index=True)
    due_date: Optional[date] = None


__all__ = ["Completion"]
