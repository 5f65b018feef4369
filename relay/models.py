"""SQLModel table backing the relay."""
from typing import Optional
from datetime import date, datetime

from sqlmodel import Field, SQLModel

from models.sync_payloads import CompletionState


class RelayTask(SQLModel, table=True):
    """One row per task id, tagged with who wrote it last."""

    __tablename__ = "relay_task"

    id: str = Field(primary_key=True)
    title: str
    due_date: Optional[date] = None
    due_time: Optional[str] = None
    rrule: Optional[str] = None
    rrule_human: Optional[str] = None
    is_recurring: bool = False
    is_completed: int = Field(default=int(CompletionState.ACTIVE), index=True)  # 0/1/2
    sort_order: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source: str = Field(index=True)             # desktop / mobile
    synced: bool = Field(default=False, index=True)

    @property
    def state(self) -> CompletionState:
        return CompletionState(self.is_completed)


RELAY_TABLES = [RelayTask.__table__]


__all__ = ["RelayTask", "RELAY_TABLES"]
