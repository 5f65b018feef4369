"""Wire payloads exchanged between the desktop, the mobile client and the relay.

``is_completed`` travels as an integer: 0 active, 1 completed, 2 deleted
(tombstone). Inside Python it is always a :class:`CompletionState`.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import IntEnum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.patch import TaskPatch


DUE_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

# Fields a mobile PATCH may touch.
MOBILE_PATCH_FIELDS = ("title", "due_date", "due_time", "rrule", "rrule_human", "is_recurring")


class CompletionState(IntEnum):
    ACTIVE = 0
    COMPLETED = 1
    DELETED = 2


SourceTag = Literal["desktop", "mobile"]


class TaskPayload(BaseModel):
    """A task as published on the relay."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(min_length=1)
    title: str
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=DUE_TIME_PATTERN)
    rrule: Optional[str] = None
    rrule_human: Optional[str] = None
    is_recurring: bool = False
    is_completed: CompletionState = CompletionState.ACTIVE
    sort_order: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_completed", mode="before")
    @classmethod
    def _coerce_completion(cls, value):
        # The desktop store keeps a plain bool.
        if isinstance(value, bool):
            return CompletionState.COMPLETED if value else CompletionState.ACTIVE
        return value


class RelaySyncRow(TaskPayload):
    """A relay row including its mailbox bookkeeping."""

    source: SourceTag
    synced: bool = False
    # Desktop-only attributes; the relay never writes them itself.
    status: Optional[str] = None
    context: Optional[str] = None

    @property
    def state(self) -> CompletionState:
        return CompletionState(self.is_completed)


class MobileCreateRequest(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=DUE_TIME_PATTERN)
    rrule: Optional[str] = None
    rrule_human: Optional[str] = None
    is_recurring: bool = False
    sort_order: float


class MobilePatchRequest(BaseModel):
    """Sparse update; only keys present in the request body are applied."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1)
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=DUE_TIME_PATTERN)
    rrule: Optional[str] = None
    rrule_human: Optional[str] = None
    is_recurring: Optional[bool] = None

    @model_validator(mode="after")
    def _reject_null_required(self):
        for name in ("title", "is_recurring"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_patch(self) -> TaskPatch:
        present = {name: getattr(self, name) for name in self.model_fields_set if name in MOBILE_PATCH_FIELDS}
        return TaskPatch.from_values(present)


class PushRequest(BaseModel):
    tasks: List[TaskPayload]


class PushResponse(BaseModel):
    ok: bool = True
    count: int


class AckRequest(BaseModel):
    ids: List[str]


class OkResponse(BaseModel):
    ok: bool = True


__all__ = [
    "AckRequest",
    "CompletionState",
    "MOBILE_PATCH_FIELDS",
    "MobileCreateRequest",
    "MobilePatchRequest",
    "OkResponse",
    "PushRequest",
    "PushResponse",
    "RelaySyncRow",
    "SourceTag",
    "TaskPayload",
]
