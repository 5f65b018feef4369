"""Sparse task updates.

Every attribute of a :class:`TaskPatch` is either :data:`UNCHANGED` or
``SetTo(value)``. ``SetTo(None)`` clears a nullable field, which is different
from leaving it untouched.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Generic, Iterable, Mapping, Optional, TypeVar, Union
from datetime import date


T = TypeVar("T")


class Unchanged:
    """Marker for a field the update does not touch."""

    _instance: Optional["Unchanged"] = None

    def __new__(cls) -> "Unchanged":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = Unchanged()


@dataclass(frozen=True)
class SetTo(Generic[T]):
    value: T


FieldUpdate = Union[Unchanged, SetTo[T]]


@dataclass(frozen=True)
class TaskPatch:
    title: FieldUpdate[str] = UNCHANGED
    due_date: FieldUpdate[Optional[date]] = UNCHANGED
    due_time: FieldUpdate[Optional[str]] = UNCHANGED
    rrule: FieldUpdate[Optional[str]] = UNCHANGED
    rrule_human: FieldUpdate[Optional[str]] = UNCHANGED
    is_recurring: FieldUpdate[bool] = UNCHANGED
    is_completed: FieldUpdate[bool] = UNCHANGED
    sort_order: FieldUpdate[float] = UNCHANGED
    status: FieldUpdate[str] = UNCHANGED
    context: FieldUpdate[Optional[str]] = UNCHANGED

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_values(cls, values: Mapping[str, Any]) -> "TaskPatch":
        """Build a patch that sets every known key present in ``values``."""

        known = set(cls.field_names())
        return cls(**{key: SetTo(value) for key, value in values.items() if key in known})

    def changes(self, allowed: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Return ``{field: value}`` for the fields this patch sets."""

        allowed_set = set(allowed) if allowed is not None else None
        result: Dict[str, Any] = {}
        for name in self.field_names():
            update = getattr(self, name)
            if isinstance(update, SetTo) and (allowed_set is None or name in allowed_set):
                result[name] = update.value
        return result


__all__ = ["FieldUpdate", "SetTo", "TaskPatch", "UNCHANGED", "Unchanged"]
