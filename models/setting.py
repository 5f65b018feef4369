"""Local key/value settings table."""
from typing import Optional

from sqlmodel import Field, SQLModel


class Setting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: Optional[str] = None


__all__ = ["Setting"]
