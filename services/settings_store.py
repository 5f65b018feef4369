from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import SYNC_KEY_KEY, SYNC_URL_KEY
from models.setting import Setting
from storage.db import get_session


@dataclass(frozen=True)
class RelayConfig:
    url: str
    api_key: str


class SettingsStore:
    """Key/value settings persisted in the desktop database."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.get(Setting, key)
            return row.value if row else None

    def set(self, key: str, value: Optional[str]) -> None:
        with self._session_factory() as session:
            row = session.get(Setting, key)
            if value is None:
                if row is not None:
                    session.delete(row)
                    session.commit()
                return
            if row is None:
                row = Setting(key=key, value=value)
            else:
                row.value = value
            session.add(row)
            session.commit()

    # ------------------------------------------------------------------
    # Relay connection
    def relay_config(self) -> Optional[RelayConfig]:
        """Return the relay URL and key, or ``None`` when sync is not set up."""

        url = (self.get(SYNC_URL_KEY) or "").strip()
        key = (self.get(SYNC_KEY_KEY) or "").strip()
        if not url or not key:
            return None
        return RelayConfig(url=url.rstrip("/"), api_key=key)

    def set_relay_config(self, url: Optional[str], api_key: Optional[str]) -> None:
        self.set(SYNC_URL_KEY, url.rstrip("/") if url else None)
        self.set(SYNC_KEY_KEY, api_key or None)


__all__ = ["RelayConfig", "SettingsStore"]
