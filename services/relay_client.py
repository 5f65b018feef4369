"""HTTP clients for the relay: the desktop sync side and the mobile side."""
from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from core.settings import SYNC
from models.patch import TaskPatch
from models.sync_payloads import (
    MOBILE_PATCH_FIELDS,
    MobileCreateRequest,
    MobilePatchRequest,
    RelaySyncRow,
    TaskPayload,
)
from services.settings_store import RelayConfig


API_KEY_HEADER = "X-API-Key"


class RelayError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RelayAuthError(RelayError):
    pass


class RelayConnection:
    """One bounded HTTP round trip per call, authenticated with the shared key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = SYNC.request_timeout_sec,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {API_KEY_HEADER: api_key}
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, config: RelayConfig, **kwargs):
        return cls(config.url, config.api_key, **kwargs)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RelayError(f"Relay request {method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise RelayAuthError("Relay rejected the API key", status_code=401)
        if response.is_error:
            raise RelayError(
                f"Relay error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RelayError(f"Relay returned invalid JSON for {method} {path}") from exc

    def _task_list(self, data: Any) -> List[TaskPayload]:
        try:
            return [TaskPayload.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            raise RelayError(f"Malformed task list from relay: {exc}") from exc


class RelayClient(RelayConnection):
    """Desktop side: pull the mobile mailbox, acknowledge it, push snapshots."""

    def pending(self) -> List[RelaySyncRow]:
        data = self._request("GET", "/sync/pending")
        try:
            return [RelaySyncRow.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            raise RelayError(f"Malformed pending rows from relay: {exc}") from exc

    def acknowledge(self, ids: Sequence[str]) -> None:
        self._request("POST", "/sync/ack", {"ids": list(ids)})

    def push(self, tasks: Sequence[TaskPayload]) -> int:
        body = {"tasks": [task.model_dump(mode="json") for task in tasks]}
        data = self._request("POST", "/sync/push", body)
        return int(data.get("count", 0)) if isinstance(data, dict) else 0


class MobileClient(RelayConnection):
    """Mobile side: mutate the relay directly and read the active list."""

    def list_tasks(self) -> List[TaskPayload]:
        return self._task_list(self._request("GET", "/tasks"))

    def create_task(
        self,
        title: str,
        *,
        sort_order: float,
        due_date: Optional[date] = None,
        due_time: Optional[str] = None,
        rrule: Optional[str] = None,
        rrule_human: Optional[str] = None,
        is_recurring: bool = False,
        task_id: Optional[str] = None,
    ) -> List[TaskPayload]:
        """Create a task; the id is minted here unless given."""

        body = MobileCreateRequest(
            id=task_id or uuid.uuid4().hex,
            title=title,
            due_date=due_date,
            due_time=due_time,
            rrule=rrule,
            rrule_human=rrule_human,
            is_recurring=is_recurring,
            sort_order=sort_order,
        )
        return self._task_list(self._request("POST", "/tasks", body.model_dump(mode="json")))

    def complete_task(self, task_id: str) -> List[TaskPayload]:
        return self._task_list(self._request("PATCH", f"/tasks/{task_id}/complete"))

    def update_task(self, task_id: str, patch: TaskPatch) -> List[TaskPayload]:
        body = MobilePatchRequest(**patch.changes(allowed=MOBILE_PATCH_FIELDS))
        payload = body.model_dump(mode="json", exclude_unset=True)
        return self._task_list(self._request("PATCH", f"/tasks/{task_id}", payload))

    def delete_task(self, task_id: str) -> List[TaskPayload]:
        return self._task_list(self._request("DELETE", f"/tasks/{task_id}"))


__all__ = [
    "MobileClient",
    "RelayAuthError",
    "RelayClient",
    "RelayConnection",
    "RelayError",
]
