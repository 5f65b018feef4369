from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from core.settings import SYNC, SYNC_LOG_PATH
from datetime_utils import to_rfc3339_utc, utc_now
from models.patch import TaskPatch
from models.sync_payloads import CompletionState, RelaySyncRow, TaskPayload
from services.relay_client import RelayAuthError, RelayClient, RelayError
from services.settings_store import RelayConfig, SettingsStore
from services.tasks import TaskNotFoundError, TaskService


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("taskbox.sync")
    if not logger.handlers:
        SYNC_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            SYNC_LOG_PATH,
            maxBytes=SYNC.log_max_bytes,
            backupCount=SYNC.log_backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def _default_client_factory(config: RelayConfig) -> RelayClient:
    return RelayClient.from_config(config)


@dataclass
class SyncResult:
    configured: bool = True
    applied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    acknowledged: bool = False
    pushed: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncService:
    """One reconciliation pass between the local store and the relay.

    Order per cycle: apply pending mobile rows, acknowledge the ones that were
    applied, then push the full desktop snapshot. A relay failure ends the
    cycle; the next scheduled cycle is the retry.
    """

    def __init__(
        self,
        repo: TaskService,
        settings: SettingsStore,
        client_factory: Callable[[RelayConfig], RelayClient] = _default_client_factory,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.client_factory = client_factory
        self.logger = _ensure_logger()
        self.last_cycle_at: Optional[datetime] = None
        self.last_push_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    def run_cycle(self) -> SyncResult:
        client = self._open_client()
        if client is None:
            return SyncResult(configured=False)

        result = SyncResult()
        with client:
            try:
                pending = client.pending()
                result.applied, result.failed = self.apply_pending(pending)
                if result.applied:
                    client.acknowledge(result.applied)
                    result.acknowledged = True
                result.pushed = self._push(client)
            except RelayAuthError as exc:
                self.logger.error("Sync cycle rejected by relay: %s", exc)
                result.error = str(exc)
            except RelayError as exc:
                self.logger.warning("Sync cycle aborted: %s", exc)
                result.error = str(exc)
            except Exception as exc:
                self.logger.exception("Sync cycle crashed")
                result.error = str(exc)

        self.last_cycle_at = utc_now()
        self.last_error = result.error
        if result.applied or result.failed:
            self.logger.info(
                "Pulled %d mobile change(s), %d failed", len(result.applied), len(result.failed)
            )
        return result

    def push_now(self) -> SyncResult:
        """Publish the current desktop snapshot without pulling."""

        client = self._open_client()
        if client is None:
            return SyncResult(configured=False)

        result = SyncResult()
        with client:
            try:
                result.pushed = self._push(client)
            except RelayError as exc:
                self.logger.warning("Push failed: %s", exc)
                result.error = str(exc)
            except Exception as exc:
                self.logger.exception("Push crashed")
                result.error = str(exc)
        self.last_error = result.error
        return result

    def apply_pending(self, rows: Sequence[RelaySyncRow]) -> Tuple[List[str], List[str]]:
        """Apply mobile rows locally; return (applied ids, failed ids)."""

        applied: List[str] = []
        failed: List[str] = []
        for row in rows:
            try:
                self._apply_row(row)
            except Exception as exc:
                self.logger.error("Failed to apply mobile change %s (%r): %s", row.id, row.title, exc)
                failed.append(row.id)
            else:
                applied.append(row.id)
        return applied, failed

    def status(self) -> dict:
        return {
            "configured": self.settings.relay_config() is not None,
            "lastCycleAt": to_rfc3339_utc(self.last_cycle_at),
            "lastPushAt": to_rfc3339_utc(self.last_push_at),
            "lastError": self.last_error,
        }

    def read_log(self, lines: int = 100) -> str:
        try:
            with open(SYNC_LOG_PATH, "r", encoding="utf-8") as fh:
                content = fh.readlines()
        except FileNotFoundError:
            return "Sync log has not been created yet."
        return "\n".join(line.rstrip("\n") for line in content[-lines:])

    # ------------------------------------------------------------------
    # Helpers
    def _open_client(self) -> Optional[RelayClient]:
        config = self.settings.relay_config()
        if config is None:
            self.logger.debug("Sync not configured, skipping")
            return None
        return self.client_factory(config)

    def _push(self, client: RelayClient) -> int:
        snapshot = self._snapshot()
        count = client.push(snapshot)
        self.last_push_at = utc_now()
        self.logger.debug("Pushed %d task(s)", len(snapshot))
        return count

    def _snapshot(self) -> List[TaskPayload]:
        snapshot: List[TaskPayload] = []
        for task in self.repo.list_for_sync():
            try:
                snapshot.append(TaskPayload.model_validate(task))
            except ValidationError as exc:
                # A row the relay would reject stays local; the rest still goes out.
                self.logger.error("Task %s (%r) left out of the push: %s", task.id, task.title, exc)
        return snapshot

    def _apply_row(self, row: RelaySyncRow) -> None:
        state = row.state
        if state is CompletionState.DELETED:
            if self.repo.delete(row.id, emit=False):
                self.logger.info("Mobile deleted task %s", row.id)
            return

        if state is CompletionState.COMPLETED:
            try:
                self.repo.complete(row.id, emit=False)
            except TaskNotFoundError:
                # Deleted on the desktop before the completion arrived.
                self.logger.info("Mobile completed task %s which no longer exists locally", row.id)
            else:
                self.logger.info("Mobile completed task %s", row.id)
            return

        if self.repo.exists(row.id):
            self.repo.update(row.id, _patch_from_row(row), emit=False)
            self.logger.info("Mobile edited task %s", row.id)
            return

        self.repo.create(
            row.title,
            due_date=row.due_date,
            due_time=row.due_time,
            rrule=row.rrule,
            rrule_human=row.rrule_human,
            is_recurring=row.is_recurring,
            status=row.status or "active",
            context=row.context,
            task_id=row.id,
            emit=False,
        )
        self.logger.info("Mobile created task %s", row.id)


def _patch_from_row(row: RelaySyncRow) -> TaskPatch:
    values = {
        "title": row.title,
        "due_date": row.due_date,
        "due_time": row.due_time,
        "rrule": row.rrule,
        "rrule_human": row.rrule_human,
        "is_recurring": row.is_recurring,
    }
    # Desktop-only attributes are applied only when the row carries them.
    if row.status is not None:
        values["status"] = row.status
    if row.context is not None:
        values["context"] = row.context
    return TaskPatch.from_values(values)


__all__ = ["SyncResult", "SyncService"]
