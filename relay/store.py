"""Relay storage: mobile mailbox plus the mirror of the desktop snapshot.

Rows written by the desktop (``source='desktop'``) are owned by the last push
and replaced wholesale on every push. Rows written by the mobile client
(``source='mobile'``) stay ``synced=0`` until the desktop acknowledges them;
acknowledged mobile rows are purged by the next push.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Sequence

from sqlalchemy import and_, case, delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from datetime_utils import utc_now
from models.patch import TaskPatch
from models.sync_payloads import (
    MOBILE_PATCH_FIELDS,
    CompletionState,
    MobileCreateRequest,
    RelaySyncRow,
    TaskPayload,
)
from relay.models import RelayTask


logger = logging.getLogger(__name__)

SOURCE_DESKTOP = "desktop"
SOURCE_MOBILE = "mobile"


class RelayStoreError(Exception):
    pass


class DuplicateTaskError(RelayStoreError):
    def __init__(self, task_id: str):
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id


def _to_payload(row: RelayTask) -> TaskPayload:
    return TaskPayload.model_validate(row)


def _to_sync_row(row: RelayTask) -> RelaySyncRow:
    return RelaySyncRow.model_validate(row, from_attributes=True)


class RelayStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # ----- mobile side -----
    def list_active(self) -> List[TaskPayload]:
        """Active rows, undated last, then by due date and sort order."""

        with self._session_factory() as session:
            return [_to_payload(row) for row in self._active_rows(session)]

    def create_from_mobile(self, body: MobileCreateRequest) -> List[TaskPayload]:
        now = utc_now()
        with self._session_factory() as session:
            if session.get(RelayTask, body.id) is not None:
                raise DuplicateTaskError(body.id)
            session.add(
                RelayTask(
                    **body.model_dump(),
                    is_completed=int(CompletionState.ACTIVE),
                    created_at=now,
                    updated_at=now,
                    source=SOURCE_MOBILE,
                    synced=False,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateTaskError(body.id) from exc
            logger.info("Mobile created task %s", body.id)
            return [_to_payload(row) for row in self._active_rows(session)]

    def complete_from_mobile(self, task_id: str) -> List[TaskPayload]:
        return self._mark_from_mobile(task_id, {"is_completed": int(CompletionState.COMPLETED)})

    def delete_from_mobile(self, task_id: str) -> List[TaskPayload]:
        # Tombstone only; the row disappears during push-time cleanup.
        return self._mark_from_mobile(task_id, {"is_completed": int(CompletionState.DELETED)})

    def patch_from_mobile(self, task_id: str, patch: TaskPatch) -> List[TaskPayload]:
        return self._mark_from_mobile(task_id, patch.changes(allowed=MOBILE_PATCH_FIELDS))

    # ----- desktop side -----
    def replace_desktop_snapshot(self, tasks: Sequence[TaskPayload]) -> int:
        """Swap the desktop mirror for ``tasks`` and drop acknowledged mail.

        Runs as one transaction. A snapshot task whose id still has an
        unacknowledged mobile row is skipped: that row stays pending until
        the desktop pulls it. Returns the number of rows inserted.
        """

        latest: Dict[str, TaskPayload] = {task.id: task for task in tasks}
        now = utc_now()
        with self._session_factory() as session:
            session.execute(delete(RelayTask).where(RelayTask.source == SOURCE_DESKTOP))
            session.execute(
                delete(RelayTask).where(
                    and_(RelayTask.source == SOURCE_MOBILE, RelayTask.synced == True)  # noqa: E712
                )
            )
            # Only unacknowledged mobile rows are left at this point.
            pending_ids = set(session.exec(select(RelayTask.id)).all())

            inserted = 0
            for task in latest.values():
                if task.id in pending_ids:
                    logger.debug("Snapshot skips %s: unacknowledged mobile edit", task.id)
                    continue
                values = task.model_dump()
                values["is_completed"] = int(task.is_completed)
                values["created_at"] = task.created_at or now
                values["updated_at"] = task.updated_at or now
                session.add(RelayTask(**values, source=SOURCE_DESKTOP, synced=True))
                inserted += 1
            session.commit()
        logger.info("Desktop snapshot stored: %d rows (%d skipped)", inserted, len(latest) - inserted)
        return inserted

    def pending_mobile(self) -> List[RelaySyncRow]:
        with self._session_factory() as session:
            stmt = select(RelayTask).where(
                and_(RelayTask.source == SOURCE_MOBILE, RelayTask.synced == False)  # noqa: E712
            )
            return [_to_sync_row(row) for row in session.exec(stmt)]

    def acknowledge(self, ids: Iterable[str]) -> int:
        id_list = [task_id for task_id in ids if task_id]
        if not id_list:
            return 0
        with self._session_factory() as session:
            result = session.execute(
                update(RelayTask).where(RelayTask.id.in_(id_list)).values(synced=True)
            )
            session.commit()
            logger.info("Acknowledged %d of %d ids", result.rowcount, len(id_list))
            return int(result.rowcount or 0)

    # ----- inspection -----
    def get_row(self, task_id: str) -> RelaySyncRow | None:
        with self._session_factory() as session:
            row = session.get(RelayTask, task_id)
            return _to_sync_row(row) if row else None

    # ----- helpers -----
    def _active_rows(self, session: Session) -> List[RelayTask]:
        stmt = (
            select(RelayTask)
            .where(RelayTask.is_completed == int(CompletionState.ACTIVE))
            .order_by(
                case((RelayTask.due_date == None, 1), else_=0),  # noqa: E711
                RelayTask.due_date.asc(),
                RelayTask.sort_order.asc(),
            )
        )
        return list(session.exec(stmt))

    def _mark_from_mobile(self, task_id: str, values: Dict[str, object]) -> List[TaskPayload]:
        # Unknown ids match zero rows; a retried request must not fail.
        with self._session_factory() as session:
            result = session.execute(
                update(RelayTask)
                .where(RelayTask.id == task_id)
                .values(**values, source=SOURCE_MOBILE, synced=False, updated_at=utc_now())
            )
            session.commit()
            if not result.rowcount:
                logger.info("Mobile update for unknown task %s ignored", task_id)
            return [_to_payload(row) for row in self._active_rows(session)]


__all__ = [
    "DuplicateTaskError",
    "RelayStore",
    "RelayStoreError",
    "SOURCE_DESKTOP",
    "SOURCE_MOBILE",
]
