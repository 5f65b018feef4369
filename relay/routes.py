"""Relay endpoints: mobile task mutations and desktop sync."""

from typing import List

from fastapi import APIRouter, Depends, Request

from models.sync_payloads import (
    AckRequest,
    MobileCreateRequest,
    MobilePatchRequest,
    OkResponse,
    PushRequest,
    PushResponse,
    RelaySyncRow,
    TaskPayload,
)
from relay.store import RelayStore


def get_store(request: Request) -> RelayStore:
    return request.app.state.store


# ---------------------------------------------------------------------------
# Mobile routes. Every mutation answers with the full active list so the
# client can redraw from relay state.
# ---------------------------------------------------------------------------

tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])


@tasks_router.get("", response_model=List[TaskPayload])
def list_tasks(store: RelayStore = Depends(get_store)):
    """List active tasks."""
    return store.list_active()


@tasks_router.post("", response_model=List[TaskPayload], status_code=201)
def create_task(body: MobileCreateRequest, store: RelayStore = Depends(get_store)):
    """Create a task with a client-minted id."""
    return store.create_from_mobile(body)


@tasks_router.patch("/{task_id}/complete", response_model=List[TaskPayload])
def complete_task(task_id: str, store: RelayStore = Depends(get_store)):
    return store.complete_from_mobile(task_id)


@tasks_router.patch("/{task_id}", response_model=List[TaskPayload])
def update_task(task_id: str, body: MobilePatchRequest, store: RelayStore = Depends(get_store)):
    """Apply only the fields present in the body."""
    return store.patch_from_mobile(task_id, body.to_patch())


@tasks_router.delete("/{task_id}", response_model=List[TaskPayload])
def delete_task(task_id: str, store: RelayStore = Depends(get_store)):
    return store.delete_from_mobile(task_id)


# ---------------------------------------------------------------------------
# Desktop sync routes
# ---------------------------------------------------------------------------

sync_router = APIRouter(prefix="/sync", tags=["sync"])


@sync_router.post("/push", response_model=PushResponse)
def push_snapshot(body: PushRequest, store: RelayStore = Depends(get_store)):
    """Replace the desktop mirror with a full snapshot.

    ``count`` is the number of rows stored, which can be lower than the number
    sent: duplicate ids collapse to one row and ids that still have an
    unacknowledged mobile edit are skipped.
    """
    count = store.replace_desktop_snapshot(body.tasks)
    return PushResponse(count=count)


@sync_router.get("/pending", response_model=List[RelaySyncRow])
def pending(store: RelayStore = Depends(get_store)):
    """Mobile rows the desktop has not acknowledged yet."""
    return store.pending_mobile()


@sync_router.post("/ack", response_model=OkResponse)
def acknowledge(body: AckRequest, store: RelayStore = Depends(get_store)):
    store.acknowledge(body.ids)
    return OkResponse()
