"""Surge routes: campaign definition, uploads, household listing, and batch builds.

Every route is scoped to the caller's organization (``X-Organization-Id``);
a surge owned by another organization answers 404.  ``POST
/surges/{id}/prepare`` only queues work; progress and the final summary are
pushed to ``GET /surges/events`` as Server-Sent Events.
"""
from __future__ import annotations

import json
import logging
import queue
from collections.abc import Generator
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.api.deps import (
    Actor,
    get_actor,
    get_archive_aggregator,
    get_event_broker,
    get_orchestrator,
    get_surge_service,
)
from app.core.constants import ACTION_SAVE, EVENT_ALL_DONE
from app.core.settings import get_settings
from app.db.models import Surge
from app.storage.object_store import StorageError
from app.surge.archive import ArchiveAggregator
from app.surge.campaigns import HouseholdRow, SurgeService, surge_status
from app.surge.errors import (
    BatchInProgressError,
    EmptySelectionError,
    HouseholdNotFoundError,
    InvalidSurgeError,
    NothingToBuildError,
    PacketNotFoundError,
    RateLimitExceededError,
    SurgeNotFoundError,
    UploadNotFoundError,
)
from app.surge.orchestrator import BatchOrchestrator
from app.surge.progress import EventBroker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/surges", tags=["surges"])

SSE_HEARTBEAT_S = 15.0


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class SurgeBody(BaseModel):
    name: str
    start_date: date
    end_date: date


class ReportTypesBody(BaseModel):
    report_types: list[str]


class OrderBody(BaseModel):
    order: list[str]


class PrepareBody(BaseModel):
    household_ids: list[UUID]
    order: list[UUID] | None = None
    action: str = ACTION_SAVE


class HouseholdSelectionBody(BaseModel):
    household_ids: list[UUID] | None = Field(default=None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _serialize_upload(upload) -> dict:
    return {
        "id": upload.id,
        "file_name": upload.file_name,
        "page_count": upload.page_count,
        "position": upload.position,
    }


def _serialize_surge(surge: Surge, prepared_count: int | None = None) -> dict:
    data = {
        "id": str(surge.id),
        "name": surge.name,
        "start_date": surge.start_date.isoformat(),
        "end_date": surge.end_date.isoformat(),
        "status": surge_status(surge),
        "report_types": list(surge.report_types or []),
        "order": list(surge.order or []),
        "uploads": [_serialize_upload(u) for u in surge.uploads],
        "created_by": surge.created_by,
    }
    if prepared_count is not None:
        data["prepared_count"] = prepared_count
    return data


def _serialize_row(row: HouseholdRow) -> dict:
    return {
        "household_id": str(row.household_id),
        "label": row.label,
        "advisor_ids": row.advisor_ids,
        "warnings": row.warnings,
        "prepared": row.prepared,
    }


def _load_surge(service: SurgeService, surge_id: UUID, actor: Actor) -> Surge:
    try:
        return service.get_for_organization(surge_id, actor.organization_id)
    except SurgeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Surge {surge_id} not found")


def _parse_prepared(values: list[str] | None) -> bool | None:
    """``yes``/``no`` checkbox pair; both or neither means no filter."""
    values = set(values or ())
    if ("yes" in values) == ("no" in values):
        return None
    return "yes" in values


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _event_stream(
    broker: EventBroker,
    channel: str,
    subscription: queue.Queue,
    *,
    close_on_done: bool = False,
    heartbeat_s: float = SSE_HEARTBEAT_S,
) -> Generator[str, None, None]:
    try:
        while True:
            try:
                event = subscription.get(timeout=heartbeat_s)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            yield _sse(event.name, event.payload)
            if close_on_done and event.name == EVENT_ALL_DONE:
                return
    finally:
        broker.unsubscribe(channel, subscription)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("", summary="List surges for the caller's organization")
def list_surges(
    status: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    rows = service.list_for_organization(actor.organization_id, status=status)
    return [_serialize_surge(surge, prepared_count=count) for surge, _, count in rows]


@router.post("", status_code=201, summary="Create a surge")
def create_surge(
    body: SurgeBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    try:
        surge = service.create_surge(
            actor.organization_id, body.name, body.start_date, body.end_date, created_by=actor.user_id
        )
    except InvalidSurgeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _serialize_surge(surge)


@router.get("/events", summary="Progress events for the caller (SSE)")
def stream_events(
    close_on_done: bool = Query(default=False),
    actor: Actor = Depends(get_actor),
    broker: EventBroker = Depends(get_event_broker),
):
    subscription = broker.subscribe(actor.channel)
    return StreamingResponse(
        _event_stream(broker, actor.channel, subscription, close_on_done=close_on_done),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{surge_id}", summary="Get one surge")
def get_surge(
    surge_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    return _serialize_surge(surge, prepared_count=service.snapshots.count_for_surge(surge.id))


@router.patch("/{surge_id}", summary="Rename or reschedule a surge")
def update_surge(
    surge_id: UUID,
    body: SurgeBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    try:
        service.update_surge(surge, name=body.name, start_date=body.start_date, end_date=body.end_date)
    except InvalidSurgeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _serialize_surge(surge)


@router.delete("/{surge_id}", summary="Delete a surge and its snapshots")
def delete_surge(
    surge_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    service.delete_surge(surge)
    return {"deleted": str(surge_id)}


@router.put("/{surge_id}/report-types", summary="Replace the enabled report types")
def set_report_types(
    surge_id: UUID,
    body: ReportTypesBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    try:
        service.set_report_types(surge, body.report_types)
    except InvalidSurgeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _serialize_surge(surge)


@router.put("/{surge_id}/order", summary="Reorder reports and uploads")
def reorder_surge(
    surge_id: UUID,
    body: OrderBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    try:
        service.reorder(surge, body.order)
    except InvalidSurgeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _serialize_surge(surge)


@router.post("/{surge_id}/uploads", status_code=201, summary="Attach a static PDF")
async def add_upload(
    surge_id: UUID,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    settings = get_settings()
    surge = _load_surge(service, surge_id, actor)
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded.")
    if len(content) > settings.upload_max_file_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.upload_max_file_size_mb}MB limit",
        )
    try:
        upload = service.add_upload(surge, file.filename or "upload.pdf", content)
    except InvalidSurgeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StorageError as exc:
        logger.error("Upload write failed for surge %s: %s", surge_id, exc)
        raise HTTPException(status_code=502, detail="Could not store the uploaded file")
    return _serialize_upload(upload)


@router.delete("/{surge_id}/uploads/{upload_id}", summary="Remove an upload")
def delete_upload(
    surge_id: UUID,
    upload_id: str,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    try:
        service.delete_upload(surge, upload_id)
    except UploadNotFoundError:
        raise HTTPException(status_code=404, detail=f"Upload {upload_id} not found")
    except StorageError as exc:
        logger.error("Upload delete failed for surge %s: %s", surge_id, exc)
        raise HTTPException(status_code=502, detail="Could not delete the stored file")
    return {"deleted": upload_id}


@router.get("/{surge_id}/households", summary="Households with warnings for this surge")
def list_households(
    surge_id: UUID,
    warn: list[str] | None = Query(default=None),
    prepared: list[str] | None = Query(default=None),
    search: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    rows = service.household_rows(
        surge, warn_filter=warn, prepared=_parse_prepared(prepared), search=search
    )
    return [_serialize_row(r) for r in rows]


@router.post("/{surge_id}/prepare", status_code=202, summary="Queue packet builds")
def prepare_surge(
    surge_id: UUID,
    body: PrepareBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
):
    max_households = get_settings().surge_max_households
    _load_surge(service, surge_id, actor)
    if len(body.household_ids) > max_households:
        raise HTTPException(status_code=400, detail=f"At most {max_households} households per batch")

    try:
        result = orchestrator.prepare(
            surge_id,
            body.household_ids,
            body.order,
            body.action,
            actor=actor.channel,
        )
    except RateLimitExceededError as exc:
        raise HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(max(1, int(exc.retry_after + 0.999)))},
        )
    except SurgeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Surge {surge_id} not found")
    except HouseholdNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except BatchInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (EmptySelectionError, NothingToBuildError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "queued": result.accepted,
        "total": result.total_households,
        "total_steps": result.total_steps,
    }


@router.get("/{surge_id}/packets/{household_id}", summary="Time-limited link to a packet")
def packet_link(
    surge_id: UUID,
    household_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    try:
        url = service.packet_link(surge, household_id)
    except PacketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"url": url}


@router.post("/{surge_id}/snapshots/clear", summary="Forget prepared packets before a rebuild")
def clear_snapshots(
    surge_id: UUID,
    body: HouseholdSelectionBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
):
    surge = _load_surge(service, surge_id, actor)
    return {"cleared": service.clear_snapshots(surge, body.household_ids)}


@router.post("/{surge_id}/archive", summary="Zip prepared packets and return a download link")
def build_archive(
    surge_id: UUID,
    body: HouseholdSelectionBody,
    actor: Actor = Depends(get_actor),
    service: SurgeService = Depends(get_surge_service),
    aggregator: ArchiveAggregator = Depends(get_archive_aggregator),
):
    surge = _load_surge(service, surge_id, actor)
    prepared = service.snapshots.prepared_household_ids(surge.id)
    if body.household_ids is None:
        household_ids = sorted(prepared, key=str)
    else:
        household_ids = [hid for hid in body.household_ids if hid in prepared]
    if not household_ids:
        raise HTTPException(status_code=400, detail="No prepared packets to archive")
    try:
        url = aggregator.build_archive(surge.id, household_ids)
    except StorageError as exc:
        logger.error("Archive build failed for surge %s: %s", surge_id, exc)
        raise HTTPException(status_code=502, detail="Could not build the archive")
    return {"url": url, "count": len(household_ids)}
