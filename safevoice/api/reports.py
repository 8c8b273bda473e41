"""API endpoints for report drafts, submission, and status history."""

from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from safevoice.clients.base import AttachmentData
from safevoice.errors import InvalidTransitionError, NotFoundError, SubmitError, ValidationError
from safevoice.lifecycle.report_store import ReportStore
from safevoice.models.report import (
    ActionType,
    ContactInfo,
    LocationData,
    MediaAttachment,
    Report,
    ReportCategory,
    ReportStatus,
    StatusUpdate,
)

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


class ReportListResponse(BaseModel):
    """List response for reports."""

    items: list[Report]
    total: int


class DraftCreateRequest(BaseModel):
    """Payload for starting a new draft."""

    category: ReportCategory = ReportCategory.OTHER
    content: str = ""
    is_anonymous: bool = True


class DraftUpdateRequest(BaseModel):
    """Payload for saving draft edits."""

    category: ReportCategory | None = None
    content: str | None = None
    is_anonymous: bool | None = None
    contact_info: ContactInfo | None = None
    location: LocationData | None = None


class AttachmentUpload(BaseModel):
    """Attachment bytes sent inline for submission."""

    filename: str
    mime_type: str
    data_base64: str


class SubmitRequest(BaseModel):
    """Optional attachment payloads forwarded to the remote service."""

    attachments: list[AttachmentUpload] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    """Payload for recording a status transition."""

    new_status: ReportStatus
    message: str = ""
    action_required: bool = False
    action_type: ActionType | None = None
    agent_id: str | None = None


class AttachmentCreateRequest(BaseModel):
    """Attachment descriptor; the type is inferred from ``mime_type``."""

    mime_type: str
    filename: str | None = None
    size: int | None = Field(default=None, ge=0)
    local_path: str | None = None


class ReportDeleteResponse(BaseModel):
    """Deletion response."""

    report_id: str
    deleted: bool


def _store(request: Request) -> ReportStore:
    store = getattr(request.app.state, "report_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Report store is not configured")
    return store


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SubmitError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail="Unexpected report error")


def _decode_attachments(items: list[AttachmentUpload]) -> list[AttachmentData]:
    decoded: list[AttachmentData] = []
    for item in items:
        try:
            data = base64.b64decode(item.data_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"Attachment '{item.filename}' is not valid base64") from exc
        decoded.append(AttachmentData(data=data, filename=item.filename, mime_type=item.mime_type))
    return decoded


def _require_report(store: ReportStore, report_id: str) -> Report:
    report = store.get_report(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report '{report_id}' not found")
    return report


@router.get("/", response_model=ReportListResponse)
async def list_active_reports(request: Request) -> ReportListResponse:
    items = _store(request).list_active()
    items.sort(key=lambda report: report.created_at, reverse=True)
    return ReportListResponse(items=items, total=len(items))


@router.get("/drafts", response_model=ReportListResponse)
async def list_draft_reports(request: Request) -> ReportListResponse:
    items = _store(request).list_drafts()
    items.sort(key=lambda report: report.created_at, reverse=True)
    return ReportListResponse(items=items, total=len(items))


@router.get("/{report_id}", response_model=Report)
async def get_report(report_id: str, request: Request) -> Report:
    return _require_report(_store(request), report_id)


@router.post("/drafts", response_model=Report, status_code=201)
async def create_draft(payload: DraftCreateRequest, request: Request) -> Report:
    return await _store(request).create_draft(
        category=payload.category,
        content=payload.content,
        is_anonymous=payload.is_anonymous,
    )


@router.put("/drafts/{report_id}", response_model=Report)
async def save_draft(report_id: str, payload: DraftUpdateRequest, request: Request) -> Report:
    """Apply partial edits to an existing draft."""
    store = _store(request)
    report = _require_report(store, report_id)
    changes = payload.model_dump(exclude_unset=True)
    updated = Report.model_validate({**report.model_dump(), **changes})
    try:
        return await store.save_draft(updated)
    except ValidationError as exc:
        raise _to_http_error(exc) from exc


@router.post("/{report_id}/submit", response_model=Report)
async def submit_report(report_id: str, request: Request, payload: SubmitRequest | None = None) -> Report:
    """Submit a stored draft to the remote reporting service."""
    store = _store(request)
    report = _require_report(store, report_id)
    attachments = _decode_attachments(payload.attachments) if payload else []
    try:
        return await store.submit(report, attachments)
    except (ValidationError, NotFoundError, SubmitError) as exc:
        raise _to_http_error(exc) from exc


@router.post("/{report_id}/status", response_model=Report)
async def add_status_update(report_id: str, payload: StatusUpdateRequest, request: Request) -> Report:
    store = _store(request)
    report = _require_report(store, report_id)
    update = StatusUpdate(
        old_status=report.status,
        new_status=payload.new_status,
        message=payload.message,
        action_required=payload.action_required,
        action_type=payload.action_type,
        agent_id=payload.agent_id,
    )
    try:
        return await store.add_status_update(report_id, update)
    except (ValidationError, NotFoundError, InvalidTransitionError) as exc:
        raise _to_http_error(exc) from exc


@router.post("/{report_id}/attachments", response_model=Report, status_code=201)
async def add_attachment(report_id: str, payload: AttachmentCreateRequest, request: Request) -> Report:
    attachment = MediaAttachment.from_mime_type(
        payload.mime_type,
        filename=payload.filename,
        size=payload.size,
        local_path=payload.local_path,
    )
    try:
        return await _store(request).add_attachment(report_id, attachment)
    except (ValidationError, NotFoundError) as exc:
        raise _to_http_error(exc) from exc


@router.delete("/{report_id}/attachments/{attachment_id}", response_model=Report)
async def remove_attachment(report_id: str, attachment_id: str, request: Request) -> Report:
    try:
        return await _store(request).remove_attachment(report_id, attachment_id)
    except NotFoundError as exc:
        raise _to_http_error(exc) from exc


@router.delete("/{report_id}", response_model=ReportDeleteResponse)
async def delete_report(report_id: str, request: Request) -> ReportDeleteResponse:
    store = _store(request)
    existed = store.get_report(report_id) is not None
    await store.delete_report(report_id)
    return ReportDeleteResponse(report_id=report_id, deleted=existed)


@router.delete("/", status_code=204)
async def clear_all_reports(request: Request) -> None:
    """Privacy reset: wipe every report and every notification."""
    await _store(request).clear_all()
    inbox = getattr(request.app.state, "notification_inbox", None)
    if inbox is not None:
        await inbox.clear_all()
