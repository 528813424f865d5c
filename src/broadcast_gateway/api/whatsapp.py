"""Tenant-facing WhatsApp endpoints."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse

from broadcast_gateway.domain.errors import MediaLoadFailure, PersistenceFailure
from broadcast_gateway.domain.messages import (
    BroadcastRequest,
    MediaPayload,
    MessageKind,
    MessageLogEntry,
)
from broadcast_gateway.domain.sessions import ConnectionStatus, PairingOutcomeKind
from broadcast_gateway.domain.tenants import TenantContext

if TYPE_CHECKING:
    from broadcast_gateway.containers import AppContainer
    from broadcast_gateway.services.pairing import PairingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["whatsapp"])


async def require_tenant(
    request: Request,
    x_api_token: str | None = Header(default=None),
    x_tenant_id: str | None = Header(default=None),
    x_company_id: str | None = Header(default=None),
) -> TenantContext:
    """Authenticate the caller and resolve its tenant context."""
    container: AppContainer = request.app.state.container
    if not x_api_token or x_api_token != container.settings.api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not x_tenant_id or not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id and X-Company-Id headers are required",
        )
    return TenantContext(user_id=x_tenant_id, company_id=x_company_id)


@router.get("/qrcode")
async def get_qr_code(
    request: Request,
    tenant: TenantContext = Depends(require_tenant),
) -> dict[str, str]:
    """Return a pairing QR code, starting a session when none is live."""
    container: AppContainer = request.app.state.container
    outcome = await container.pairing_service.request_pairing(tenant.user_id)
    if outcome.kind is PairingOutcomeKind.CONNECTED:
        return {"message": "WhatsApp is already connected"}
    return {"qrImageUrl": outcome.artifact or ""}


@router.get("/status")
async def get_status(
    request: Request,
    background_tasks: BackgroundTasks,
    tenant: TenantContext = Depends(require_tenant),
) -> dict[str, str]:
    """Report the connection status; stored sessions are resumed in background."""
    container: AppContainer = request.app.state.container
    report = await container.pairing_service.status(tenant.user_id)
    if report.status is ConnectionStatus.SESSION_EXISTS:
        background_tasks.add_task(
            _resume_session, container.pairing_service, tenant.user_id
        )
    body = {"status": report.status.value}
    if report.qr_image_url:
        body["qrImageUrl"] = report.qr_image_url
    return body


@router.post("/send")
async def send_message(
    request: Request,
    message_type: str = Form(default="", alias="messageType"),
    content: str = Form(default=""),
    file: UploadFile | None = File(default=None),
    tenant: TenantContext = Depends(require_tenant),
) -> dict[str, object]:
    """Broadcast a message to every contact of the tenant's company."""
    container: AppContainer = request.app.state.container
    kind = MessageKind.parse(message_type)
    container.broadcast_service.require_session(tenant.user_id)

    media: MediaPayload | None = None
    media_ref: str | None = None
    staged: Path | None = None
    if file is not None and kind is not MessageKind.TEXT:
        raw = await file.read()
        try:
            staged = await asyncio.to_thread(
                container.media_storage.save, file.filename, raw
            )
        except OSError as exc:
            logger.exception("Failed to stage media upload")
            raise MediaLoadFailure(str(exc)) from exc
        media = MediaPayload(
            content=raw,
            mime_type=file.content_type or "application/octet-stream",
            filename=staged.name,
        )
        media_ref = str(staged)

    try:
        report = await container.broadcast_service.send_to_all(
            BroadcastRequest(
                tenant_id=tenant.user_id,
                company_id=tenant.company_id,
                kind=kind,
                content=content,
                media=media,
                media_ref=media_ref,
            )
        )
    except Exception:
        if staged is not None:
            await asyncio.to_thread(container.media_storage.discard, staged)
        raise
    results = []
    for outcome in report.outcomes:
        result = {"phoneNumber": outcome.phone_number, "status": outcome.status.value}
        if outcome.error_detail:
            result["error"] = outcome.error_detail
        results.append(result)
    summary = report.summary
    return {
        "results": results,
        "summary": {
            "total": summary.total,
            "sent": summary.sent,
            "failed": summary.failed,
        },
    }


@router.get("/messages", response_model=None)
async def list_messages(
    request: Request,
    tenant: TenantContext = Depends(require_tenant),
) -> dict[str, object] | JSONResponse:
    """Return the company's recent message log."""
    container: AppContainer = request.app.state.container
    try:
        entries = await container.message_history_service.list_recent(
            tenant.company_id
        )
    except PersistenceFailure as exc:
        logger.exception(
            "Failed to fetch messages", extra={"tenant_id": tenant.user_id}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Failed to fetch previous messages",
                "details": exc.detail or exc.message,
            },
        )
    return {"success": True, "data": [_serialize_entry(entry) for entry in entries]}


@router.post("/disconnect")
async def disconnect(
    request: Request,
    tenant: TenantContext = Depends(require_tenant),
) -> dict[str, str]:
    """Log the tenant out and forget its stored credentials."""
    container: AppContainer = request.app.state.container
    await container.pairing_service.disconnect(tenant.user_id)
    return {"message": "WhatsApp disconnected successfully"}


async def _resume_session(pairing_service: PairingService, tenant_id: str) -> None:
    try:
        await pairing_service.resume(tenant_id)
    except Exception:
        logger.exception("Failed to resume session", extra={"tenant_id": tenant_id})


def _serialize_entry(entry: MessageLogEntry) -> dict[str, object]:
    sender = None
    if entry.recipient is not None:
        sender = {
            "id": entry.recipient.id,
            "name": entry.recipient.name,
            "phoneNumber": entry.recipient.phone_number,
        }
    return {
        "id": entry.id,
        "content": entry.content,
        "mediaType": entry.media_kind,
        "mediaURL": entry.media_ref,
        "status": entry.status,
        "timestamp": entry.timestamp.isoformat(),
        "sender": sender,
    }
