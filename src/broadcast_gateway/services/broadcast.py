"""Broadcast fan-out to a company's recipients."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from broadcast_gateway.domain.errors import (
    NoRecipients,
    PerRecipientSendFailure,
    PersistenceFailure,
    SessionNotReady,
)
from broadcast_gateway.domain.messages import (
    BroadcastReport,
    BroadcastRequest,
    MessageLogEntry,
    OutboundMessage,
    Recipient,
    SendOutcome,
    SendStatus,
)
from broadcast_gateway.domain.sessions import SessionState
from broadcast_gateway.services.messages import MessageLog
from broadcast_gateway.services.phone_numbers import PhoneNumberNormalizer
from broadcast_gateway.services.registry import Session, SessionRegistry

logger = logging.getLogger(__name__)


class RecipientRepository(Protocol):
    """Persistence interface for a company's contacts."""

    def list_recipients(self, company_id: str) -> list[Recipient]:
        """Return every contact of a company."""


@dataclass
class BroadcastDispatcher:
    """Sends one request to many recipients, isolating each failure."""

    message_log: MessageLog
    normalizer: PhoneNumberNormalizer
    max_concurrency: int | None = None
    log_failed_sends: bool = False

    async def broadcast(
        self,
        session: Session | None,
        request: BroadcastRequest,
        recipients: list[Recipient],
    ) -> list[SendOutcome]:
        """Send to every recipient; outcomes keep the recipients' order."""
        if session is None or session.state is not SessionState.READY:
            raise SessionNotReady()
        if not recipients:
            raise NoRecipients()
        request.validate()

        message = OutboundMessage.from_request(request)
        limiter = (
            asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        )
        outcomes = await asyncio.gather(
            *(
                self._dispatch(session, request, message, recipient, limiter)
                for recipient in recipients
            )
        )
        return list(outcomes)

    async def _dispatch(
        self,
        session: Session,
        request: BroadcastRequest,
        message: OutboundMessage,
        recipient: Recipient,
        limiter: asyncio.Semaphore | None,
    ) -> SendOutcome:
        if limiter is None:
            return await self._attempt(session, request, message, recipient)
        async with limiter:
            return await self._attempt(session, request, message, recipient)

    async def _attempt(
        self,
        session: Session,
        request: BroadcastRequest,
        message: OutboundMessage,
        recipient: Recipient,
    ) -> SendOutcome:
        try:
            await self._deliver(session, request, message, recipient)
        except PerRecipientSendFailure as exc:
            logger.warning(
                "Failed to send message",
                extra={
                    "tenant_id": request.tenant_id,
                    "recipient_id": recipient.id,
                    "error": str(exc),
                },
            )
            if self.log_failed_sends:
                await self._record_failure(request, recipient)
            return SendOutcome(
                phone_number=recipient.phone_number,
                status=SendStatus.FAILED,
                error_detail=str(exc),
            )
        return SendOutcome(phone_number=recipient.phone_number, status=SendStatus.SENT)

    async def _deliver(
        self,
        session: Session,
        request: BroadcastRequest,
        message: OutboundMessage,
        recipient: Recipient,
    ) -> None:
        target = self.normalizer.normalize(recipient.phone_number)
        try:
            await session.transport.send(target, message)
            await asyncio.to_thread(
                self.message_log.append,
                _log_entry(request, recipient, SendStatus.SENT),
            )
        except Exception as exc:
            raise PerRecipientSendFailure(
                recipient.phone_number, str(exc) or type(exc).__name__
            ) from exc

    async def _record_failure(
        self, request: BroadcastRequest, recipient: Recipient
    ) -> None:
        try:
            await asyncio.to_thread(
                self.message_log.append,
                _log_entry(request, recipient, SendStatus.FAILED),
            )
        except Exception:
            logger.exception(
                "Failed to record failed send", extra={"recipient_id": recipient.id}
            )


@dataclass
class BroadcastService:
    """Resolves the tenant's session and recipients, then dispatches."""

    registry: SessionRegistry
    recipient_repository: RecipientRepository
    dispatcher: BroadcastDispatcher

    def require_session(self, tenant_id: str) -> Session:
        """Return the tenant's ready session or raise SessionNotReady."""
        session = self.registry.get(tenant_id)
        if session is None or session.state is not SessionState.READY:
            raise SessionNotReady()
        return session

    async def send_to_all(self, request: BroadcastRequest) -> BroadcastReport:
        """Broadcast a request to every recipient of the tenant's company."""
        session = self.require_session(request.tenant_id)
        request.validate()
        try:
            recipients = await asyncio.to_thread(
                self.recipient_repository.list_recipients, request.company_id
            )
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc
        if not recipients:
            raise NoRecipients()
        logger.info(
            "Broadcasting message",
            extra={
                "tenant_id": request.tenant_id,
                "kind": request.kind.value,
                "recipients": len(recipients),
            },
        )
        outcomes = await self.dispatcher.broadcast(session, request, recipients)
        return BroadcastReport(outcomes=outcomes)


def _log_entry(
    request: BroadcastRequest, recipient: Recipient, status: SendStatus
) -> MessageLogEntry:
    return MessageLogEntry(
        company_id=request.company_id,
        tenant_id=request.tenant_id,
        recipient_id=recipient.id,
        content=request.content,
        media_kind=request.kind.media_kind,
        media_ref=request.media_ref,
        status=status,
        timestamp=datetime.now(tz=UTC),
    )
