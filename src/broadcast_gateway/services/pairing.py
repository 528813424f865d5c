"""Pairing state machine for tenant chat sessions."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Protocol

from broadcast_gateway.adapters.chat_transport import (
    ChatTransportFactory,
    TransportEvent,
    TransportEventKind,
)
from broadcast_gateway.domain.errors import (
    AuthenticationFailure,
    GatewayError,
    NoActiveSession,
    PairingTimeout,
    PersistenceFailure,
    TransportInitFailure,
)
from broadcast_gateway.domain.sessions import (
    ConnectionStatus,
    PairingOutcome,
    PairingOutcomeKind,
    SessionRecord,
    SessionState,
    StatusReport,
)
from broadcast_gateway.services.gate import ResponseGate
from broadcast_gateway.services.registry import Session, SessionRegistry

logger = logging.getLogger(__name__)

PairingCodeRenderer = Callable[[str], str]

_LIVE_STATES = {SessionState.AWAITING_SCAN, SessionState.READY}

_OUTCOME_ERRORS: dict[PairingOutcomeKind, type[GatewayError]] = {
    PairingOutcomeKind.TIMEOUT: PairingTimeout,
    PairingOutcomeKind.INIT_FAILED: TransportInitFailure,
    PairingOutcomeKind.AUTH_FAILED: AuthenticationFailure,
    PairingOutcomeKind.PERSISTENCE_FAILED: PersistenceFailure,
}


class SessionStore(Protocol):
    """Persistence interface for session credentials."""

    def get_record(self, tenant_id: str) -> SessionRecord | None:
        """Return the stored record for a tenant, if present."""

    def upsert_record(self, record: SessionRecord) -> None:
        """Create or replace the tenant's record."""

    def deactivate(self, tenant_id: str) -> None:
        """Mark the tenant's record inactive."""

    def list_active(self) -> list[SessionRecord]:
        """Return all records marked active."""


def report_status(
    session: Session | None, record: SessionRecord | None
) -> StatusReport:
    """Derive the tenant-facing status from live and persisted state."""
    if session is not None and session.state is SessionState.READY:
        return StatusReport(ConnectionStatus.CONNECTED)
    if session is not None and session.pairing_artifact:
        return StatusReport(ConnectionStatus.QR_READY, session.pairing_artifact)
    if record is not None and record.is_active:
        return StatusReport(ConnectionStatus.SESSION_EXISTS)
    return StatusReport(ConnectionStatus.DISCONNECTED)


@dataclass
class PairingService:
    """Drives sessions from unpaired through pairing to ready."""

    registry: SessionRegistry
    session_store: SessionStore
    transport_factory: ChatTransportFactory
    render_pairing_code: PairingCodeRenderer
    pairing_timeout_seconds: float = 30.0

    async def request_pairing(self, tenant_id: str) -> PairingOutcome:
        """Return ``connected`` or a pairing code, starting a session if needed."""
        session, created = await self.registry.get_or_create(
            tenant_id, self._build_session
        )
        if session.state is SessionState.READY:
            return PairingOutcome.connected()
        if session.pairing_artifact:
            return PairingOutcome.code_issued(session.pairing_artifact)

        gate = ResponseGate(self.pairing_timeout_seconds)
        self.registry.add_waiter(session, gate)
        try:
            if created:
                await self._start(session)
            outcome = await gate.wait()
        finally:
            gate.cancel()
            self.registry.discard_waiter(session, gate)

        if not outcome.succeeded:
            logger.warning(
                "Pairing request failed",
                extra={"tenant_id": tenant_id, "outcome": outcome.kind.value},
            )
            raise _OUTCOME_ERRORS[outcome.kind](outcome.detail)
        return outcome

    async def status(self, tenant_id: str) -> StatusReport:
        """Report the tenant's connection status without changing it."""
        session = self.registry.get(tenant_id)
        record = await self._load_record(tenant_id)
        return report_status(session, record)

    async def resume(self, tenant_id: str) -> Session | None:
        """Re-enter pairing with stored credentials when an active record exists."""
        if self.registry.get(tenant_id) is not None:
            return None
        record = await self._load_record(tenant_id)
        if record is None or not record.is_active:
            return None
        session, created = await self.registry.get_or_create(
            tenant_id,
            partial(self._build_session, credential_blob=record.credential_blob),
        )
        if created:
            logger.info("Resuming session", extra={"tenant_id": tenant_id})
            await self._start(session)
        return session

    async def resume_active_sessions(self) -> int:
        """Resume every session with an active record; returns how many started."""
        try:
            records = await asyncio.to_thread(self.session_store.list_active)
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc
        resumed = 0
        for record in records:
            try:
                if await self.resume(record.tenant_id) is not None:
                    resumed += 1
            except GatewayError:
                logger.exception(
                    "Failed to resume session", extra={"tenant_id": record.tenant_id}
                )
        return resumed

    async def disconnect(self, tenant_id: str) -> None:
        """Tear down the tenant's live session and deactivate its record."""
        session = self.registry.get(tenant_id)
        if session is None or not await self.registry.retire(
            session, SessionState.DISCONNECTED
        ):
            raise NoActiveSession()
        self.registry.notify_waiters(
            session,
            PairingOutcome.failed(
                PairingOutcomeKind.INIT_FAILED, "Session was disconnected"
            ),
        )
        await self._destroy_quietly(session)
        await self._deactivate(tenant_id)
        logger.info("Session disconnected", extra={"tenant_id": tenant_id})

    async def shutdown(self) -> None:
        """Destroy live transports, keeping records so sessions resume on restart."""
        for session in self.registry.sessions():
            if not await self.registry.remove(session.tenant_id, session):
                continue
            await self._destroy_quietly(session)
            if session.runner is not None:
                session.runner.cancel()

    def _build_session(
        self, tenant_id: str, credential_blob: str | None = None
    ) -> Session:
        try:
            transport = self.transport_factory(tenant_id, credential_blob)
        except Exception as exc:
            raise TransportInitFailure(str(exc)) from exc
        return Session(tenant_id=tenant_id, transport=transport)

    async def _start(self, session: Session) -> None:
        await self.registry.transition(session, SessionState.AWAITING_SCAN)
        session.runner = asyncio.create_task(self._run(session))

    async def _run(self, session: Session) -> None:
        pump = asyncio.create_task(self._pump_events(session))
        try:
            await session.transport.initialize()
        except Exception as exc:
            logger.exception(
                "Error initializing chat transport",
                extra={"tenant_id": session.tenant_id},
            )
            pump.cancel()
            await self._fail_initialization(session, str(exc))
            return
        logger.info(
            "Chat transport initialized", extra={"tenant_id": session.tenant_id}
        )
        await pump

    async def _pump_events(self, session: Session) -> None:
        async for event in session.transport.events():
            try:
                await self._handle_event(session, event)
            except Exception:
                logger.exception(
                    "Failed to handle transport event",
                    extra={"tenant_id": session.tenant_id, "event": event.kind.value},
                )
            if session.state not in _LIVE_STATES:
                return

    async def _handle_event(self, session: Session, event: TransportEvent) -> None:
        if event.kind is TransportEventKind.PAIRING_CODE_ISSUED:
            await self._on_pairing_code(session, event.payload or "")
        elif event.kind is TransportEventKind.AUTHENTICATED:
            await self._on_authenticated(session)
        elif event.kind is TransportEventKind.AUTHENTICATION_FAILED:
            await self._on_authentication_failed(session, event.payload)

    async def _on_pairing_code(self, session: Session, code: str) -> None:
        if session.state is not SessionState.AWAITING_SCAN:
            return
        try:
            artifact = self.render_pairing_code(code)
        except Exception:
            logger.exception(
                "Error generating QR code", extra={"tenant_id": session.tenant_id}
            )
            self.registry.notify_waiters(
                session,
                PairingOutcome.failed(
                    PairingOutcomeKind.INIT_FAILED, "Failed to generate QR code"
                ),
            )
            return
        if await self.registry.cache_artifact(session, artifact):
            self.registry.notify_waiters(session, PairingOutcome.code_issued(artifact))

    async def _on_authenticated(self, session: Session) -> None:
        if session.state is not SessionState.AWAITING_SCAN:
            return
        outcome = PairingOutcome.connected()
        try:
            credential_blob = await session.transport.get_credentials()
            await asyncio.to_thread(
                self.session_store.upsert_record,
                SessionRecord(
                    tenant_id=session.tenant_id,
                    credential_blob=credential_blob,
                    is_active=True,
                ),
            )
        except Exception as exc:
            logger.exception(
                "Failed to store session credentials",
                extra={"tenant_id": session.tenant_id},
            )
            outcome = PairingOutcome.failed(
                PairingOutcomeKind.PERSISTENCE_FAILED, str(exc)
            )
        if await self.registry.transition(session, SessionState.READY):
            logger.info("Session ready", extra={"tenant_id": session.tenant_id})
            self.registry.notify_waiters(session, outcome)

    async def _on_authentication_failed(
        self, session: Session, reason: str | None
    ) -> None:
        if session.state not in _LIVE_STATES:
            return
        if not await self.registry.retire(session, SessionState.AUTH_FAILED):
            return
        logger.warning(
            "Authentication failed",
            extra={"tenant_id": session.tenant_id, "reason": reason},
        )
        self.registry.notify_waiters(
            session, PairingOutcome.failed(PairingOutcomeKind.AUTH_FAILED, reason)
        )
        try:
            await self._deactivate(session.tenant_id)
        finally:
            await self._destroy_quietly(session)

    async def _fail_initialization(self, session: Session, detail: str) -> None:
        if not await self.registry.retire(session, SessionState.UNPAIRED):
            return
        self.registry.notify_waiters(
            session, PairingOutcome.failed(PairingOutcomeKind.INIT_FAILED, detail)
        )
        await self._destroy_quietly(session)

    async def _destroy_quietly(self, session: Session) -> None:
        try:
            await session.transport.destroy()
        except Exception:
            logger.exception(
                "Failed to destroy transport", extra={"tenant_id": session.tenant_id}
            )

    async def _load_record(self, tenant_id: str) -> SessionRecord | None:
        try:
            return await asyncio.to_thread(self.session_store.get_record, tenant_id)
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc

    async def _deactivate(self, tenant_id: str) -> None:
        try:
            await asyncio.to_thread(self.session_store.deactivate, tenant_id)
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc
