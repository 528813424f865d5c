"""Shared test fixtures."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from broadcast_gateway.adapters.chat_transport import TransportEvent
from broadcast_gateway.adapters.media_storage import LocalMediaStorage
from broadcast_gateway.config import Settings
from broadcast_gateway.containers import AppContainer
from broadcast_gateway.domain.messages import (
    MessageLogEntry,
    OutboundMessage,
    Recipient,
)
from broadcast_gateway.domain.sessions import SessionRecord
from broadcast_gateway.services.broadcast import (
    BroadcastDispatcher,
    BroadcastService,
    RecipientRepository,
)
from broadcast_gateway.services.messages import MessageHistoryService, MessageLog
from broadcast_gateway.services.pairing import PairingService, SessionStore
from broadcast_gateway.services.phone_numbers import PhoneNumberNormalizer
from broadcast_gateway.services.registry import SessionRegistry


@dataclass
class InMemorySessionStore(SessionStore):
    """In-memory session store for tests."""

    records: dict[str, SessionRecord] = field(default_factory=dict)
    deactivated: list[str] = field(default_factory=list)
    fail_upsert: bool = False

    def get_record(self, tenant_id: str) -> SessionRecord | None:
        return self.records.get(tenant_id)

    def upsert_record(self, record: SessionRecord) -> None:
        if self.fail_upsert:
            raise RuntimeError("database unavailable")
        self.records[record.tenant_id] = record

    def deactivate(self, tenant_id: str) -> None:
        self.deactivated.append(tenant_id)
        record = self.records.get(tenant_id)
        if record is not None:
            self.records[tenant_id] = SessionRecord(
                tenant_id=tenant_id,
                credential_blob=record.credential_blob,
                is_active=False,
            )

    def list_active(self) -> list[SessionRecord]:
        return [record for record in self.records.values() if record.is_active]


@dataclass
class InMemoryMessageLog(MessageLog):
    """In-memory message log for tests."""

    entries: list[MessageLogEntry] = field(default_factory=list)
    fail_reads: bool = False

    def append(self, entry: MessageLogEntry) -> None:
        self.entries.append(entry)

    def list_recent(self, company_id: str, limit: int) -> list[MessageLogEntry]:
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        matching = [entry for entry in self.entries if entry.company_id == company_id]
        return sorted(matching, key=lambda entry: entry.timestamp)[:limit]


@dataclass
class InMemoryRecipientRepository(RecipientRepository):
    """In-memory contacts keyed by company."""

    recipients: dict[str, list[Recipient]] = field(default_factory=dict)

    def list_recipients(self, company_id: str) -> list[Recipient]:
        return list(self.recipients.get(company_id, []))


@dataclass
class FakeChatTransport:
    """Scripted chat transport that records sends."""

    tenant_id: str
    credential_blob: str | None = None
    script: list[TransportEvent] = field(default_factory=list)
    credentials: str | None = "stored-credentials"
    credentials_error: Exception | None = None
    initialize_error: Exception | None = None
    failing_targets: set[str] = field(default_factory=set)
    send_delay: float = 0.0
    sent: list[tuple[str, OutboundMessage]] = field(default_factory=list)
    initialized: bool = False
    destroyed: bool = False
    in_flight: int = 0
    max_in_flight: int = 0
    _queue: asyncio.Queue[TransportEvent | None] = field(
        default_factory=asyncio.Queue
    )

    async def initialize(self) -> None:
        if self.initialize_error is not None:
            raise self.initialize_error
        self.initialized = True
        for event in self.script:
            self._queue.put_nowait(event)

    def emit(self, event: TransportEvent) -> None:
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[TransportEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def get_credentials(self) -> str | None:
        if self.credentials_error is not None:
            raise self.credentials_error
        return self.credentials

    async def send(self, target: str, message: OutboundMessage) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.send_delay:
                await asyncio.sleep(self.send_delay)
            if target in self.failing_targets:
                raise RuntimeError(f"chat {target} not found")
            self.sent.append((target, message))
        finally:
            self.in_flight -= 1

    async def destroy(self) -> None:
        self.destroyed = True
        self._queue.put_nowait(None)


@dataclass
class FakeTransportFactory:
    """Builds scripted transports and remembers them."""

    script: list[TransportEvent] = field(default_factory=list)
    initialize_error: Exception | None = None
    credentials_error: Exception | None = None
    created: list[FakeChatTransport] = field(default_factory=list)

    def __call__(
        self, tenant_id: str, credential_blob: str | None = None
    ) -> FakeChatTransport:
        transport = FakeChatTransport(
            tenant_id=tenant_id,
            credential_blob=credential_blob,
            script=list(self.script),
            initialize_error=self.initialize_error,
            credentials_error=self.credentials_error,
        )
        self.created.append(transport)
        return transport


def render_test_code(code: str) -> str:
    return f"data:image/png;base64,{code}"


def build_pairing_service(
    session_store: InMemorySessionStore,
    transport_factory: FakeTransportFactory,
    registry: SessionRegistry | None = None,
    timeout: float = 1.0,
) -> PairingService:
    return PairingService(
        registry=registry or SessionRegistry(),
        session_store=session_store,
        transport_factory=transport_factory,
        render_pairing_code=render_test_code,
        pairing_timeout_seconds=timeout,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        api_token="api-token",
        admin_token="admin-token",
        transport_bridge_url="http://bridge.local",
        pairing_timeout_seconds=1.0,
        media_dir=str(tmp_path / "media"),
    )


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def message_log() -> InMemoryMessageLog:
    return InMemoryMessageLog()


@pytest.fixture
def recipient_repository() -> InMemoryRecipientRepository:
    return InMemoryRecipientRepository(
        recipients={
            "company-1": [
                Recipient(id="r1", phone_number="+91 98765 43210", name="Asha"),
                Recipient(id="r2", phone_number="98765 43211", name="Ravi"),
            ]
        }
    )


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def container(
    settings: Settings,
    session_store: InMemorySessionStore,
    message_log: InMemoryMessageLog,
    recipient_repository: InMemoryRecipientRepository,
    transport_factory: FakeTransportFactory,
) -> AppContainer:
    registry = SessionRegistry()
    pairing_service = build_pairing_service(
        session_store,
        transport_factory,
        registry=registry,
        timeout=settings.pairing_timeout_seconds,
    )
    broadcast_service = BroadcastService(
        registry=registry,
        recipient_repository=recipient_repository,
        dispatcher=BroadcastDispatcher(
            message_log=message_log,
            normalizer=PhoneNumberNormalizer(settings.default_region),
        ),
    )

    async def close_resources() -> None:
        await pairing_service.shutdown()

    return AppContainer(
        settings=settings,
        registry=registry,
        pairing_service=pairing_service,
        broadcast_service=broadcast_service,
        message_history_service=MessageHistoryService(message_log),
        media_storage=LocalMediaStorage(Path(settings.media_dir)),
        close_resources=close_resources,
    )
