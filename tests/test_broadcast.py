"""Tests for broadcast dispatch."""

import asyncio

import pytest

from broadcast_gateway.domain.errors import (
    MissingMedia,
    NoRecipients,
    PersistenceFailure,
    SessionNotReady,
)
from broadcast_gateway.domain.messages import (
    BroadcastReport,
    BroadcastRequest,
    MediaPayload,
    MessageKind,
    Recipient,
    SendStatus,
)
from broadcast_gateway.domain.sessions import SessionState
from broadcast_gateway.services.broadcast import BroadcastDispatcher, BroadcastService
from broadcast_gateway.services.phone_numbers import PhoneNumberNormalizer
from broadcast_gateway.services.registry import Session, SessionRegistry
from tests.conftest import (
    FakeChatTransport,
    InMemoryMessageLog,
    InMemoryRecipientRepository,
)

RECIPIENTS = [
    Recipient(id="r1", phone_number="+91 98765 43210"),
    Recipient(id="r2", phone_number="98765 43211"),
    Recipient(id="r3", phone_number="98765 43212"),
]


def _text_request(content: str = "Hello team") -> BroadcastRequest:
    return BroadcastRequest(
        tenant_id="t1",
        company_id="company-1",
        kind=MessageKind.TEXT,
        content=content,
    )


def _ready_service(
    transport: FakeChatTransport,
    message_log: InMemoryMessageLog,
    recipients: list[Recipient],
    **dispatcher_options: object,
) -> BroadcastService:
    registry = SessionRegistry()
    session = Session("t1", transport, state=SessionState.READY)
    asyncio.run(registry.get_or_create("t1", lambda _tenant_id: session))
    return BroadcastService(
        registry=registry,
        recipient_repository=InMemoryRecipientRepository(
            recipients={"company-1": recipients}
        ),
        dispatcher=BroadcastDispatcher(
            message_log=message_log,
            normalizer=PhoneNumberNormalizer(),
            **dispatcher_options,  # type: ignore[arg-type]
        ),
    )


def test_broadcast_sends_to_every_recipient() -> None:
    transport = FakeChatTransport("t1")
    message_log = InMemoryMessageLog()
    service = _ready_service(transport, message_log, RECIPIENTS)

    report = asyncio.run(service.send_to_all(_text_request()))

    assert [target for target, _ in transport.sent] == [
        "919876543210",
        "919876543211",
        "919876543212",
    ]
    assert [outcome.status for outcome in report.outcomes] == [SendStatus.SENT] * 3
    assert report.summary.sent == 3
    assert sorted(entry.recipient_id for entry in message_log.entries) == [
        "r1",
        "r2",
        "r3",
    ]
    assert {entry.media_kind for entry in message_log.entries} == {"none"}
    assert {entry.status for entry in message_log.entries} == {"sent"}


def test_one_failure_does_not_abort_others() -> None:
    transport = FakeChatTransport("t1", failing_targets={"919876543211"})
    message_log = InMemoryMessageLog()
    service = _ready_service(transport, message_log, RECIPIENTS)

    report = asyncio.run(service.send_to_all(_text_request()))

    assert [outcome.phone_number for outcome in report.outcomes] == [
        recipient.phone_number for recipient in RECIPIENTS
    ]
    failed = report.outcomes[1]
    assert failed.status is SendStatus.FAILED
    assert failed.error_detail == "chat 919876543211 not found"
    assert report.summary.total == 3
    assert report.summary.sent == 2
    assert report.summary.failed == 1
    assert sorted(entry.recipient_id for entry in message_log.entries) == ["r1", "r3"]


def test_failed_sends_logged_when_enabled() -> None:
    transport = FakeChatTransport("t1", failing_targets={"919876543211"})
    message_log = InMemoryMessageLog()
    service = _ready_service(
        transport, message_log, RECIPIENTS, log_failed_sends=True
    )

    asyncio.run(service.send_to_all(_text_request()))

    statuses = {entry.recipient_id: entry.status for entry in message_log.entries}
    assert statuses == {"r1": "sent", "r2": "failed", "r3": "sent"}


def test_outcome_order_is_stable_with_uneven_latency() -> None:
    transport = FakeChatTransport("t1", send_delay=0.01)
    service = _ready_service(transport, InMemoryMessageLog(), RECIPIENTS)

    report = asyncio.run(service.send_to_all(_text_request()))

    assert [outcome.phone_number for outcome in report.outcomes] == [
        recipient.phone_number for recipient in RECIPIENTS
    ]


def test_concurrency_cap_limits_in_flight_sends() -> None:
    transport = FakeChatTransport("t1", send_delay=0.01)
    recipients = [
        Recipient(id=f"r{index}", phone_number=f"9876543{index:03d}")
        for index in range(6)
    ]
    service = _ready_service(
        transport, InMemoryMessageLog(), recipients, max_concurrency=2
    )

    report = asyncio.run(service.send_to_all(_text_request()))

    assert report.summary.sent == 6
    assert transport.max_in_flight == 2


def test_unbounded_by_default() -> None:
    transport = FakeChatTransport("t1", send_delay=0.01)
    service = _ready_service(transport, InMemoryMessageLog(), RECIPIENTS)

    asyncio.run(service.send_to_all(_text_request()))

    assert transport.max_in_flight == 3


def test_audio_is_sent_as_voice_note() -> None:
    transport = FakeChatTransport("t1")
    message_log = InMemoryMessageLog()
    service = _ready_service(transport, message_log, RECIPIENTS[:1])
    request = BroadcastRequest(
        tenant_id="t1",
        company_id="company-1",
        kind=MessageKind.AUDIO,
        content="",
        media=MediaPayload(b"ogg", "audio/ogg", "1700000000000.ogg"),
        media_ref="whatsapp/1700000000000.ogg",
    )

    asyncio.run(service.send_to_all(request))

    _, message = transport.sent[0]
    assert message.send_as_voice is True
    assert message.media is not None
    assert message.media.mime_type == "audio/ogg"
    assert message_log.entries[0].media_kind == "audio"
    assert message_log.entries[0].media_ref == "whatsapp/1700000000000.ogg"


def test_no_recipients_fails_without_sending() -> None:
    transport = FakeChatTransport("t1")
    service = _ready_service(transport, InMemoryMessageLog(), [])

    with pytest.raises(NoRecipients):
        asyncio.run(service.send_to_all(_text_request()))
    assert transport.sent == []


def test_media_kind_requires_payload() -> None:
    transport = FakeChatTransport("t1")
    service = _ready_service(transport, InMemoryMessageLog(), RECIPIENTS)
    request = BroadcastRequest(
        tenant_id="t1",
        company_id="company-1",
        kind=MessageKind.IMAGE,
        content="caption",
    )

    with pytest.raises(MissingMedia):
        asyncio.run(service.send_to_all(request))
    assert transport.sent == []


def test_session_must_be_ready() -> None:
    registry = SessionRegistry()
    session = Session("t1", FakeChatTransport("t1"), state=SessionState.AWAITING_SCAN)
    asyncio.run(registry.get_or_create("t1", lambda _tenant_id: session))
    service = BroadcastService(
        registry=registry,
        recipient_repository=InMemoryRecipientRepository(
            recipients={"company-1": RECIPIENTS}
        ),
        dispatcher=BroadcastDispatcher(
            message_log=InMemoryMessageLog(), normalizer=PhoneNumberNormalizer()
        ),
    )

    with pytest.raises(SessionNotReady):
        asyncio.run(service.send_to_all(_text_request()))
    with pytest.raises(SessionNotReady):
        service.require_session("unknown-tenant")


def test_recipient_lookup_failure_is_persistence_failure() -> None:
    class BrokenRepository(InMemoryRecipientRepository):
        def list_recipients(self, company_id: str) -> list[Recipient]:
            raise RuntimeError("database unavailable")

    transport = FakeChatTransport("t1")
    service = _ready_service(transport, InMemoryMessageLog(), RECIPIENTS)
    service.recipient_repository = BrokenRepository()

    with pytest.raises(PersistenceFailure):
        asyncio.run(service.send_to_all(_text_request()))


def test_report_summary_counts() -> None:
    report = BroadcastReport(outcomes=[])

    assert report.summary.total == 0
    assert report.summary.sent == 0
    assert report.summary.failed == 0
