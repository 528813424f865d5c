"""Domain models for broadcasts and the message log."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from broadcast_gateway.domain.errors import InvalidMessageKind, MissingMedia


class MessageKind(StrEnum):
    """Supported outbound message types."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"

    @classmethod
    def parse(cls, raw: str) -> "MessageKind":
        """Parse a message type from request input."""
        try:
            return cls(raw.strip().lower())
        except ValueError as exc:
            raise InvalidMessageKind(f"Invalid message type: {raw}") from exc

    @property
    def media_kind(self) -> str:
        """Media type stored in the message log."""
        return "none" if self is MessageKind.TEXT else self.value


class SendStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class MediaPayload:
    """Binary media attached to a broadcast."""

    content: bytes = field(repr=False)
    mime_type: str
    filename: str


@dataclass(frozen=True)
class BroadcastRequest:
    """A message to fan out to every recipient of a company."""

    tenant_id: str
    company_id: str
    kind: MessageKind
    content: str
    media: MediaPayload | None = None
    media_ref: str | None = None

    def validate(self) -> None:
        """Raise if the request cannot be sent to anyone."""
        if self.kind is not MessageKind.TEXT and self.media is None:
            raise MissingMedia(f"A file is required for {self.kind} messages")


@dataclass(frozen=True)
class OutboundMessage:
    """Payload handed to the chat transport for a single recipient."""

    kind: MessageKind
    text: str
    media: MediaPayload | None = None
    send_as_voice: bool = False

    @classmethod
    def from_request(cls, request: BroadcastRequest) -> "OutboundMessage":
        if request.kind is MessageKind.TEXT:
            return cls(kind=request.kind, text=request.content)
        return cls(
            kind=request.kind,
            text=request.content,
            media=request.media,
            send_as_voice=request.kind is MessageKind.AUDIO,
        )


@dataclass(frozen=True)
class Recipient:
    """A company contact that receives broadcasts."""

    id: str
    phone_number: str
    name: str | None = None


@dataclass(frozen=True)
class SendOutcome:
    """Per-recipient result of a broadcast."""

    phone_number: str
    status: SendStatus
    error_detail: str | None = None


@dataclass(frozen=True)
class BroadcastSummary:
    total: int
    sent: int
    failed: int


@dataclass(frozen=True)
class BroadcastReport:
    """Outcomes of a broadcast in recipient order."""

    outcomes: list[SendOutcome]

    @property
    def summary(self) -> BroadcastSummary:
        sent = sum(1 for outcome in self.outcomes if outcome.status is SendStatus.SENT)
        return BroadcastSummary(
            total=len(self.outcomes),
            sent=sent,
            failed=len(self.outcomes) - sent,
        )


@dataclass(frozen=True)
class MessageLogEntry:
    """Append-only record of an attempted send."""

    company_id: str
    tenant_id: str
    recipient_id: str
    content: str
    media_kind: str
    media_ref: str | None
    status: str
    timestamp: datetime
    id: str | None = None
    recipient: Recipient | None = None
