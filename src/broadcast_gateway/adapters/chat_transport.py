"""Chat transport capability and the httpx bridge implementation."""

import asyncio
import base64
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

import httpx
from pydantic import BaseModel

from broadcast_gateway.domain.messages import OutboundMessage

logger = logging.getLogger(__name__)


class TransportEventKind(StrEnum):
    """Lifecycle events emitted by a chat transport."""

    PAIRING_CODE_ISSUED = "pairing_code_issued"
    AUTHENTICATED = "authenticated"
    AUTHENTICATION_FAILED = "authentication_failed"


@dataclass(frozen=True)
class TransportEvent:
    """A discrete lifecycle event delivered by a transport."""

    kind: TransportEventKind
    payload: str | None = None


class ChatTransport(Protocol):
    """Interface for one tenant's connection to the chat network."""

    async def initialize(self) -> None:
        """Start the connection; pairing events follow on the event stream."""

    def events(self) -> AsyncIterator[TransportEvent]:
        """Yield lifecycle events until the transport is destroyed."""

    async def get_credentials(self) -> str | None:
        """Return the credential blob held by an authenticated transport."""

    async def send(self, target: str, message: OutboundMessage) -> None:
        """Send a message to a canonical phone number."""

    async def destroy(self) -> None:
        """Tear down the connection and end the event stream."""


class ChatTransportFactory(Protocol):
    """Builds a fresh transport for a tenant."""

    def __call__(
        self, tenant_id: str, credential_blob: str | None = None
    ) -> ChatTransport:
        """Return a new, uninitialized transport."""


class BridgeEvent(BaseModel):
    """Event payload returned by the bridge's long-poll endpoint."""

    type: str
    data: str | None = None


class BridgeEventBatch(BaseModel):
    events: list[BridgeEvent] = []


_BRIDGE_EVENT_KINDS = {
    "qr": TransportEventKind.PAIRING_CODE_ISSUED,
    "ready": TransportEventKind.AUTHENTICATED,
    "auth_failure": TransportEventKind.AUTHENTICATION_FAILED,
}


@dataclass
class HttpxBridgeTransport:
    """Chat transport backed by a WhatsApp-web bridge over HTTP."""

    tenant_id: str
    base_url: str
    http_client: httpx.AsyncClient
    credential_blob: str | None = None
    poll_wait_seconds: int = 25
    retry_delay_seconds: float = 1.0
    _queue: asyncio.Queue[TransportEvent | None] = field(
        default_factory=asyncio.Queue, init=False, repr=False
    )
    _poller: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False)

    @property
    def _session_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/sessions/{self.tenant_id}"

    async def initialize(self) -> None:
        """Create the bridge session and start polling for events."""
        if self._poller is None:
            self._poller = asyncio.create_task(self._poll_events())
        payload: dict[str, object] = {"credentials": self.credential_blob}
        response = await self.http_client.post(
            self._session_url, json=payload, timeout=60
        )
        response.raise_for_status()

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Yield events until destroy() closes the stream."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def get_credentials(self) -> str | None:
        """Fetch the credential blob of the authenticated bridge session."""
        response = await self.http_client.get(
            f"{self._session_url}/credentials", timeout=10
        )
        response.raise_for_status()
        credentials = response.json().get("credentials")
        return str(credentials) if credentials is not None else None

    async def send(self, target: str, message: OutboundMessage) -> None:
        """Send a text or media message to a single chat."""
        payload: dict[str, object] = {
            "chatId": f"{target}@c.us",
            "type": message.kind.value,
            "text": message.text,
        }
        if message.media is not None:
            payload["media"] = {
                "mimetype": message.media.mime_type,
                "data": base64.b64encode(message.media.content).decode("ascii"),
                "filename": message.media.filename,
            }
            payload["sendAudioAsVoice"] = message.send_as_voice
        response = await self.http_client.post(
            f"{self._session_url}/messages", json=payload, timeout=30
        )
        response.raise_for_status()

    async def destroy(self) -> None:
        """Delete the bridge session and close the event stream."""
        if self._closed:
            return
        self._closed = True
        if self._poller is not None:
            self._poller.cancel()
        self._queue.put_nowait(None)
        response = await self.http_client.delete(self._session_url, timeout=10)
        if response.status_code != httpx.codes.NOT_FOUND:
            response.raise_for_status()

    async def _poll_events(self) -> None:
        while not self._closed:
            try:
                response = await self.http_client.get(
                    f"{self._session_url}/events",
                    params={"wait": self.poll_wait_seconds},
                    timeout=self.poll_wait_seconds + 5,
                )
                response.raise_for_status()
                batch = BridgeEventBatch.model_validate(response.json())
            except (httpx.HTTPError, ValueError):
                logger.warning(
                    "Bridge event poll failed",
                    extra={"tenant_id": self.tenant_id},
                    exc_info=True,
                )
                await asyncio.sleep(self.retry_delay_seconds)
                continue
            for raw in batch.events:
                kind = _BRIDGE_EVENT_KINDS.get(raw.type)
                if kind is None:
                    logger.debug(
                        "Ignoring bridge event",
                        extra={"tenant_id": self.tenant_id, "type": raw.type},
                    )
                    continue
                self._queue.put_nowait(TransportEvent(kind=kind, payload=raw.data))


@dataclass
class HttpxBridgeTransportFactory:
    """Creates bridge transports sharing one httpx session."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, base_url: str, token: str | None = None
    ) -> "HttpxBridgeTransportFactory":
        """Create a factory with a managed httpx session."""
        headers = {"Authorization": f"Bearer {token}"} if token else None
        return cls(base_url=base_url, http_client=httpx.AsyncClient(headers=headers))

    def __call__(
        self, tenant_id: str, credential_blob: str | None = None
    ) -> HttpxBridgeTransport:
        return HttpxBridgeTransport(
            tenant_id=tenant_id,
            base_url=self.base_url,
            http_client=self.http_client,
            credential_blob=credential_blob,
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
