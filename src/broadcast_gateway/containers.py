"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from broadcast_gateway.adapters.chat_transport import HttpxBridgeTransportFactory
from broadcast_gateway.adapters.media_storage import LocalMediaStorage, MediaStorage
from broadcast_gateway.adapters.qr_renderer import render_qr_data_url
from broadcast_gateway.adapters.supabase_message_log import SupabaseMessageLog
from broadcast_gateway.adapters.supabase_recipient_repository import (
    SupabaseRecipientRepository,
)
from broadcast_gateway.adapters.supabase_session_store import SupabaseSessionStore
from broadcast_gateway.config import Settings
from broadcast_gateway.services.broadcast import BroadcastDispatcher, BroadcastService
from broadcast_gateway.services.messages import MessageHistoryService
from broadcast_gateway.services.pairing import PairingService
from broadcast_gateway.services.phone_numbers import PhoneNumberNormalizer
from broadcast_gateway.services.registry import SessionRegistry


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    registry: SessionRegistry
    pairing_service: PairingService
    broadcast_service: BroadcastService
    message_history_service: MessageHistoryService
    media_storage: MediaStorage
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_store = SupabaseSessionStore(supabase_client)
    message_log = SupabaseMessageLog(supabase_client)
    recipient_repository = SupabaseRecipientRepository(supabase_client)
    transport_factory = HttpxBridgeTransportFactory.create(
        resolved_settings.transport_bridge_url,
        token=resolved_settings.transport_bridge_token,
    )
    registry = SessionRegistry()
    pairing_service = PairingService(
        registry=registry,
        session_store=session_store,
        transport_factory=transport_factory,
        render_pairing_code=render_qr_data_url,
        pairing_timeout_seconds=resolved_settings.pairing_timeout_seconds,
    )
    dispatcher = BroadcastDispatcher(
        message_log=message_log,
        normalizer=PhoneNumberNormalizer(resolved_settings.default_region),
        max_concurrency=resolved_settings.broadcast_concurrency,
        log_failed_sends=resolved_settings.log_failed_sends,
    )
    broadcast_service = BroadcastService(
        registry=registry,
        recipient_repository=recipient_repository,
        dispatcher=dispatcher,
    )
    message_history_service = MessageHistoryService(
        message_log=message_log,
        limit=resolved_settings.message_history_limit,
    )

    async def close_resources() -> None:
        await pairing_service.shutdown()
        await transport_factory.close()

    return AppContainer(
        settings=resolved_settings,
        registry=registry,
        pairing_service=pairing_service,
        broadcast_service=broadcast_service,
        message_history_service=message_history_service,
        media_storage=LocalMediaStorage(Path(resolved_settings.media_dir)),
        close_resources=close_resources,
    )
