"""Supabase repository for the sent-message log."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from broadcast_gateway.domain.messages import MessageLogEntry, Recipient
from broadcast_gateway.services.messages import MessageLog

_SELECT_COLUMNS = (
    "id, company_id, sender_user_id, company_user_id, content, media_type, "
    "media_url, status, timestamp, company_users(id, name, phone_number)"
)


@dataclass
class SupabaseMessageLog(MessageLog):
    """Supabase implementation for message records."""

    client: Client

    def append(self, entry: MessageLogEntry) -> None:
        """Insert a message record."""
        response = (
            self.client.table("messages")
            .insert(
                {
                    "company_id": entry.company_id,
                    "sender_user_id": entry.tenant_id,
                    "company_user_id": entry.recipient_id,
                    "content": entry.content,
                    "media_type": entry.media_kind,
                    "media_url": entry.media_ref,
                    "status": str(entry.status),
                    "timestamp": entry.timestamp.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to store message")

    def list_recent(self, company_id: str, limit: int) -> list[MessageLogEntry]:
        """Return company messages ordered by timestamp ascending."""
        response = (
            self.client.table("messages")
            .select(_SELECT_COLUMNS)
            .eq("company_id", company_id)
            .order("timestamp", desc=False)
            .limit(limit)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> MessageLogEntry:
    timestamp_raw = row.get("timestamp")
    timestamp = (
        datetime.fromisoformat(timestamp_raw)
        if isinstance(timestamp_raw, str) and timestamp_raw
        else datetime.min.replace(tzinfo=UTC)
    )
    contact = row.get("company_users")
    recipient = None
    if isinstance(contact, dict):
        recipient = Recipient(
            id=str(contact["id"]),
            phone_number=str(contact.get("phone_number") or ""),
            name=contact.get("name"),
        )
    media_url = row.get("media_url")
    return MessageLogEntry(
        id=str(row["id"]),
        company_id=str(row.get("company_id")),
        tenant_id=str(row.get("sender_user_id") or ""),
        recipient_id=str(row.get("company_user_id")),
        content=str(row.get("content") or ""),
        media_kind=str(row.get("media_type") or "none"),
        media_ref=str(media_url) if media_url else None,
        status=str(row.get("status") or "sent"),
        timestamp=timestamp,
        recipient=recipient,
    )
