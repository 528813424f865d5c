"""Supabase-backed session credential store."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from broadcast_gateway.domain.sessions import SessionRecord
from broadcast_gateway.services.pairing import SessionStore


@dataclass
class SupabaseSessionStore(SessionStore):
    """Supabase implementation for persisted session records."""

    client: Client

    def get_record(self, tenant_id: str) -> SessionRecord | None:
        """Return the session record for a tenant, if present."""
        response = (
            self.client.table("whatsapp_sessions")
            .select("user_id, session_data, is_active")
            .eq("user_id", tenant_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def upsert_record(self, record: SessionRecord) -> None:
        """Create or replace the tenant's session record."""
        self.client.table("whatsapp_sessions").upsert(
            {
                "user_id": record.tenant_id,
                "session_data": record.credential_blob,
                "is_active": record.is_active,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id",
        ).execute()

    def deactivate(self, tenant_id: str) -> None:
        """Mark the tenant's session record inactive."""
        self.client.table("whatsapp_sessions").update(
            {
                "is_active": False,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("user_id", tenant_id).execute()

    def list_active(self) -> list[SessionRecord]:
        """Return all active session records."""
        response = (
            self.client.table("whatsapp_sessions")
            .select("user_id, session_data, is_active")
            .eq("is_active", True)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> SessionRecord:
    session_data = row.get("session_data")
    return SessionRecord(
        tenant_id=str(row["user_id"]),
        credential_blob=str(session_data) if session_data is not None else None,
        is_active=bool(row.get("is_active")),
    )
