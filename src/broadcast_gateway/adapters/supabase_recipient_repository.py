"""Supabase repository for company contacts."""

from dataclasses import dataclass

from supabase import Client

from broadcast_gateway.domain.messages import Recipient
from broadcast_gateway.services.broadcast import RecipientRepository


@dataclass
class SupabaseRecipientRepository(RecipientRepository):
    """Supabase implementation for broadcast recipients."""

    client: Client

    def list_recipients(self, company_id: str) -> list[Recipient]:
        """Return every contact of a company."""
        response = (
            self.client.table("company_users")
            .select("id, name, phone_number")
            .eq("company_id", company_id)
            .order("id", desc=False)
            .execute()
        )
        return [
            Recipient(
                id=str(row["id"]),
                phone_number=str(row.get("phone_number") or ""),
                name=row.get("name"),
            )
            for row in response.data or []
        ]
