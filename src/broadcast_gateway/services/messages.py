"""Message log access."""

import asyncio
from dataclasses import dataclass
from typing import Protocol

from broadcast_gateway.domain.errors import PersistenceFailure
from broadcast_gateway.domain.messages import MessageLogEntry


class MessageLog(Protocol):
    """Persistence interface for sent-message records."""

    def append(self, entry: MessageLogEntry) -> None:
        """Append a message record."""

    def list_recent(self, company_id: str, limit: int) -> list[MessageLogEntry]:
        """Return entries for a company ordered by timestamp ascending."""


@dataclass
class MessageHistoryService:
    """Reads previously sent messages for a company."""

    message_log: MessageLog
    limit: int = 100

    async def list_recent(self, company_id: str) -> list[MessageLogEntry]:
        """Return up to ``limit`` entries, oldest first."""
        try:
            return await asyncio.to_thread(
                self.message_log.list_recent, company_id, self.limit
            )
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc
