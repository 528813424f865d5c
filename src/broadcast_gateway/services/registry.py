"""Process-wide registry of live tenant sessions."""

import asyncio
import logging
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field

from broadcast_gateway.adapters.chat_transport import ChatTransport
from broadcast_gateway.domain.sessions import PairingOutcome, SessionState
from broadcast_gateway.services.gate import ResponseGate

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """Live in-memory handle to a tenant's chat connection."""

    tenant_id: str
    transport: ChatTransport
    state: SessionState = SessionState.UNPAIRED
    pairing_artifact: str | None = None
    waiters: list[ResponseGate] = field(default_factory=list)
    runner: asyncio.Task[None] | None = None


SessionFactory = Callable[[str], Session]


class SessionRegistry:
    """Owns every live session; all mutations go through per-tenant locks."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        # Entries vanish once no coroutine holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    def get(self, tenant_id: str) -> Session | None:
        """Return the live session for a tenant, if present."""
        return self._sessions.get(tenant_id)

    def sessions(self) -> list[Session]:
        """Return all live sessions."""
        return list(self._sessions.values())

    async def get_or_create(
        self, tenant_id: str, factory: SessionFactory
    ) -> tuple[Session, bool]:
        """Return the tenant's session, building it once if absent."""
        async with self._lock_for(tenant_id):
            session = self._sessions.get(tenant_id)
            if session is not None:
                return session, False
            session = factory(tenant_id)
            self._sessions[tenant_id] = session
            logger.info("Session created", extra={"tenant_id": tenant_id})
            return session, True

    async def remove(
        self, tenant_id: str, session: Session | None = None
    ) -> Session | None:
        """Drop the tenant's session; with ``session`` only if it is still current."""
        async with self._lock_for(tenant_id):
            return self._pop_current(tenant_id, session)

    async def transition(self, session: Session, state: SessionState) -> bool:
        """Move a registered session to ``state``; stale sessions are ignored."""
        async with self._lock_for(session.tenant_id):
            if not self._is_current(session):
                return False
            self._apply_state(session, state)
            return True

    async def retire(self, session: Session, state: SessionState) -> bool:
        """Set a terminal state and unregister the session in one step."""
        async with self._lock_for(session.tenant_id):
            if not self._is_current(session):
                return False
            self._apply_state(session, state)
            self._pop_current(session.tenant_id, session)
            return True

    async def cache_artifact(self, session: Session, artifact: str) -> bool:
        """Cache the rendered pairing code for an awaiting session."""
        async with self._lock_for(session.tenant_id):
            if (
                not self._is_current(session)
                or session.state is not SessionState.AWAITING_SCAN
            ):
                return False
            session.pairing_artifact = artifact
            return True

    def add_waiter(self, session: Session, gate: ResponseGate) -> None:
        session.waiters.append(gate)

    def discard_waiter(self, session: Session, gate: ResponseGate) -> None:
        if gate in session.waiters:
            session.waiters.remove(gate)

    def notify_waiters(self, session: Session, outcome: PairingOutcome) -> int:
        """Fire every pending gate of a session; returns how many delivered."""
        return sum(1 for gate in list(session.waiters) if gate.fire(outcome))

    def snapshot(self) -> list[dict[str, object]]:
        """Describe live sessions for admin views."""
        return [
            {
                "tenant_id": session.tenant_id,
                "state": session.state.value,
                "has_pairing_code": session.pairing_artifact is not None,
                "waiters": len(session.waiters),
            }
            for session in self._sessions.values()
        ]

    def _is_current(self, session: Session) -> bool:
        return self._sessions.get(session.tenant_id) is session

    def _pop_current(self, tenant_id: str, session: Session | None) -> Session | None:
        current = self._sessions.get(tenant_id)
        if current is None or (session is not None and current is not session):
            return None
        del self._sessions[tenant_id]
        logger.info("Session removed", extra={"tenant_id": tenant_id})
        return current

    def _apply_state(self, session: Session, state: SessionState) -> None:
        previous = session.state
        session.state = state
        if state is not SessionState.AWAITING_SCAN:
            session.pairing_artifact = None
        logger.info(
            "Session state transition",
            extra={
                "tenant_id": session.tenant_id,
                "from_state": previous.value,
                "to_state": state.value,
            },
        )
