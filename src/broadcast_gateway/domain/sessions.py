"""Domain models for tenant chat sessions."""

from dataclasses import dataclass
from enum import StrEnum


class SessionState(StrEnum):
    """Lifecycle states of a live session."""

    UNPAIRED = "unpaired"
    AWAITING_SCAN = "awaiting_scan"
    READY = "ready"
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"


class ConnectionStatus(StrEnum):
    """Status reported to tenants by the status query."""

    CONNECTED = "connected"
    QR_READY = "qr_ready"
    SESSION_EXISTS = "session_exists"
    DISCONNECTED = "disconnected"


class PairingOutcomeKind(StrEnum):
    """Possible results of a pairing request."""

    CONNECTED = "connected"
    CODE_ISSUED = "code_issued"
    TIMEOUT = "timeout"
    INIT_FAILED = "init_failed"
    AUTH_FAILED = "auth_failed"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class SessionRecord:
    """Persisted credentials used to resume a session without re-pairing."""

    tenant_id: str
    credential_blob: str | None
    is_active: bool


@dataclass(frozen=True)
class PairingOutcome:
    """Single result delivered to a caller waiting on a pairing request."""

    kind: PairingOutcomeKind
    artifact: str | None = None
    detail: str | None = None

    @classmethod
    def connected(cls) -> "PairingOutcome":
        return cls(PairingOutcomeKind.CONNECTED)

    @classmethod
    def code_issued(cls, artifact: str) -> "PairingOutcome":
        return cls(PairingOutcomeKind.CODE_ISSUED, artifact=artifact)

    @classmethod
    def timed_out(cls) -> "PairingOutcome":
        return cls(PairingOutcomeKind.TIMEOUT)

    @classmethod
    def failed(
        cls, kind: PairingOutcomeKind, detail: str | None = None
    ) -> "PairingOutcome":
        return cls(kind, detail=detail)

    @property
    def succeeded(self) -> bool:
        return self.kind in {
            PairingOutcomeKind.CONNECTED,
            PairingOutcomeKind.CODE_ISSUED,
        }


@dataclass(frozen=True)
class StatusReport:
    """Result of the non-mutating status query."""

    status: ConnectionStatus
    qr_image_url: str | None = None
