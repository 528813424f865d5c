"""Error types raised by the gateway."""


class GatewayError(Exception):
    """Base error carrying the HTTP status used at the API boundary."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail


class SessionNotReady(GatewayError):
    status_code = 400
    message = "WhatsApp is not initialized or not ready"


class NoRecipients(GatewayError):
    status_code = 400
    message = "No users found to send messages to"


class MissingMedia(GatewayError):
    status_code = 400
    message = "A media file is required for this message type"


class InvalidMessageKind(GatewayError):
    status_code = 400
    message = "Invalid message type"


class MediaLoadFailure(GatewayError):
    status_code = 400
    message = "Failed to load media"


class NoActiveSession(GatewayError):
    status_code = 400
    message = "No active WhatsApp connection"


class NormalizationFailure(GatewayError):
    """Phone number could not be parsed; callers fall back to the raw value."""

    status_code = 400
    message = "Invalid phone number"


class TransportInitFailure(GatewayError):
    message = "Failed to initialize WhatsApp client"


class AuthenticationFailure(GatewayError):
    message = "WhatsApp authentication failed"


class PairingTimeout(GatewayError):
    status_code = 408
    message = "Timeout while waiting for QR code"


class PersistenceFailure(GatewayError):
    message = "Failed to persist data"


class PerRecipientSendFailure(GatewayError):
    """Send to a single recipient failed; captured into the broadcast outcome."""

    message = "Failed to send message"

    def __init__(self, phone_number: str, detail: str) -> None:
        super().__init__(detail)
        self.phone_number = phone_number
