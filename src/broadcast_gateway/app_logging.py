"""Logging configuration helpers."""

import logging

# Keys passed through ``extra=`` across the gateway, in display order.
CONTEXT_KEYS = (
    "tenant_id",
    "from_state",
    "to_state",
    "outcome",
    "event",
    "kind",
    "recipients",
    "recipient_id",
    "phone_number",
    "reason",
    "count",
    "path",
    "type",
    "error",
)


class ContextFormatter(logging.Formatter):
    """Formatter that appends structured ``extra`` context as ``key=value``."""

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        message = super().formatMessage(record)
        context = " ".join(
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_KEYS
            if getattr(record, key, None) is not None
        )
        return f"{message} [{context}]" if context else message


def configure_logging(level: str = "INFO") -> None:
    """Attach one context-aware stream handler to the package logger."""
    logger = logging.getLogger("broadcast_gateway")
    logger.setLevel(level.upper())
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
