"""Recipient phone number normalization."""

import logging
from dataclasses import dataclass

import phonenumbers

from broadcast_gateway.domain.errors import NormalizationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhoneNumberNormalizer:
    """Canonicalizes numbers to international digits without a leading ``+``."""

    default_region: str = "IN"

    def canonicalize(self, raw: str) -> str:
        """Return canonical digits or raise NormalizationFailure."""
        try:
            parsed = phonenumbers.parse(raw, self.default_region)
        except phonenumbers.NumberParseException as exc:
            raise NormalizationFailure(f"{raw!r}: {exc}") from exc
        if not phonenumbers.is_valid_number(parsed):
            raise NormalizationFailure(f"{raw!r} is not a valid number")
        formatted = phonenumbers.format_number(
            parsed, phonenumbers.PhoneNumberFormat.E164
        )
        return formatted.removeprefix("+")

    def normalize(self, raw: str) -> str:
        """Canonicalize ``raw``, falling back to the unmodified value."""
        try:
            return self.canonicalize(raw)
        except NormalizationFailure as exc:
            logger.warning(
                "Error formatting phone number",
                extra={"phone_number": raw, "error": str(exc)},
            )
            return raw
