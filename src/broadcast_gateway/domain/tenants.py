"""Tenant domain models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TenantContext:
    """Identifies the calling tenant user and the company it belongs to."""

    user_id: str
    company_id: str
