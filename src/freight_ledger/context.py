"""Explicit tenant/actor context threaded through every service call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TenantContext:
    """Who is acting, and on whose data."""

    tenant_id: str
    actor_id: str = "system"
    actor_role: str = "system"

    def __post_init__(self) -> None:
        if not self.tenant_id or not self.tenant_id.strip():
            raise ValueError("tenant_id is required")
