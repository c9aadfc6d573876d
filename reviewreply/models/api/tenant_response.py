# reviewreply/models/api/tenant_response.py
"""
Tenant API response models.
"""

from datetime import datetime

from pydantic import BaseModel

from reviewreply.models.domain.tenant_domain import Tenant


class TenantResponse(BaseModel):
    account_id: str
    location_id: str
    name: str | None
    contact: str
    auto_reply_enabled: bool
    interval_minutes: int
    free_reply_used: bool
    trial_ends_at: datetime | None
    subscribed_at: datetime | None
    is_pro: bool
    trial_active: bool
    can_auto_reply: bool
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, tenant: Tenant, now: datetime) -> "TenantResponse":
        return cls(
            account_id=tenant.account_id,
            location_id=tenant.location_id,
            name=tenant.name,
            contact=tenant.contact,
            auto_reply_enabled=tenant.auto_reply_enabled,
            interval_minutes=tenant.interval_minutes,
            free_reply_used=tenant.free_reply_used,
            trial_ends_at=tenant.trial_ends_at,
            subscribed_at=tenant.subscribed_at,
            is_pro=tenant.is_pro,
            trial_active=tenant.is_trial_active(now),
            can_auto_reply=tenant.can_auto_reply(now),
            updated_at=tenant.updated_at,
        )


class TenantsListResponse(BaseModel):
    tenants: list[TenantResponse]
    total_count: int
