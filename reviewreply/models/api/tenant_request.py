# reviewreply/models/api/tenant_request.py
"""
Tenant API request models.
"""

from pydantic import BaseModel, Field


class TenantSettingsRequest(BaseModel):
    """Partial update of a tenant's owner-editable settings."""

    auto_reply_enabled: bool | None = Field(None, description="Turn scheduled auto-reply on/off")
    contact: str | None = Field(
        None, max_length=500, description="How unhappy reviewers should reach the business"
    )
    interval_minutes: int | None = Field(
        None, ge=1, le=1440, description="Minutes between auto-reply runs for this tenant"
    )
