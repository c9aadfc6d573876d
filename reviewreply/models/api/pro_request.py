# reviewreply/models/api/pro_request.py
"""
Pro campaign API request models.
Used by routes for input validation.
"""

from datetime import date

from pydantic import BaseModel, Field

from reviewreply.models.domain.campaign_domain import DEFAULT_SEND_DAYS_BEFORE


class BirthdaySettingsRequest(BaseModel):
    enabled: bool = Field(..., description="Send birthday emails")
    message_text: str = Field(default="", max_length=5000, description="Message template")
    offer_text: str = Field(default="", max_length=1000, description="Substituted for {offer}")


class ConfirmEventRequest(BaseModel):
    """Opt in to (or edit) the campaign for one event occurrence."""

    message_text: str = Field(..., min_length=1, max_length=5000)
    offer_text: str = Field(default="", max_length=1000)
    send_days_before: int = Field(default=DEFAULT_SEND_DAYS_BEFORE, ge=0, le=365)


class OneOffCampaignRequest(BaseModel):
    send_date: date = Field(..., description="Calendar date to send on")
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=20000)
