# reviewreply/models/api/pro_response.py
"""
Pro campaign API response models.
"""

from datetime import date

from pydantic import BaseModel

from reviewreply.models.domain.campaign_domain import (
    ContactCounts,
    EventCampaign,
    OneOffCampaign,
    ProContact,
)


class ContactsListResponse(BaseModel):
    contacts: list[ProContact]
    counts: ContactCounts
    limit: int
    offset: int


class UpcomingEventResponse(BaseModel):
    key: str
    name: str
    event_date: date
    prompt_date: date


class UpcomingEventsResponse(BaseModel):
    events: list[UpcomingEventResponse]
    within_days: int


class EventCampaignsResponse(BaseModel):
    campaigns: list[EventCampaign]


class OneOffCampaignsResponse(BaseModel):
    campaigns: list[OneOffCampaign]
