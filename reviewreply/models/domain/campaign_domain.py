"""
Domain models for Pro contacts and campaigns.

Plain pydantic models shared by the stores, the campaign service and the
API layer. State transitions live in CampaignService, not here.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel

DEFAULT_SEND_DAYS_BEFORE = 14


class EventCampaignStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"
    SENT = "sent"


class OneOffCampaignStatus(str, Enum):
    SCHEDULED = "scheduled"
    SENT = "sent"


class ContactRow(BaseModel):
    """One uploaded contact row before normalisation."""

    email: str | None = None
    first_name: str | None = None
    birthday: str | None = None
    phone: str | None = None


class ProContact(BaseModel):
    """A stored contact. Rows without email are kept but never sent to."""

    id: int | None = None
    email: str | None = None
    first_name: str | None = None
    birthday: str | None = None
    phone: str | None = None
    unsubscribed_at: datetime | None = None

    @property
    def is_sendable(self) -> bool:
        return bool(self.email) and self.unsubscribed_at is None


class ContactCounts(BaseModel):
    total: int = 0
    with_email: int = 0
    unsubscribed: int = 0


class BirthdaySettings(BaseModel):
    enabled: bool = False
    message_text: str = ""
    offer_text: str = ""
    updated_at: datetime | None = None


class EventCampaign(BaseModel):
    account_id: str
    event_key: str
    event_year: int
    status: EventCampaignStatus = EventCampaignStatus.PENDING
    message_text: str = ""
    offer_text: str = ""
    send_days_before: int = DEFAULT_SEND_DAYS_BEFORE
    confirmed_at: datetime | None = None
    sent_at: datetime | None = None


class OneOffCampaign(BaseModel):
    id: int
    account_id: str
    send_date: date
    subject: str
    body: str
    status: OneOffCampaignStatus = OneOffCampaignStatus.SCHEDULED
    created_at: datetime | None = None


class CampaignSendResult(BaseModel):
    sent: int = 0
    failed: int = 0
