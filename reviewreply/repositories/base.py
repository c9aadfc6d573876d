"""
Storage interfaces shared by the JSON-file and Postgres backends.

Core services depend only on these abstract classes. The concrete backend is
chosen once per process by reviewreply.repositories.factory.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

from reviewreply.models.domain.campaign_domain import (
    BirthdaySettings,
    ContactCounts,
    ContactRow,
    EventCampaign,
    EventCampaignStatus,
    OneOffCampaign,
    ProContact,
)
from reviewreply.models.domain.tenant_domain import Tenant, TenantUpdate

MAX_CONTACT_PAGE_SIZE = 500


class StoreError(Exception):
    """Raised when a backend cannot read or write its data."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class Store(ABC):
    """Tenants, reply-state, contacts and OAuth tokens."""

    backend: str = "unknown"

    async def initialize(self) -> None:
        """Prepare the backend. Failures here are fatal for the process."""

    async def close(self) -> None:
        """Release backend resources."""

    # --- Tenants ---

    @abstractmethod
    async def get_tenant(self, account_id: str) -> Tenant | None: ...

    @abstractmethod
    async def get_all_tenants(self) -> list[Tenant]: ...

    @abstractmethod
    async def upsert_tenant(self, update: TenantUpdate, now: datetime | None = None) -> Tenant:
        """Merge-upsert: fields left unset in `update` keep their stored values."""

    # --- Reply state ---

    @abstractmethod
    async def get_replied_review_ids(self, account_id: str, location_id: str) -> set[str]: ...

    @abstractmethod
    async def save_replied_review_ids(
        self, account_id: str, location_id: str, review_ids: set[str]
    ) -> None:
        """Merge review_ids into the stored set. Stored IDs are never removed."""

    async def add_replied_review_id(self, account_id: str, location_id: str, review_id: str) -> None:
        ids = await self.get_replied_review_ids(account_id, location_id)
        ids.add(review_id)
        await self.save_replied_review_ids(account_id, location_id, ids)

    # --- Contacts ---

    @abstractmethod
    async def replace_contacts(self, account_id: str, rows: list[ContactRow]) -> ContactCounts:
        """Replace the whole list, carrying unsubscribe state forward by email."""

    @abstractmethod
    async def get_sendable_contacts(self, account_id: str) -> list[ProContact]: ...

    @abstractmethod
    async def list_contacts(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> list[ProContact]: ...

    @abstractmethod
    async def count_contacts(self, account_id: str) -> ContactCounts: ...

    @abstractmethod
    async def set_contact_unsubscribed(
        self, account_id: str, email: str, now: datetime | None = None
    ) -> bool: ...

    # --- OAuth tokens ---

    @abstractmethod
    async def get_token(self, account_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def save_token(self, account_id: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def list_token_account_ids(self) -> list[str]:
        """Accounts holding an access or refresh token."""


class CampaignStore(ABC):
    """Campaign definitions. Only the relational backend provides these."""

    @abstractmethod
    async def get_birthday_settings(self, account_id: str) -> BirthdaySettings | None: ...

    @abstractmethod
    async def save_birthday_settings(
        self, account_id: str, birthday_settings: BirthdaySettings
    ) -> BirthdaySettings: ...

    @abstractmethod
    async def get_event_campaign(
        self, account_id: str, event_key: str, event_year: int
    ) -> EventCampaign | None: ...

    @abstractmethod
    async def save_event_campaign(
        self, campaign: EventCampaign, from_statuses: tuple[EventCampaignStatus, ...]
    ) -> EventCampaign | None:
        """
        Insert, or update only while the stored status is one of from_statuses.

        Returns None when the stored row has moved to another status.
        """

    @abstractmethod
    async def list_event_campaigns(self, account_id: str) -> list[EventCampaign]: ...

    @abstractmethod
    async def list_event_campaigns_awaiting_send(self) -> list[EventCampaign]:
        """Every confirmed campaign with no sent_at, across all tenants."""

    @abstractmethod
    async def mark_event_campaign_sent(
        self, account_id: str, event_key: str, event_year: int, now: datetime | None = None
    ) -> None: ...

    @abstractmethod
    async def create_one_off_campaign(
        self, account_id: str, send_date: date, subject: str, body: str
    ) -> OneOffCampaign: ...

    @abstractmethod
    async def list_one_off_campaigns(self, account_id: str) -> list[OneOffCampaign]: ...

    @abstractmethod
    async def list_one_off_campaigns_due(self, today: date) -> list[OneOffCampaign]:
        """Scheduled campaigns with send_date on or before today."""

    @abstractmethod
    async def mark_one_off_campaign_sent(self, campaign_id: int) -> None: ...


def normalize_contact_rows(
    rows: list[ContactRow],
) -> tuple[list[ContactRow], list[ContactRow]]:
    """
    Split uploaded rows into (with_email, without_email).

    Emails are trimmed and lower-cased; a repeated email keeps the last row.
    Rows without an email are all kept.
    """
    with_email: dict[str, ContactRow] = {}
    without_email: list[ContactRow] = []

    for row in rows:
        email = (row.email or "").strip().lower()
        cleaned = ContactRow(
            email=email or None,
            first_name=(row.first_name or "").strip() or None,
            birthday=(row.birthday or "").strip() or None,
            phone=(row.phone or "").strip() or None,
        )
        if email:
            with_email[email] = cleaned
        else:
            without_email.append(cleaned)

    return list(with_email.values()), without_email


def clamp_page(limit: int, offset: int) -> tuple[int, int]:
    limit = min(limit or 100, MAX_CONTACT_PAGE_SIZE)
    return max(limit, 1), max(offset or 0, 0)
