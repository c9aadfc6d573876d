"""
Tenant (connected business) domain model and merge rules.

A tenant record is always written whole. merge_tenant() is the single place
that decides which value survives when a partial update meets the stored row.
"""

import re
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

DEFAULT_CONTACT = "us using the contact details on our Google Business listing"
DEFAULT_INTERVAL_MINUTES = 30

EMAIL_PATTERN = re.compile(r"\S+@\S+")


class Tenant(BaseModel):
    """One connected business."""

    account_id: str
    location_id: str = ""
    name: str | None = None
    contact: str = DEFAULT_CONTACT
    auto_reply_enabled: bool = False
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    free_reply_used: bool = False
    trial_ends_at: datetime | None = None
    subscribed_at: datetime | None = None
    stripe_customer_id: str | None = None
    is_pro: bool = False
    updated_at: datetime | None = None

    def is_trial_active(self, now: datetime) -> bool:
        """No end date, or an end date still in the future."""
        if self.trial_ends_at is None:
            return True
        return _as_utc(self.trial_ends_at) > now

    @property
    def is_subscribed(self) -> bool:
        return self.subscribed_at is not None

    def can_auto_reply(self, now: datetime) -> bool:
        return self.is_trial_active(now) or self.is_subscribed

    def is_eligible_for_auto_reply(self, now: datetime) -> bool:
        return (
            self.auto_reply_enabled
            and bool(self.account_id)
            and bool(self.location_id)
            and self.can_auto_reply(now)
        )

    def contact_email(self) -> str | None:
        """The contact string, but only when it looks like an email address."""
        if self.contact and EMAIL_PATTERN.search(self.contact):
            return self.contact
        return None

    def display_name(self) -> str:
        return self.name or "This business"


class TenantUpdate(BaseModel):
    """Partial tenant write. Unset (None) fields keep the stored value."""

    account_id: str
    location_id: str | None = None
    name: str | None = None
    contact: str | None = None
    auto_reply_enabled: bool | None = None
    interval_minutes: int | None = None
    free_reply_used: bool | None = None
    trial_ends_at: datetime | None = None
    subscribed_at: datetime | None = None
    stripe_customer_id: str | None = None
    is_pro: bool | None = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _pick(incoming, existing, default):
    if incoming is not None:
        return incoming
    if existing is not None:
        return existing
    return default


def merge_tenant(
    existing: Tenant | None, update: TenantUpdate, now: datetime, trial_days: int = 30
) -> Tenant:
    """
    Merge a partial update into the stored tenant.

    Precedence per field: incoming non-null value, else stored value, else the
    field default. A brand-new tenant gets trial_ends_at = now + trial_days.
    """
    prior = existing.model_dump() if existing else {}
    is_new = existing is None
    trial_default = now + timedelta(days=trial_days) if is_new else None

    return Tenant(
        account_id=update.account_id,
        location_id=_pick(update.location_id, prior.get("location_id"), ""),
        name=_pick(update.name, prior.get("name"), None),
        contact=_pick(update.contact, prior.get("contact"), DEFAULT_CONTACT),
        auto_reply_enabled=_pick(
            update.auto_reply_enabled, prior.get("auto_reply_enabled"), False
        ),
        interval_minutes=_pick(
            update.interval_minutes, prior.get("interval_minutes"), DEFAULT_INTERVAL_MINUTES
        ),
        free_reply_used=_pick(update.free_reply_used, prior.get("free_reply_used"), False),
        trial_ends_at=_pick(update.trial_ends_at, prior.get("trial_ends_at"), trial_default),
        subscribed_at=_pick(update.subscribed_at, prior.get("subscribed_at"), None),
        stripe_customer_id=_pick(
            update.stripe_customer_id, prior.get("stripe_customer_id"), None
        ),
        is_pro=_pick(update.is_pro, prior.get("is_pro"), False),
        updated_at=now,
    )
