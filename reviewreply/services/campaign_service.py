"""
Pro campaign state transitions and send routines.

Send routines make a single best-effort pass over the audience. Per-contact
failures are logged and counted; event and one-off campaigns are marked sent
after the pass regardless of how many emails went out.
"""

from datetime import UTC, date, datetime

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.campaign_domain import (
    DEFAULT_SEND_DAYS_BEFORE,
    BirthdaySettings,
    CampaignSendResult,
    EventCampaign,
    EventCampaignStatus,
    OneOffCampaign,
    ProContact,
)
from reviewreply.models.domain.tenant_domain import Tenant
from reviewreply.repositories.base import CampaignStore, Store
from reviewreply.services.campaign_calendar import (
    EVENTS_BY_KEY,
    filter_birthdays_today,
    get_event_date,
    get_event_name,
    get_send_date,
    personalize,
)
from reviewreply.services.campaign_email_service import CampaignEmailService

logger = get_logger(__name__)


class CampaignStateError(Exception):
    """Raised for a campaign change the state machine does not allow."""

    def __init__(self, message: str, status_code: int = 409):
        super().__init__(message)
        self.status_code = status_code


class CampaignService:
    def __init__(
        self,
        store: Store,
        campaign_store: CampaignStore,
        email_service: CampaignEmailService,
        config: Settings | None = None,
    ):
        self.store = store
        self.campaign_store = campaign_store
        self.email_service = email_service
        self.config = config or settings

    # --- Definitions ---

    async def get_birthday_settings(self, account_id: str) -> BirthdaySettings:
        return await self.campaign_store.get_birthday_settings(account_id) or BirthdaySettings()

    async def save_birthday_settings(
        self, account_id: str, birthday_settings: BirthdaySettings
    ) -> BirthdaySettings:
        return await self.campaign_store.save_birthday_settings(account_id, birthday_settings)

    @staticmethod
    def _require_event(event_key: str) -> None:
        if event_key not in EVENTS_BY_KEY:
            raise CampaignStateError(f"Unknown event: {event_key}", status_code=404)

    async def confirm_event_campaign(
        self,
        account_id: str,
        event_key: str,
        event_year: int,
        message_text: str,
        offer_text: str = "",
        send_days_before: int = DEFAULT_SEND_DAYS_BEFORE,
        now: datetime | None = None,
    ) -> EventCampaign:
        """Opt in to (or re-edit) an event campaign. Skipped and sent are final."""
        self._require_event(event_key)
        if not (message_text or "").strip():
            raise CampaignStateError("message_text is required", status_code=400)
        if send_days_before < 0:
            raise CampaignStateError("send_days_before must not be negative", status_code=400)

        existing = await self.campaign_store.get_event_campaign(account_id, event_key, event_year)
        if existing and existing.status in (EventCampaignStatus.SENT, EventCampaignStatus.SKIPPED):
            raise CampaignStateError(
                f"Event campaign is already {existing.status.value} and cannot be changed"
            )

        campaign = EventCampaign(
            account_id=account_id,
            event_key=event_key,
            event_year=event_year,
            status=EventCampaignStatus.CONFIRMED,
            message_text=message_text,
            offer_text=offer_text or "",
            send_days_before=send_days_before,
            confirmed_at=now or datetime.now(UTC),
        )
        saved = await self.campaign_store.save_event_campaign(
            campaign, from_statuses=(EventCampaignStatus.PENDING, EventCampaignStatus.CONFIRMED)
        )
        if saved is None:
            raise CampaignStateError("Event campaign was sent or skipped and cannot be changed")
        logger.info(
            "Event campaign confirmed",
            account_id=account_id,
            event_key=event_key,
            event_year=event_year,
            send_days_before=send_days_before,
        )
        return saved

    async def skip_event_campaign(
        self, account_id: str, event_key: str, event_year: int
    ) -> EventCampaign:
        self._require_event(event_key)
        existing = await self.campaign_store.get_event_campaign(account_id, event_key, event_year)
        if existing and existing.status != EventCampaignStatus.PENDING:
            raise CampaignStateError(
                f"Only pending event campaigns can be skipped (status: {existing.status.value})"
            )

        campaign = existing or EventCampaign(
            account_id=account_id, event_key=event_key, event_year=event_year
        )
        campaign = campaign.model_copy(update={"status": EventCampaignStatus.SKIPPED})
        saved = await self.campaign_store.save_event_campaign(
            campaign, from_statuses=(EventCampaignStatus.PENDING,)
        )
        if saved is None:
            raise CampaignStateError("Only pending event campaigns can be skipped")
        logger.info(
            "Event campaign skipped", account_id=account_id, event_key=event_key, event_year=event_year
        )
        return saved

    async def create_one_off_campaign(
        self, account_id: str, send_date: date, subject: str, body: str
    ) -> OneOffCampaign:
        if not (subject or "").strip() or not (body or "").strip():
            raise CampaignStateError("subject and body are required", status_code=400)
        campaign = await self.campaign_store.create_one_off_campaign(
            account_id, send_date, subject.strip(), body
        )
        logger.info(
            "One-off campaign scheduled",
            account_id=account_id,
            campaign_id=campaign.id,
            send_date=send_date.isoformat(),
        )
        return campaign

    # --- Due-date checks ---

    @staticmethod
    def event_send_date(campaign: EventCampaign) -> date | None:
        event_date = get_event_date(campaign.event_key, campaign.event_year)
        if event_date is None:
            return None
        return get_send_date(event_date, campaign.send_days_before)

    def is_event_due(self, campaign: EventCampaign, today: date) -> bool:
        """Exactly on its send date, while confirmed and unsent."""
        return (
            campaign.status == EventCampaignStatus.CONFIRMED
            and campaign.sent_at is None
            and self.event_send_date(campaign) == today
        )

    # --- Sending ---

    async def _pro_tenant(self, account_id: str) -> Tenant | None:
        tenant = await self.store.get_tenant(account_id)
        return tenant if tenant and tenant.is_pro else None

    async def _send_to_contacts(
        self,
        tenant: Tenant,
        contacts: list[ProContact],
        subject: str,
        message: str,
        offer_text: str,
        campaign: str,
    ) -> CampaignSendResult:
        result = CampaignSendResult()
        tenant_name = tenant.display_name()
        reply_to = tenant.contact_email()

        for contact in contacts:
            try:
                await self.email_service.send(
                    to=contact.email,
                    subject=subject,
                    body=personalize(message, contact.first_name, offer_text),
                    tenant_name=tenant_name,
                    account_id=tenant.account_id,
                    reply_to=reply_to,
                )
                result.sent += 1
            except Exception as e:
                result.failed += 1
                logger.error(
                    "Campaign email failed",
                    campaign=campaign,
                    account_id=tenant.account_id,
                    contact_id=contact.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return result

    async def send_birthday_campaigns(self, account_id: str, today: date) -> CampaignSendResult:
        birthday = await self.campaign_store.get_birthday_settings(account_id)
        if not birthday or not birthday.enabled or not birthday.message_text.strip():
            return CampaignSendResult()

        tenant = await self._pro_tenant(account_id)
        if tenant is None:
            return CampaignSendResult()

        contacts = filter_birthdays_today(await self.store.get_sendable_contacts(account_id), today)
        if not contacts:
            return CampaignSendResult()

        result = await self._send_to_contacts(
            tenant,
            contacts,
            subject=f"{tenant.display_name()} – Happy Birthday!",
            message=birthday.message_text,
            offer_text=birthday.offer_text,
            campaign="birthday",
        )
        logger.info(
            "Birthday campaign sent",
            account_id=account_id,
            sent=result.sent,
            failed=result.failed,
        )
        return result

    async def send_event_campaign(
        self, account_id: str, event_key: str, event_year: int, now: datetime | None = None
    ) -> CampaignSendResult:
        campaign = await self.campaign_store.get_event_campaign(account_id, event_key, event_year)
        if (
            campaign is None
            or campaign.status != EventCampaignStatus.CONFIRMED
            or campaign.sent_at is not None
        ):
            return CampaignSendResult()

        tenant = await self._pro_tenant(account_id)
        if tenant is None:
            return CampaignSendResult()

        contacts = await self.store.get_sendable_contacts(account_id)
        result = CampaignSendResult()
        if contacts:
            result = await self._send_to_contacts(
                tenant,
                contacts,
                subject=f"{tenant.display_name()} – {get_event_name(event_key)}",
                message=campaign.message_text,
                offer_text=campaign.offer_text,
                campaign="event",
            )

        await self.campaign_store.mark_event_campaign_sent(
            account_id, event_key, event_year, now=now or datetime.now(UTC)
        )
        logger.info(
            "Event campaign sent",
            account_id=account_id,
            event_key=event_key,
            event_year=event_year,
            audience=len(contacts),
            sent=result.sent,
            failed=result.failed,
        )
        return result

    async def send_one_off_campaign(self, campaign: OneOffCampaign) -> CampaignSendResult:
        tenant = await self._pro_tenant(campaign.account_id)
        if tenant is None:
            return CampaignSendResult()

        contacts = await self.store.get_sendable_contacts(campaign.account_id)
        result = await self._send_to_contacts(
            tenant,
            contacts,
            subject=campaign.subject,
            message=campaign.body,
            offer_text="",
            campaign="one_off",
        )

        await self.campaign_store.mark_one_off_campaign_sent(campaign.id)
        logger.info(
            "One-off campaign sent",
            account_id=campaign.account_id,
            campaign_id=campaign.id,
            sent=result.sent,
            failed=result.failed,
        )
        return result
