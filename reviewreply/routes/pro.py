"""
Pro API Routes
Contact list upload, unsubscribe links and campaign definitions.

Every /pro/{account_id}/... route requires a Pro tenant. Campaign routes also
require the relational store and answer 503 without it.
"""

from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import PlainTextResponse

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.api.pro_request import (
    BirthdaySettingsRequest,
    ConfirmEventRequest,
    OneOffCampaignRequest,
)
from reviewreply.models.api.pro_response import (
    ContactsListResponse,
    EventCampaignsResponse,
    OneOffCampaignsResponse,
    UpcomingEventResponse,
    UpcomingEventsResponse,
)
from reviewreply.models.domain.campaign_domain import (
    BirthdaySettings,
    ContactCounts,
    EventCampaign,
    OneOffCampaign,
)
from reviewreply.models.domain.tenant_domain import Tenant
from reviewreply.repositories.base import MAX_CONTACT_PAGE_SIZE
from reviewreply.routes.dependencies import (
    campaign_service_dependency,
    contact_service_dependency,
    pro_tenant_dependency,
)
from reviewreply.security.unsubscribe import verify_unsubscribe_token
from reviewreply.services.campaign_calendar import UPCOMING_WINDOW_DAYS, get_upcoming_events
from reviewreply.services.campaign_service import CampaignService, CampaignStateError
from reviewreply.services.contact_service import ContactImportError, ContactService

logger = get_logger(__name__)

router = APIRouter(prefix="/pro", tags=["pro"])


# --- Contacts ---


@router.post("/{account_id}/contacts", response_model=ContactCounts)
async def upload_contacts(
    file: UploadFile = File(..., description="CSV with email, first_name, birthday, phone"),
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: ContactService = Depends(contact_service_dependency),
):
    """Replace the tenant's contact list with an uploaded CSV."""
    data = await file.read()
    try:
        return await service.import_csv(tenant.account_id, data)
    except ContactImportError as e:
        logger.info("Contact upload rejected", account_id=tenant.account_id, error=str(e))
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{account_id}/contacts", response_model=ContactsListResponse)
async def list_contacts(
    limit: int = Query(default=100, ge=1, le=MAX_CONTACT_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: ContactService = Depends(contact_service_dependency),
):
    contacts, counts = await service.list_contacts(tenant.account_id, limit=limit, offset=offset)
    return ContactsListResponse(contacts=contacts, counts=counts, limit=limit, offset=offset)


@router.get("/unsubscribe", response_class=PlainTextResponse)
async def unsubscribe(
    token: str = Query(default=""),
    service: ContactService = Depends(contact_service_dependency),
):
    """Target of the footer link in every campaign email."""
    verified = verify_unsubscribe_token(token)
    if verified is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired unsubscribe link"
        )

    account_id, email = verified
    await service.unsubscribe(account_id, email)
    return "You have been unsubscribed and will not receive further emails from this business."


# --- Campaign calendar ---


@router.get("/events/upcoming", response_model=UpcomingEventsResponse)
async def upcoming_events(
    within_days: int = Query(default=UPCOMING_WINDOW_DAYS, ge=1, le=366),
    on: date | None = Query(default=None, description="Reference date (default: today UTC)"),
):
    today = on or datetime.now(UTC).date()
    events = get_upcoming_events(today, within_days)
    return UpcomingEventsResponse(
        events=[
            UpcomingEventResponse(
                key=e.key, name=e.name, event_date=e.event_date, prompt_date=e.prompt_date
            )
            for e in events
        ],
        within_days=within_days,
    )


# --- Birthday ---


@router.get("/{account_id}/birthday", response_model=BirthdaySettings)
async def get_birthday_settings(
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    return await service.get_birthday_settings(tenant.account_id)


@router.put("/{account_id}/birthday", response_model=BirthdaySettings)
async def save_birthday_settings(
    request: BirthdaySettingsRequest,
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    if request.enabled and not request.message_text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="message_text is required to enable birthday emails",
        )
    return await service.save_birthday_settings(
        tenant.account_id,
        BirthdaySettings(
            enabled=request.enabled,
            message_text=request.message_text,
            offer_text=request.offer_text,
        ),
    )


# --- Event campaigns ---


@router.get("/{account_id}/events", response_model=EventCampaignsResponse)
async def list_event_campaigns(
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    campaigns = await service.campaign_store.list_event_campaigns(tenant.account_id)
    return EventCampaignsResponse(campaigns=campaigns)


@router.put("/{account_id}/events/{event_key}/{event_year}", response_model=EventCampaign)
async def confirm_event_campaign(
    event_key: str,
    event_year: int,
    request: ConfirmEventRequest,
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    try:
        return await service.confirm_event_campaign(
            tenant.account_id,
            event_key,
            event_year,
            message_text=request.message_text,
            offer_text=request.offer_text,
            send_days_before=request.send_days_before,
        )
    except CampaignStateError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{account_id}/events/{event_key}/{event_year}/skip", response_model=EventCampaign)
async def skip_event_campaign(
    event_key: str,
    event_year: int,
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    try:
        return await service.skip_event_campaign(tenant.account_id, event_key, event_year)
    except CampaignStateError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# --- One-off campaigns ---


@router.get("/{account_id}/one-off", response_model=OneOffCampaignsResponse)
async def list_one_off_campaigns(
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    campaigns = await service.campaign_store.list_one_off_campaigns(tenant.account_id)
    return OneOffCampaignsResponse(campaigns=campaigns)


@router.post(
    "/{account_id}/one-off", response_model=OneOffCampaign, status_code=status.HTTP_201_CREATED
)
async def create_one_off_campaign(
    request: OneOffCampaignRequest,
    tenant: Tenant = Depends(pro_tenant_dependency),
    service: CampaignService = Depends(campaign_service_dependency),
):
    try:
        return await service.create_one_off_campaign(
            tenant.account_id, request.send_date, request.subject, request.body
        )
    except CampaignStateError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
