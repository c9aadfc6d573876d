"""
Builds the service graph against the active store.

Everything is constructed lazily and shared per process; tests construct the
classes directly with fakes instead of going through these helpers.
"""

from functools import lru_cache

from reviewreply.config import settings
from reviewreply.repositories.factory import get_campaign_store, get_store
from reviewreply.services.alert_service import AlertService
from reviewreply.services.auto_reply_service import AutoReplyService
from reviewreply.services.campaign_email_service import CampaignEmailService
from reviewreply.services.campaign_service import CampaignService
from reviewreply.services.contact_service import ContactService
from reviewreply.services.google_connect_service import GoogleConnectService
from reviewreply.services.google_oauth_service import GoogleOAuthService
from reviewreply.services.google_reviews_service import GoogleReviewsClient
from reviewreply.services.reply_composer import ReplyComposer
from reviewreply.services.tenant_service import TenantService


@lru_cache(maxsize=1)
def get_oauth_service() -> GoogleOAuthService:
    return GoogleOAuthService(get_store(), settings)


@lru_cache(maxsize=1)
def get_reviews_client() -> GoogleReviewsClient:
    return GoogleReviewsClient(get_oauth_service())


def build_google_connect_service() -> GoogleConnectService:
    return GoogleConnectService(get_store(), get_oauth_service(), get_reviews_client())


def build_tenant_service() -> TenantService:
    return TenantService(get_store(), settings)


def build_contact_service() -> ContactService:
    return ContactService(get_store())


def build_auto_reply_service() -> AutoReplyService:
    return AutoReplyService(get_store(), get_reviews_client(), ReplyComposer(settings), settings)


def build_campaign_service() -> CampaignService | None:
    campaign_store = get_campaign_store()
    if campaign_store is None:
        return None
    return CampaignService(get_store(), campaign_store, CampaignEmailService(settings), settings)


def build_auto_reply_job():
    from reviewreply.jobs.auto_reply_job import AutoReplyJob

    return AutoReplyJob(
        store=get_store(),
        reply_service=build_auto_reply_service(),
        tenant_service=build_tenant_service(),
        alert_service=AlertService(settings),
        config=settings,
    )


def build_campaign_job():
    from reviewreply.jobs.campaign_job import CampaignJob

    campaign_service = build_campaign_service()
    if campaign_service is None:
        return None
    return CampaignJob(
        store=get_store(),
        campaign_store=campaign_service.campaign_store,
        campaign_service=campaign_service,
        config=settings,
    )
