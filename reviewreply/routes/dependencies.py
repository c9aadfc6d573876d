"""
FastAPI dependency providers.

Routes never build services themselves; tests replace these providers through
app.dependency_overrides.
"""

from fastapi import Depends, HTTPException, status

from reviewreply.models.domain.tenant_domain import Tenant
from reviewreply.repositories.base import Store
from reviewreply.repositories.factory import get_store
from reviewreply.services import wiring
from reviewreply.services.auto_reply_service import AutoReplyService
from reviewreply.services.campaign_service import CampaignService
from reviewreply.services.contact_service import ContactService
from reviewreply.services.google_connect_service import GoogleConnectService
from reviewreply.services.google_oauth_service import GoogleOAuthError, GoogleOAuthService
from reviewreply.services.google_reviews_service import GoogleReviewsClient, GoogleReviewsError
from reviewreply.services.tenant_service import TenantService


def store_dependency() -> Store:
    return get_store()


def tenant_service_dependency() -> TenantService:
    return wiring.build_tenant_service()


def contact_service_dependency() -> ContactService:
    return wiring.build_contact_service()


def auto_reply_service_dependency() -> AutoReplyService:
    return wiring.build_auto_reply_service()


def oauth_service_dependency() -> GoogleOAuthService:
    return wiring.get_oauth_service()


def reviews_client_dependency() -> GoogleReviewsClient:
    return wiring.get_reviews_client()


def google_connect_service_dependency() -> GoogleConnectService:
    return wiring.build_google_connect_service()


def campaign_service_dependency() -> CampaignService:
    campaign_service = wiring.build_campaign_service()
    if campaign_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Campaigns require a database (set DATABASE_URL)",
        )
    return campaign_service


async def pro_tenant_dependency(
    account_id: str, store: Store = Depends(store_dependency)
) -> Tenant:
    """Resolve the path tenant and require the Pro plan."""
    tenant = await store.get_tenant(account_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    if not tenant.is_pro:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Pro plan required for campaigns"
        )
    return tenant


def google_http_error(e: GoogleOAuthError | GoogleReviewsError) -> HTTPException:
    """Map a Google failure to the status the caller should see."""
    if isinstance(e, GoogleOAuthError) or e.operation == "access_token":
        return HTTPException(status_code=e.status_code or status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if e.status_code == status.HTTP_404_NOT_FOUND:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
