"""
Google connect flow: consent URL and OAuth callback.

A successful callback stores the account's tokens and upserts the tenant with
the account's first location. A brand-new tenant starts its free trial here.
"""

from datetime import UTC, datetime

from pydantic import BaseModel

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.tenant_domain import TenantUpdate
from reviewreply.repositories.base import Store
from reviewreply.services.google_oauth_service import GoogleOAuthService
from reviewreply.services.google_reviews_service import GoogleReviewsClient

logger = get_logger(__name__)


class GoogleConnectError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class GoogleConnection(BaseModel):
    account_id: str
    location_id: str | None = None
    business_name: str | None = None
    is_new_tenant: bool = False


def resource_id(name: str | None, prefix: str | None = None) -> str | None:
    """Last path segment of a Google resource name ("accounts/123" -> "123")."""
    if not name:
        return None
    if prefix and name.startswith(prefix):
        name = name[len(prefix) :]
    return name.rsplit("/", 1)[-1] or None


class GoogleConnectService:
    def __init__(
        self,
        store: Store,
        oauth_service: GoogleOAuthService,
        reviews_client: GoogleReviewsClient,
    ):
        self.store = store
        self.oauth_service = oauth_service
        self.reviews_client = reviews_client

    def authorization_url(self) -> str:
        return self.oauth_service.generate_oauth_url()

    async def complete(self, code: str, now: datetime | None = None) -> GoogleConnection:
        """
        Finish the OAuth callback for the first Business Profile account.

        Raises:
            GoogleOAuthError: If the code exchange fails
            GoogleReviewsError: If accounts or locations cannot be listed
            GoogleConnectError: If the user has no Business Profile account
        """
        now = now or datetime.now(UTC)
        payload = await self.oauth_service.exchange_code_for_tokens(code)

        accounts = await self.reviews_client.list_accounts(access_token=payload["access_token"])
        if not accounts:
            raise GoogleConnectError("No Google Business accounts found for this user")

        first_account = accounts[0]
        account_id = resource_id(first_account.get("name"), prefix="accounts/")
        if not account_id:
            raise GoogleConnectError("Could not determine the Google account id", status_code=502)

        await self.oauth_service.store_tokens(
            account_id, payload, now_ms=int(now.timestamp() * 1000)
        )

        locations = await self.reviews_client.list_locations(account_id)
        first_location = locations[0] if locations else {}
        location_id = resource_id(first_location.get("name"))
        name = first_location.get("title") or first_account.get("accountName")

        is_new_tenant = await self.store.get_tenant(account_id) is None
        await self.store.upsert_tenant(
            TenantUpdate(account_id=account_id, location_id=location_id, name=name), now=now
        )

        logger.info(
            "Google account connected",
            account_id=account_id,
            location_id=location_id,
            location_count=len(locations),
            is_new_tenant=is_new_tenant,
        )
        return GoogleConnection(
            account_id=account_id,
            location_id=location_id,
            business_name=name,
            is_new_tenant=is_new_tenant,
        )
