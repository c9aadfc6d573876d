from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from reviewreply.services.google_connect_service import (
    GoogleConnectError,
    GoogleConnectService,
    resource_id,
)
from reviewreply.services.google_oauth_service import GOOGLE_TOKEN_URL, GoogleOAuthService
from reviewreply.services.google_reviews_service import (
    ACCOUNTS_API_URL,
    LOCATIONS_API_BASE_URL,
    GoogleReviewsClient,
)
from tests.fakes import NOW

LOCATIONS_URL = httpx.URL(
    f"{LOCATIONS_API_BASE_URL}/accounts/123/locations", params={"readMask": "name,title"}
)


@pytest.fixture
def connect_service(memory_store, test_settings):
    oauth_service = GoogleOAuthService(memory_store, test_settings)
    return GoogleConnectService(memory_store, oauth_service, GoogleReviewsClient(oauth_service))


def mock_google(httpx_mock, accounts, locations=None, token=None):
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json=token or {"access_token": "new-access", "expires_in": 3600, "scope": "business.manage"},
    )
    httpx_mock.add_response(method="GET", url=ACCOUNTS_API_URL, json={"accounts": accounts})
    if locations is not None:
        httpx_mock.add_response(method="GET", url=LOCATIONS_URL, json={"locations": locations})


def test_resource_id_takes_the_last_segment():
    assert resource_id("accounts/123", prefix="accounts/") == "123"
    assert resource_id("locations/456") == "456"
    assert resource_id("accounts/1/locations/9") == "9"
    assert resource_id(None) is None
    assert resource_id("") is None


@pytest.mark.asyncio
async def test_callback_creates_tenant_with_trial(connect_service, memory_store, httpx_mock):
    memory_store.tokens["123"] = {"refresh_token": "old-refresh"}
    mock_google(
        httpx_mock,
        accounts=[{"name": "accounts/123", "accountName": "Ana's Account"}],
        locations=[{"name": "locations/456", "title": "Ana's Bakery"}],
    )

    connection = await connect_service.complete("auth-code")

    assert connection.account_id == "123"
    assert connection.location_id == "456"
    assert connection.business_name == "Ana's Bakery"
    assert connection.is_new_tenant is True

    tenant = memory_store.tenants["123"]
    assert tenant.location_id == "456"
    assert tenant.name == "Ana's Bakery"
    assert tenant.trial_ends_at == tenant.updated_at + timedelta(days=30)

    token = memory_store.tokens["123"]
    assert token["access_token"] == "new-access"
    assert token["refresh_token"] == "old-refresh"
    assert token["scope"] == "business.manage"

    token_request, accounts_request, locations_request = httpx_mock.get_requests()
    form = parse_qs(token_request.content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["auth-code"]
    assert form["redirect_uri"] == ["https://app.example.com/auth/google/callback"]
    assert accounts_request.headers["Authorization"] == "Bearer new-access"
    assert locations_request.headers["Authorization"] == "Bearer new-access"


@pytest.mark.asyncio
async def test_reconnect_keeps_trial_and_settings(connect_service, memory_store, httpx_mock):
    memory_store.add_tenant(
        account_id="123",
        location_id="old-loc",
        contact="owner@bakery.test",
        auto_reply_enabled=True,
        trial_ends_at=NOW + timedelta(days=3),
    )
    mock_google(
        httpx_mock,
        accounts=[{"name": "accounts/123", "accountName": "Ana's Account"}],
        locations=[],
        token={"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600},
    )

    connection = await connect_service.complete("auth-code")

    assert connection.is_new_tenant is False
    assert connection.location_id is None
    assert connection.business_name == "Ana's Account"

    tenant = memory_store.tenants["123"]
    assert tenant.location_id == "old-loc"
    assert tenant.contact == "owner@bakery.test"
    assert tenant.auto_reply_enabled is True
    assert tenant.trial_ends_at == NOW + timedelta(days=3)
    assert memory_store.tokens["123"]["refresh_token"] == "new-refresh"


@pytest.mark.asyncio
async def test_callback_without_business_accounts(connect_service, memory_store, httpx_mock):
    mock_google(httpx_mock, accounts=[])

    with pytest.raises(GoogleConnectError) as exc:
        await connect_service.complete("auth-code")

    assert exc.value.status_code == 400
    assert memory_store.tokens == {}
    assert memory_store.tenants == {}
