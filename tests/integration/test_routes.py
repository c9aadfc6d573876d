"""
HTTP route tests against in-memory collaborators.
"""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from reviewreply.main import app
from reviewreply.models.domain.campaign_domain import ProContact
from reviewreply.routes.dependencies import (
    auto_reply_service_dependency,
    campaign_service_dependency,
    contact_service_dependency,
    google_connect_service_dependency,
    oauth_service_dependency,
    reviews_client_dependency,
    store_dependency,
    tenant_service_dependency,
)
from reviewreply.security.unsubscribe import create_unsubscribe_token
from reviewreply.services.auto_reply_service import AutoReplyService
from reviewreply.services.campaign_service import CampaignService
from reviewreply.services.contact_service import ContactService
from reviewreply.services.google_connect_service import GoogleConnectService
from reviewreply.services.google_oauth_service import GoogleOAuthError, GoogleOAuthService
from reviewreply.services.google_reviews_service import GoogleReviewsError
from reviewreply.services.tenant_service import TenantService
from tests.fakes import make_review

client = TestClient(app)


@pytest.fixture
def wired(memory_store, reviews_client, composer, email_service, test_settings):
    now = datetime.now(UTC)
    memory_store.add_tenant(
        account_id="pro",
        location_id="pro-loc",
        name="Bakery",
        is_pro=True,
        trial_ends_at=now + timedelta(days=10),
    )
    memory_store.add_tenant(
        account_id="free",
        location_id="free-loc",
        auto_reply_enabled=True,
        trial_ends_at=now - timedelta(days=1),
    )

    app.dependency_overrides[store_dependency] = lambda: memory_store
    app.dependency_overrides[tenant_service_dependency] = lambda: TenantService(
        memory_store, test_settings
    )
    app.dependency_overrides[contact_service_dependency] = lambda: ContactService(memory_store)
    app.dependency_overrides[auto_reply_service_dependency] = lambda: AutoReplyService(
        memory_store, reviews_client, composer, test_settings
    )
    app.dependency_overrides[campaign_service_dependency] = lambda: CampaignService(
        memory_store, memory_store, email_service, test_settings
    )
    yield memory_store
    app.dependency_overrides.clear()


def test_healthz():
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


def test_readyz_reports_storage_backend(wired):
    response = client.get("/readyz")

    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["storage"]["ok"] is True
    assert checks["storage"]["backend"] == "memory"
    assert checks["configuration"]["campaigns_available"] is False


# --- Tenants ---


def test_list_tenants(wired):
    response = client.get("/tenants")

    assert response.status_code == 200
    assert response.json()["total_count"] == 2


def test_get_tenant_disables_lapsed_auto_reply(wired):
    response = client.get("/tenants/free")

    assert response.status_code == 200
    body = response.json()
    assert body["auto_reply_enabled"] is False
    assert body["trial_active"] is False
    assert wired.tenants["free"].auto_reply_enabled is False


def test_get_unknown_tenant(wired):
    assert client.get("/tenants/nope").status_code == 404


def test_patch_enable_after_trial_requires_subscription(wired):
    response = client.patch("/tenants/free", json={"auto_reply_enabled": True})

    assert response.status_code == 402


def test_patch_updates_settings(wired):
    response = client.patch(
        "/tenants/pro",
        json={"auto_reply_enabled": True, "contact": "hi@bakery.test", "interval_minutes": 15},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["auto_reply_enabled"] is True
    assert body["contact"] == "hi@bakery.test"
    assert body["interval_minutes"] == 15


def test_patch_rejects_invalid_interval(wired):
    assert client.patch("/tenants/pro", json={"interval_minutes": 0}).status_code == 422


# --- Auto-reply ---


def test_manual_process_run(wired, reviews_client):
    reviews_client.reviews[("pro", "pro-loc")] = [make_review("r1"), make_review("r2", "ONE")]

    response = client.post("/auto/process", json={"account_id": "pro", "location_id": "pro-loc"})

    assert response.status_code == 200
    assert response.json()["succeeded"] == 2
    assert wired.replied[("pro", "pro-loc")] == {"r1", "r2"}


def test_manual_process_needs_tenant_or_fallback(wired):
    response = client.post("/auto/process")

    assert response.status_code == 400


def test_manual_process_uses_fallback_pair(wired, reviews_client, test_settings):
    test_settings.AUTO_REPLY_ACCOUNT_ID = "pro"
    test_settings.AUTO_REPLY_LOCATION_ID = "pro-loc"
    reviews_client.reviews[("pro", "pro-loc")] = [make_review("r1")]

    response = client.post("/auto/process")

    assert response.status_code == 200
    assert response.json()["attempted"] == 1


def test_manual_reply_is_posted_and_recorded(wired, reviews_client):
    response = client.post("/reviews/pro/pro-loc/r9/reply", json={"comment": "Thank you!"})

    assert response.status_code == 200
    assert reviews_client.posted == [("pro", "pro-loc", "r9", "Thank you!")]
    assert "r9" in wired.replied[("pro", "pro-loc")]


def test_manual_reply_requires_comment(wired):
    response = client.post("/reviews/pro/pro-loc/r9/reply", json={"comment": "   "})

    assert response.status_code == 400


# --- Pro ---


def test_contacts_upload_and_list(wired):
    csv_bytes = b"email,first_name,birthday\nana@example.com,Ana,03-14\n,NoEmail,\n"

    upload = client.post(
        "/pro/pro/contacts", files={"file": ("contacts.csv", csv_bytes, "text/csv")}
    )
    listing = client.get("/pro/pro/contacts", params={"limit": 1})

    assert upload.status_code == 200
    assert upload.json() == {"total": 2, "with_email": 1, "unsubscribed": 0}
    assert listing.status_code == 200
    assert len(listing.json()["contacts"]) == 1
    assert listing.json()["counts"]["total"] == 2


def test_contacts_upload_rejects_bad_csv(wired):
    response = client.post(
        "/pro/pro/contacts", files={"file": ("contacts.csv", b"foo,bar\n1,2\n", "text/csv")}
    )

    assert response.status_code == 400


def test_pro_routes_require_pro_plan(wired):
    assert client.get("/pro/free/contacts").status_code == 403
    assert client.get("/pro/free/birthday").status_code == 403
    assert client.get("/pro/missing/contacts").status_code == 404


def test_campaign_routes_unavailable_without_database(wired, monkeypatch):
    del app.dependency_overrides[campaign_service_dependency]
    monkeypatch.setattr("reviewreply.services.wiring.get_campaign_store", lambda: None)

    response = client.get("/pro/pro/birthday")

    assert response.status_code == 503


def test_unsubscribe_link(wired):
    wired.contacts["pro"] = [ProContact(id=1, email="ana@example.com")]
    token = create_unsubscribe_token("pro", "ana@example.com")

    response = client.get("/pro/unsubscribe", params={"token": token})

    assert response.status_code == 200
    assert "unsubscribed" in response.text
    assert wired.contacts["pro"][0].unsubscribed_at is not None


def test_unsubscribe_rejects_bad_token(wired):
    assert client.get("/pro/unsubscribe", params={"token": "forged"}).status_code == 400


def test_birthday_settings_round_trip(wired):
    saved = client.put(
        "/pro/pro/birthday",
        json={"enabled": True, "message_text": "Happy birthday {{first_name}}", "offer_text": ""},
    )
    fetched = client.get("/pro/pro/birthday")

    assert saved.status_code == 200
    assert fetched.json()["enabled"] is True
    assert fetched.json()["message_text"] == "Happy birthday {{first_name}}"


def test_birthday_enable_requires_message(wired):
    response = client.put("/pro/pro/birthday", json={"enabled": True, "message_text": ""})

    assert response.status_code == 400


def test_upcoming_events(wired):
    response = client.get("/pro/events/upcoming", params={"on": "2026-04-01", "within_days": 45})

    assert response.status_code == 200
    assert [e["key"] for e in response.json()["events"]] == ["easter", "mothers_day"]


def test_event_confirm_then_skip_conflict(wired):
    confirmed = client.put(
        "/pro/pro/events/mothers_day/2026", json={"message_text": "Hi {{first_name}}"}
    )
    skipped = client.post("/pro/pro/events/mothers_day/2026/skip")
    unknown = client.put("/pro/pro/events/flag_day/2026", json={"message_text": "Hi"})

    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert skipped.status_code == 409
    assert unknown.status_code == 404
    assert len(client.get("/pro/pro/events").json()["campaigns"]) == 1


def test_create_one_off(wired):
    response = client.post(
        "/pro/pro/one-off",
        json={"send_date": "2026-05-01", "subject": "Spring sale", "body": "10% off"},
    )

    assert response.status_code == 201
    assert response.json()["status"] == "scheduled"
    assert len(client.get("/pro/pro/one-off").json()["campaigns"]) == 1


# --- Google connection ---


class CodeExchangeOAuthService(GoogleOAuthService):
    async def exchange_code_for_tokens(self, authorization_code):
        if authorization_code == "rejected":
            raise GoogleOAuthError(
                "code_exchange failed: invalid_grant", error_code="invalid_grant", status_code=400
            )
        return {"access_token": "new-access", "refresh_token": "refresh-1", "expires_in": 3600}


class MissingLocationsClient:
    async def list_locations(self, account_id):
        raise GoogleReviewsError("Google API error 404: not found", status_code=404)


@pytest.fixture
def google_wired(memory_store, reviews_client, test_settings):
    oauth_service = CodeExchangeOAuthService(memory_store, test_settings)
    reviews_client.accounts = [{"name": "accounts/123", "accountName": "Ana's Account"}]
    reviews_client.locations["123"] = [{"name": "locations/456", "title": "Ana's Bakery"}]
    reviews_client.reviews[("123", "456")] = [make_review("r1", "FOUR", name="Ana B")]

    app.dependency_overrides[oauth_service_dependency] = lambda: oauth_service
    app.dependency_overrides[reviews_client_dependency] = lambda: reviews_client
    app.dependency_overrides[google_connect_service_dependency] = lambda: GoogleConnectService(
        memory_store, oauth_service, reviews_client
    )
    yield memory_store
    app.dependency_overrides.clear()


def test_google_auth_redirects_to_consent(google_wired):
    response = client.get("/auth/google", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "access_type=offline" in response.headers["location"]


def test_google_callback_requires_code(google_wired):
    assert client.get("/auth/google/callback").status_code == 400


def test_google_callback_connects_tenant(google_wired):
    response = client.get("/auth/google/callback", params={"code": "auth-code"})

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "message": "Google connected",
        "account_id": "123",
        "location_id": "456",
        "business_name": "Ana's Bakery",
    }
    tenant = google_wired.tenants["123"]
    assert tenant.location_id == "456"
    assert tenant.trial_ends_at is not None
    assert google_wired.tokens["123"]["refresh_token"] == "refresh-1"


def test_google_callback_rejected_code(google_wired):
    response = client.get("/auth/google/callback", params={"code": "rejected"})

    assert response.status_code == 400
    assert "invalid_grant" in response.json()["detail"]
    assert google_wired.tenants == {}


def test_google_token_status(google_wired):
    before = client.get("/me/google").json()
    client.get("/auth/google/callback", params={"code": "auth-code"})
    after = client.get("/me/google").json()

    assert before["connected"] is False
    assert before["account_ids"] == []
    assert after["account_id"] == "123"
    assert after["connected"] is True
    assert after["account_ids"] == ["123"]


def test_google_accounts_need_a_connection(google_wired):
    response = client.get("/google/accounts")

    assert response.status_code == 400
    assert "/auth/google" in response.json()["detail"]


def test_google_listings(google_wired):
    google_wired.tokens["123"] = {"access_token": "live", "refresh_token": "refresh-1"}

    accounts = client.get("/google/accounts").json()
    locations = client.get("/google/accounts/123/locations").json()
    reviews = client.get("/google/accounts/123/locations/456/reviews").json()

    assert accounts["account_id"] == "123"
    assert accounts["accounts"][0]["name"] == "accounts/123"
    assert locations["locations"] == [{"name": "locations/456", "title": "Ana's Bakery"}]
    assert [(r["review_id"], r["rating"]) for r in reviews] == [("r1", 4)]


def test_google_listing_errors_are_mapped(google_wired):
    app.dependency_overrides[reviews_client_dependency] = lambda: MissingLocationsClient()

    assert client.get("/google/accounts/123/locations").status_code == 404
