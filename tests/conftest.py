import pytest

from reviewreply.config import Settings
from tests.fakes import (
    FakeAlertService,
    FakeComposer,
    FakeEmailService,
    FakeReviewsClient,
    InMemoryStore,
)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        DATABASE_URL=None,
        AUTO_REPLY_ENABLED=True,
        AUTO_REPLY_INTERVAL_MINUTES=30,
        AUTO_REPLY_RATINGS="1,2,3,4,5",
        AUTO_REPLY_ACCOUNT_ID=None,
        AUTO_REPLY_LOCATION_ID=None,
        CAMPAIGN_TIMEZONE="UTC",
        TRIAL_DAYS=30,
        OPENAI_API_KEY="sk-test",
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
        RESEND_API_KEY="re_test",
        ALERT_FROM_EMAIL="ReviewReply <alerts@example.com>",
        BASE_URL="https://app.example.com",
        UNSUBSCRIBE_SECRET="unsubscribe-secret",
        CAMPAIGN_FOOTER_ADDRESS="",
        ALERT_EMAIL=None,
        ALERT_PHONE=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_FROM_NUMBER=None,
    )


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def reviews_client():
    return FakeReviewsClient()


@pytest.fixture
def composer():
    return FakeComposer()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def alert_service():
    return FakeAlertService()
