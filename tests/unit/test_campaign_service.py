from datetime import UTC, date, datetime

import pytest

from reviewreply.models.domain.campaign_domain import (
    BirthdaySettings,
    ContactRow,
    EventCampaign,
    EventCampaignStatus,
    OneOffCampaignStatus,
)
from reviewreply.services.campaign_service import CampaignService, CampaignStateError
from tests.fakes import FakeEmailService, InMemoryStore

NOW = datetime(2026, 4, 26, 9, 0, tzinfo=UTC)


@pytest.fixture
def service(memory_store, email_service, test_settings):
    memory_store.add_tenant(
        account_id="pro", location_id="loc", name="Bakery", contact="owner@bakery.test", is_pro=True
    )
    return CampaignService(memory_store, memory_store, email_service, test_settings)


async def load_contacts(store, *rows):
    await store.replace_contacts("pro", [ContactRow(**row) for row in rows])


@pytest.mark.asyncio
async def test_confirm_event_campaign(service, memory_store):
    campaign = await service.confirm_event_campaign(
        "pro", "mothers_day", 2026, "Hi {{first_name}}", offer_text="10% off", now=NOW
    )

    assert campaign.status == EventCampaignStatus.CONFIRMED
    assert campaign.send_days_before == 14
    assert memory_store.events[("pro", "mothers_day", 2026)].confirmed_at == NOW


@pytest.mark.asyncio
async def test_confirm_rejects_unknown_event_and_empty_message(service):
    with pytest.raises(CampaignStateError) as unknown:
        await service.confirm_event_campaign("pro", "flag_day", 2026, "Hi")
    with pytest.raises(CampaignStateError) as empty:
        await service.confirm_event_campaign("pro", "mothers_day", 2026, "   ")

    assert unknown.value.status_code == 404
    assert empty.value.status_code == 400


@pytest.mark.asyncio
async def test_sent_and_skipped_campaigns_are_final(service, memory_store):
    await service.skip_event_campaign("pro", "easter", 2026)

    with pytest.raises(CampaignStateError) as exc:
        await service.confirm_event_campaign("pro", "easter", 2026, "Hi")
    assert exc.value.status_code == 409

    await service.confirm_event_campaign("pro", "mothers_day", 2026, "Hi")
    with pytest.raises(CampaignStateError):
        await service.skip_event_campaign("pro", "mothers_day", 2026)


@pytest.mark.asyncio
async def test_event_due_exactly_on_send_date(service):
    campaign = EventCampaign(
        account_id="pro",
        event_key="mothers_day",
        event_year=2026,
        status=EventCampaignStatus.CONFIRMED,
        message_text="Hi",
        send_days_before=14,
    )

    assert service.event_send_date(campaign) == date(2026, 4, 26)
    assert service.is_event_due(campaign, date(2026, 4, 26)) is True
    assert service.is_event_due(campaign, date(2026, 4, 25)) is False
    assert service.is_event_due(campaign, date(2026, 4, 27)) is False
    assert service.is_event_due(campaign, date(2026, 5, 10)) is False

    sent = campaign.model_copy(update={"sent_at": NOW})
    assert service.is_event_due(sent, date(2026, 4, 26)) is False


@pytest.mark.asyncio
async def test_send_event_campaign_personalizes_and_marks_sent(service, memory_store, email_service):
    await load_contacts(
        memory_store,
        {"email": "Ana@Example.com", "first_name": "Ana"},
        {"email": "bo@example.com"},
        {"first_name": "No Email"},
    )
    await service.confirm_event_campaign(
        "pro", "mothers_day", 2026, "Hi {{first_name}}, {{offer}}", offer_text="free cake"
    )

    result = await service.send_event_campaign("pro", "mothers_day", 2026, now=NOW)

    assert (result.sent, result.failed) == (2, 0)
    assert email_service.sent[0]["to"] == "ana@example.com"
    assert email_service.sent[0]["body"] == "Hi Ana, free cake"
    assert email_service.sent[0]["subject"] == "Bakery – Mothers Day"
    assert email_service.sent[0]["reply_to"] == "owner@bakery.test"
    assert email_service.sent[1]["body"] == "Hi there, free cake"
    stored = memory_store.events[("pro", "mothers_day", 2026)]
    assert stored.status == EventCampaignStatus.SENT
    assert stored.sent_at == NOW


@pytest.mark.asyncio
async def test_event_with_no_audience_is_still_marked_sent(service, memory_store, email_service):
    await service.confirm_event_campaign("pro", "mothers_day", 2026, "Hi")

    result = await service.send_event_campaign("pro", "mothers_day", 2026, now=NOW)

    assert (result.sent, result.failed) == (0, 0)
    assert email_service.sent == []
    assert memory_store.events[("pro", "mothers_day", 2026)].status == EventCampaignStatus.SENT


@pytest.mark.asyncio
async def test_one_bad_contact_does_not_block_the_rest(memory_store, test_settings):
    memory_store.add_tenant(account_id="pro", location_id="loc", is_pro=True)
    email_service = FakeEmailService(fail_for={"bad@example.com"})
    service = CampaignService(memory_store, memory_store, email_service, test_settings)
    await load_contacts(
        memory_store,
        {"email": "a@example.com"},
        {"email": "bad@example.com"},
        {"email": "c@example.com"},
    )
    campaign = await service.create_one_off_campaign("pro", date(2026, 5, 1), "News", "Hello")

    result = await service.send_one_off_campaign(campaign)

    assert (result.sent, result.failed) == (2, 1)
    assert memory_store.one_offs[campaign.id].status == OneOffCampaignStatus.SENT


@pytest.mark.asyncio
async def test_unsubscribed_contacts_are_not_emailed(service, memory_store, email_service):
    await load_contacts(memory_store, {"email": "a@example.com"}, {"email": "b@example.com"})
    await memory_store.set_contact_unsubscribed("pro", "b@example.com", now=NOW)
    await service.confirm_event_campaign("pro", "mothers_day", 2026, "Hi")

    await service.send_event_campaign("pro", "mothers_day", 2026, now=NOW)

    assert [m["to"] for m in email_service.sent] == ["a@example.com"]


@pytest.mark.asyncio
async def test_birthday_send_requires_enabled_settings(service, memory_store, email_service):
    await load_contacts(
        memory_store,
        {"email": "a@example.com", "first_name": "Ana", "birthday": "1990-03-14"},
        {"email": "b@example.com", "birthday": "1985-07-01"},
    )

    skipped = await service.send_birthday_campaigns("pro", date(2026, 3, 14))
    await service.save_birthday_settings(
        "pro", BirthdaySettings(enabled=True, message_text="Happy birthday {{first_name}}!")
    )
    sent = await service.send_birthday_campaigns("pro", date(2026, 3, 14))

    assert skipped.sent == 0
    assert sent.sent == 1
    assert email_service.sent == [
        {
            "to": "a@example.com",
            "subject": "Bakery – Happy Birthday!",
            "body": "Happy birthday Ana!",
            "tenant_name": "Bakery",
            "account_id": "pro",
            "reply_to": "owner@bakery.test",
        }
    ]


@pytest.mark.asyncio
async def test_non_pro_tenant_is_not_emailed(memory_store, email_service, test_settings):
    memory_store.add_tenant(account_id="free", location_id="loc")
    await memory_store.replace_contacts("free", [ContactRow(email="a@example.com")])
    service = CampaignService(memory_store, memory_store, email_service, test_settings)
    campaign = await service.create_one_off_campaign("free", date(2026, 5, 1), "News", "Hello")

    result = await service.send_one_off_campaign(campaign)

    assert result.sent == 0
    assert email_service.sent == []
    assert memory_store.one_offs[campaign.id].status == OneOffCampaignStatus.SCHEDULED


@pytest.mark.asyncio
async def test_one_off_requires_subject_and_body(service):
    with pytest.raises(CampaignStateError) as exc:
        await service.create_one_off_campaign("pro", date(2026, 5, 1), " ", "Hello")

    assert exc.value.status_code == 400


class SentWhileReadingStore(InMemoryStore):
    """Marks the campaign sent right after handing back the pre-send record."""

    async def get_event_campaign(self, account_id, event_key, event_year):
        existing = await super().get_event_campaign(account_id, event_key, event_year)
        if existing is not None:
            await self.mark_event_campaign_sent(account_id, event_key, event_year, now=NOW)
        return existing


@pytest.mark.asyncio
async def test_campaign_sent_between_read_and_save_stays_sent(email_service, test_settings):
    store = SentWhileReadingStore()
    store.add_tenant(account_id="pro", location_id="loc", is_pro=True)
    store.events[("pro", "mothers_day", 2026)] = EventCampaign(
        account_id="pro",
        event_key="mothers_day",
        event_year=2026,
        status=EventCampaignStatus.CONFIRMED,
        message_text="Hi",
    )
    service = CampaignService(store, store, email_service, test_settings)

    with pytest.raises(CampaignStateError) as exc:
        await service.confirm_event_campaign("pro", "mothers_day", 2026, "Edited")

    stored = store.events[("pro", "mothers_day", 2026)]
    assert exc.value.status_code == 409
    assert stored.status == EventCampaignStatus.SENT
    assert stored.sent_at == NOW
    assert await store.list_event_campaigns_awaiting_send() == []


@pytest.mark.asyncio
async def test_skip_refuses_a_campaign_confirmed_after_the_read(service, memory_store):
    original_get = memory_store.get_event_campaign

    async def confirmed_meanwhile(account_id, event_key, event_year):
        existing = await original_get(account_id, event_key, event_year)
        memory_store.events[(account_id, event_key, event_year)] = EventCampaign(
            account_id=account_id,
            event_key=event_key,
            event_year=event_year,
            status=EventCampaignStatus.CONFIRMED,
            message_text="Hi",
        )
        return existing

    memory_store.get_event_campaign = confirmed_meanwhile

    with pytest.raises(CampaignStateError):
        await service.skip_event_campaign("pro", "easter", 2026)

    assert memory_store.events[("pro", "easter", 2026)].status == EventCampaignStatus.CONFIRMED
