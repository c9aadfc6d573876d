import pytest

from reviewreply.models.domain.tenant_domain import DEFAULT_CONTACT
from reviewreply.repositories.json_store import JsonFileStore
from reviewreply.services.auto_reply_service import AutoReplyService
from tests.fakes import FakeReviewsClient, make_review


@pytest.fixture
def service(memory_store, reviews_client, composer, test_settings):
    return AutoReplyService(memory_store, reviews_client, composer, test_settings)


@pytest.mark.asyncio
async def test_second_run_without_new_reviews_posts_nothing(service, reviews_client, memory_store):
    reviews_client.reviews[("acc", "loc")] = [make_review("r1"), make_review("r2", "ONE")]

    first = await service.process_pending_reviews("acc", "loc")
    second = await service.process_pending_reviews("acc", "loc")

    assert first.succeeded == 2
    assert second.attempted == 0
    assert len(reviews_client.posted) == 2
    assert memory_store.replied[("acc", "loc")] == {"r1", "r2"}


@pytest.mark.asyncio
async def test_skips_replied_unrated_and_disallowed_reviews(
    memory_store, reviews_client, composer, test_settings
):
    test_settings.AUTO_REPLY_RATINGS = "4,5"
    reviews_client.reviews[("acc", "loc")] = [
        make_review("has-reply", reply="Thanks already"),
        make_review("low", "TWO"),
        make_review("unrated", "STAR_RATING_UNSPECIFIED"),
        make_review("seen"),
        make_review("new", "FOUR"),
    ]
    await memory_store.save_replied_review_ids("acc", "loc", {"seen"})
    service = AutoReplyService(memory_store, reviews_client, composer, test_settings)

    result = await service.process_pending_reviews("acc", "loc")

    assert [d.review_id for d in result.details] == ["new"]
    assert [p[2] for p in reviews_client.posted] == ["new"]


@pytest.mark.asyncio
async def test_failed_review_is_recorded_and_retried_next_run(service, reviews_client, memory_store):
    reviews_client.reviews[("acc", "loc")] = [make_review("ok"), make_review("bad")]
    reviews_client.fail_posting = {"bad"}

    result = await service.process_pending_reviews("acc", "loc")

    assert result.attempted == 2
    assert result.succeeded == 1
    assert result.failed == 1
    assert result.first_error() == "post failed for bad"
    assert memory_store.replied[("acc", "loc")] == {"ok"}

    reviews_client.fail_posting = set()
    retry = await service.process_pending_reviews("acc", "loc")

    assert [d.review_id for d in retry.details] == ["bad"]
    assert retry.succeeded == 1


@pytest.mark.asyncio
async def test_listing_failure_propagates(service, reviews_client):
    reviews_client.fail_listing = {"acc"}

    with pytest.raises(RuntimeError):
        await service.process_pending_reviews("acc", "loc")


@pytest.mark.asyncio
async def test_contact_defaults_when_tenant_has_none(service, reviews_client, composer):
    reviews_client.reviews[("acc", "loc")] = [make_review("r1", "ONE")]

    await service.process_pending_reviews("acc", "loc", tenant_name="Bakery")

    assert composer.calls == [("r1", DEFAULT_CONTACT, "Bakery")]


@pytest.mark.asyncio
async def test_manual_reply_is_recorded_in_reply_state(service, reviews_client, memory_store):
    reviews_client.reviews[("acc", "loc")] = [make_review("r1")]

    await service.reply_to_review("acc", "loc", "r1", "Thank you!")
    result = await service.process_pending_reviews("acc", "loc")

    assert reviews_client.posted == [("acc", "loc", "r1", "Thank you!")]
    assert result.attempted == 0


class ManualReplyDuringTickClient(FakeReviewsClient):
    """Records an owner reply in the store while the tick is still posting."""

    def __init__(self, store):
        super().__init__()
        self.store = store

    async def post_reply(self, account_id, location_id, review_id, text):
        await self.store.add_replied_review_id(account_id, location_id, "r-manual")
        return await super().post_reply(account_id, location_id, review_id, text)


@pytest.mark.asyncio
async def test_reply_recorded_mid_tick_survives_the_tick_save(tmp_path, composer, test_settings):
    store = JsonFileStore(data_dir=tmp_path)
    client = ManualReplyDuringTickClient(store)
    client.reviews[("acc", "loc")] = [make_review("r-auto")]
    service = AutoReplyService(store, client, composer, test_settings)

    result = await service.process_pending_reviews("acc", "loc")

    assert result.succeeded == 1
    assert await store.get_replied_review_ids("acc", "loc") == {"r-auto", "r-manual"}
