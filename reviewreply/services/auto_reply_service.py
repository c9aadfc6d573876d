"""
Per-tenant reply loop: fetch reviews, reply to the unanswered ones, record
what was answered.
"""

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.review_domain import Review, ReplyRunResult
from reviewreply.models.domain.tenant_domain import DEFAULT_CONTACT
from reviewreply.repositories.base import Store
from reviewreply.services.google_reviews_service import GoogleReviewsClient
from reviewreply.services.reply_composer import ReplyComposer

logger = get_logger(__name__)


class AutoReplyService:
    def __init__(
        self,
        store: Store,
        reviews_client: GoogleReviewsClient,
        composer: ReplyComposer,
        config: Settings | None = None,
    ):
        self.store = store
        self.reviews_client = reviews_client
        self.composer = composer
        self.config = config or settings

    @staticmethod
    def select_pending(
        reviews: list[Review], allowed_ratings: set[int], replied_ids: set[str]
    ) -> list[Review]:
        """Reviews with no reply yet, an allowed rating, and an id not already answered."""
        return [
            review
            for review in reviews
            if review.review_id
            and not review.has_reply
            and review.rating is not None
            and review.rating in allowed_ratings
            and review.review_id not in replied_ids
        ]

    async def process_pending_reviews(
        self,
        account_id: str,
        location_id: str,
        contact: str | None = None,
        tenant_name: str | None = None,
    ) -> ReplyRunResult:
        """
        Reply to every pending review of one location.

        Failures to list reviews propagate. Failures on a single review are
        recorded in the result and the loop moves on. Successfully answered
        ids are persisted once, after the loop.
        """
        replied_ids = await self.store.get_replied_review_ids(account_id, location_id)
        allowed_ratings = self.config.allowed_ratings()

        reviews = await self.reviews_client.list_reviews(account_id, location_id)
        pending = self.select_pending(reviews, allowed_ratings, replied_ids)

        logger.info(
            "Processing pending reviews",
            account_id=account_id,
            location_id=location_id,
            total_reviews=len(reviews),
            pending=len(pending),
        )

        result = ReplyRunResult()
        for review in pending:
            try:
                text = await self.composer.generate_reply(
                    review, contact=contact or DEFAULT_CONTACT, tenant_name=tenant_name
                )
                await self.reviews_client.post_reply(
                    account_id, location_id, review.review_id, text
                )
            except Exception as e:
                logger.warning(
                    "Auto-reply failed for review",
                    account_id=account_id,
                    review_id=review.review_id,
                    rating=review.rating,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.record_failure(review.review_id, review.rating, str(e) or type(e).__name__)
                continue

            replied_ids.add(review.review_id)
            result.record_success(review.review_id, review.rating)

        await self.store.save_replied_review_ids(account_id, location_id, replied_ids)

        logger.info(
            "Reply loop finished",
            account_id=account_id,
            location_id=location_id,
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def reply_to_review(
        self, account_id: str, location_id: str, review_id: str, text: str
    ) -> dict:
        """Post an owner-written reply and record the review as answered."""
        response = await self.reviews_client.post_reply(account_id, location_id, review_id, text)
        await self.store.add_replied_review_id(account_id, location_id, review_id)
        logger.info("Manual reply posted", account_id=account_id, review_id=review_id)
        return response
