from typing import Any, Literal

from pydantic import BaseModel, Field

STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}


def map_star_rating(star_rating: str | None) -> int | None:
    """Map Google's ONE..FIVE enum to 1..5. Unknown values map to None."""
    return STAR_RATINGS.get(star_rating or "")


class Review(BaseModel):
    """A Google Business Profile review, reduced to what the reply loop needs."""

    review_id: str
    rating: int | None = None
    comment: str | None = None
    reviewer_name: str | None = None
    existing_reply: str | None = None

    @classmethod
    def from_google(cls, data: dict[str, Any]) -> "Review":
        reply = data.get("reviewReply") or {}
        reviewer = data.get("reviewer") or {}
        return cls(
            review_id=data.get("reviewId") or (data.get("name") or "").rsplit("/", 1)[-1],
            rating=map_star_rating(data.get("starRating")),
            comment=data.get("comment"),
            reviewer_name=reviewer.get("displayName"),
            existing_reply=reply.get("comment") or None,
        )

    @property
    def has_reply(self) -> bool:
        return bool(self.existing_reply)

    def first_name(self) -> str:
        """Reviewer's first name, or "there" for anonymous reviewers."""
        raw = (self.reviewer_name or "").strip()
        if not raw or "google user" in raw.lower():
            return "there"
        return raw.split(" ")[0]


class ReplyDetail(BaseModel):
    review_id: str
    rating: int | None
    status: Literal["ok", "error"]
    message: str | None = None


class ReplyRunResult(BaseModel):
    """Outcome of one per-tenant reply loop."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    details: list[ReplyDetail] = Field(default_factory=list)

    def record_success(self, review_id: str, rating: int | None) -> None:
        self.attempted += 1
        self.succeeded += 1
        self.details.append(ReplyDetail(review_id=review_id, rating=rating, status="ok"))

    def record_failure(self, review_id: str, rating: int | None, message: str) -> None:
        self.attempted += 1
        self.failed += 1
        self.details.append(
            ReplyDetail(review_id=review_id, rating=rating, status="error", message=message)
        )

    def first_error(self) -> str | None:
        for detail in self.details:
            if detail.status == "error" and detail.message:
                return detail.message
        return None
