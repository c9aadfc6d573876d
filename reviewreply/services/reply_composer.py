"""
Review reply generation with OpenAI chat completions.

There is no template fallback: if the model cannot be reached or returns
nothing, ReplyGenerationError is raised and the review stays unanswered so
the next tick retries it.
"""

import openai
from openai import AsyncOpenAI

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.review_domain import Review

logger = get_logger(__name__)

ELLIPSIS = "…"


class ReplyGenerationError(Exception):
    """Raised when a reply cannot be generated."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


def truncate_reply(text: str, max_chars: int) -> str:
    """
    Cap text at max_chars, preferring to cut at a word boundary.

    The cut falls on the last space only when that space is past 70% of the
    limit; otherwise the text is cut hard. An ellipsis marks any truncation.
    """
    if len(text) <= max_chars:
        return text
    cut = text[: max_chars - 1]
    last_space = cut.rfind(" ")
    end = last_space if last_space > max_chars * 0.7 else len(cut)
    return text[:end].strip() + (ELLIPSIS if end < len(text) else "")


class ReplyComposer:
    """Writes one owner reply per review."""

    def __init__(self, config: Settings | None = None, client: AsyncOpenAI | None = None):
        self.config = config or settings
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.OPENAI_API_KEY:
                raise ReplyGenerationError("OPENAI_API_KEY is not set", recoverable=False)
            self._client = AsyncOpenAI(
                api_key=self.config.OPENAI_API_KEY,
                timeout=self.config.TEXT_GENERATION_TIMEOUT_SECONDS,
            )
        return self._client

    def _system_message(self) -> str:
        max_chars = self.config.REPLY_MAX_CHARS
        return f"""You write short, professional replies to Google Business reviews. Rules:
- Reply as the business owner. Keep it under {max_chars} characters.
- Be warm and grateful for positive reviews; empathetic and solution-focused for negative ones.
- Do not use markdown, bullet points, or hashtags. Output plain text only.
- For 1- or 2-star reviews, you must invite the customer to reach out using the contact information provided. Include that contact in your reply."""

    def _user_message(self, review: Review, contact: str, tenant_name: str) -> str:
        review_text = (review.comment or "").strip() or "(No comment)"
        lines = [
            f"Business name: {tenant_name}",
            f"Star rating: {review.rating} out of 5",
            f"Reviewer's first name: {review.first_name()}",
            f'Review text: "{review_text}"',
        ]
        if review.rating in (1, 2):
            lines.append(f"Contact for the customer to reach out: {contact}")
        lines.append("")
        lines.append(
            "Write a single, short reply to this review. Output only the reply text, nothing else."
        )
        return "\n".join(lines)

    async def generate_reply(
        self, review: Review, contact: str = "", tenant_name: str | None = None
    ) -> str:
        tenant_name = tenant_name or "the business"

        try:
            response = await self.client.chat.completions.create(
                model=self.config.OPENAI_MODEL,
                max_tokens=256,
                temperature=0.7,
                messages=[
                    {"role": "system", "content": self._system_message()},
                    {"role": "user", "content": self._user_message(review, contact, tenant_name)},
                ],
            )
        except openai.APIError as e:
            logger.warning(
                "Reply generation API error",
                review_id=review.review_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ReplyGenerationError(f"Reply generation failed: {e}", api_error=str(e)) from e

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ReplyGenerationError("Model returned no text")

        return truncate_reply(text, self.config.REPLY_MAX_CHARS)
