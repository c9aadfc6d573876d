# reviewreply/models/api/review_request.py
"""
Review and auto-reply API request models.
"""

from pydantic import BaseModel, Field


class ProcessReviewsRequest(BaseModel):
    """Manual auto-reply run. Omit both ids to use the configured fallback tenant."""

    account_id: str | None = Field(None, description="Google account id")
    location_id: str | None = Field(None, description="Google location id")


class ManualReplyRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=4096, description="Reply text to post")
