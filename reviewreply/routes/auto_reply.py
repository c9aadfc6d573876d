"""
Auto-reply API Routes
Manual reply runs and owner-written replies.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, status

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.api.review_request import ManualReplyRequest, ProcessReviewsRequest
from reviewreply.models.domain.review_domain import ReplyRunResult
from reviewreply.repositories.base import Store
from reviewreply.routes.dependencies import (
    auto_reply_service_dependency,
    google_http_error,
    store_dependency,
)
from reviewreply.services.auto_reply_service import AutoReplyService
from reviewreply.services.google_oauth_service import GoogleOAuthError
from reviewreply.services.google_reviews_service import GoogleReviewsError

logger = get_logger(__name__)

router = APIRouter(tags=["auto-reply"])


@router.post("/auto/process", response_model=ReplyRunResult)
async def process_reviews(
    request: ProcessReviewsRequest | None = Body(default=None),
    service: AutoReplyService = Depends(auto_reply_service_dependency),
    store: Store = Depends(store_dependency),
):
    """Run the reply loop once for one tenant, outside the scheduler."""
    account_id = request.account_id if request else None
    location_id = request.location_id if request else None

    if not account_id or not location_id:
        legacy = service.config.legacy_tenant()
        if legacy is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="account_id and location_id are required",
            )
        account_id, location_id = legacy

    tenant = await store.get_tenant(account_id)

    try:
        return await service.process_pending_reviews(
            account_id,
            location_id,
            contact=tenant.contact if tenant else None,
            tenant_name=tenant.name if tenant else None,
        )
    except (GoogleOAuthError, GoogleReviewsError) as e:
        logger.error("Manual auto-reply run failed", account_id=account_id, error=str(e))
        raise google_http_error(e)
    except Exception as e:
        logger.error(
            "Manual auto-reply run failed",
            account_id=account_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Auto-reply run failed"
        )


@router.post("/reviews/{account_id}/{location_id}/{review_id}/reply")
async def reply_to_review(
    account_id: str,
    location_id: str,
    review_id: str,
    request: ManualReplyRequest,
    service: AutoReplyService = Depends(auto_reply_service_dependency),
):
    """Post an owner-written reply; the review will not be auto-replied later."""
    comment = request.comment.strip()
    if not comment:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="comment is required")

    try:
        await service.reply_to_review(account_id, location_id, review_id, comment)
    except (GoogleOAuthError, GoogleReviewsError) as e:
        logger.error("Manual reply failed", account_id=account_id, review_id=review_id, error=str(e))
        raise google_http_error(e)

    return {"ok": True, "review_id": review_id}
