"""
Google connection routes: OAuth consent and callback, token status, and
account, location and review listings for the connected account.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.api.google_response import GoogleConnectResponse, GoogleTokenStatusResponse
from reviewreply.models.domain.review_domain import Review
from reviewreply.routes.dependencies import (
    google_connect_service_dependency,
    google_http_error,
    oauth_service_dependency,
    reviews_client_dependency,
)
from reviewreply.services.google_connect_service import GoogleConnectError, GoogleConnectService
from reviewreply.services.google_oauth_service import GoogleOAuthError, GoogleOAuthService
from reviewreply.services.google_reviews_service import GoogleReviewsClient, GoogleReviewsError

logger = get_logger(__name__)

router = APIRouter(tags=["google"])


@router.get("/auth/google")
async def start_google_auth(
    service: GoogleConnectService = Depends(google_connect_service_dependency),
):
    """Redirect the owner to Google's consent screen."""
    try:
        url = service.authorization_url()
    except GoogleOAuthError as e:
        logger.error("Google OAuth URL generation failed", error=str(e), error_code=e.error_code)
        raise HTTPException(
            status_code=e.status_code or status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google sign-in is not configured",
        ) from None

    return RedirectResponse(url)


@router.get("/auth/google/callback", response_model=GoogleConnectResponse)
async def google_auth_callback(
    code: str | None = Query(default=None),
    service: GoogleConnectService = Depends(google_connect_service_dependency),
):
    """
    Complete the connection: store tokens and create or update the tenant.

    Raises:
        400: Missing code, or no Business Profile account
        401/503: Code exchange rejected or OAuth not configured
        502: Google API failure while listing accounts or locations
    """
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code")

    try:
        connection = await service.complete(code)
    except GoogleConnectError as e:
        logger.warning("Google connect failed", error=str(e))
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None
    except (GoogleOAuthError, GoogleReviewsError) as e:
        logger.error("Google OAuth callback failed", error=str(e), error_type=type(e).__name__)
        raise google_http_error(e) from None

    return GoogleConnectResponse(
        account_id=connection.account_id,
        location_id=connection.location_id,
        business_name=connection.business_name,
    )


@router.get("/me/google", response_model=GoogleTokenStatusResponse)
async def google_token_status(
    account_id: str | None = Query(default=None),
    oauth_service: GoogleOAuthService = Depends(oauth_service_dependency),
):
    return GoogleTokenStatusResponse(**await oauth_service.get_token_status(account_id))


@router.get("/google/accounts")
async def list_google_accounts(
    account_id: str | None = Query(default=None),
    oauth_service: GoogleOAuthService = Depends(oauth_service_dependency),
    reviews_client: GoogleReviewsClient = Depends(reviews_client_dependency),
):
    try:
        account_id = await oauth_service.resolve_account_id(account_id)
        accounts = await reviews_client.list_accounts(account_id=account_id)
    except (GoogleOAuthError, GoogleReviewsError) as e:
        logger.error("Listing Google accounts failed", account_id=account_id, error=str(e))
        raise google_http_error(e) from None

    return {"account_id": account_id, "accounts": accounts}


@router.get("/google/accounts/{account_id}/locations")
async def list_google_locations(
    account_id: str,
    reviews_client: GoogleReviewsClient = Depends(reviews_client_dependency),
):
    try:
        locations = await reviews_client.list_locations(account_id)
    except GoogleReviewsError as e:
        logger.error("Listing Google locations failed", account_id=account_id, error=str(e))
        raise google_http_error(e) from None

    return {"account_id": account_id, "locations": locations}


@router.get(
    "/google/accounts/{account_id}/locations/{location_id}/reviews",
    response_model=list[Review],
)
async def list_google_reviews(
    account_id: str,
    location_id: str,
    reviews_client: GoogleReviewsClient = Depends(reviews_client_dependency),
):
    try:
        return await reviews_client.list_reviews(account_id, location_id)
    except GoogleReviewsError as e:
        logger.error(
            "Listing Google reviews failed",
            account_id=account_id,
            location_id=location_id,
            error=str(e),
        )
        raise google_http_error(e) from None
