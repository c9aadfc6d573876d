"""
Google Business Profile API client.
Lists accounts, locations and reviews (following pagination) and posts replies.
"""

import asyncio
from typing import Any
from urllib.parse import quote

import httpx

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.review_domain import Review
from reviewreply.services.google_oauth_service import GoogleOAuthError, GoogleOAuthService

logger = get_logger(__name__)

REVIEWS_API_BASE_URL = "https://mybusiness.googleapis.com/v4"

REQUEST_TIMEOUT = 30
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_PAGES = 100

ACCOUNTS_API_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
LOCATIONS_API_BASE_URL = "https://mybusinessbusinessinformation.googleapis.com/v1"
LOCATION_READ_MASK = "name,title"


class GoogleReviewsError(Exception):
    """Custom exception for Google reviews API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.response_data = response_data or {}


class GoogleReviewsClient:
    """
    Review source and poster for one connected Google account at a time.

    Access tokens are resolved per call through the token service so a token
    refreshed mid-run is picked up by the next request.
    """

    def __init__(
        self,
        token_service: GoogleOAuthService,
        client: httpx.AsyncClient | None = None,
    ):
        self.token_service = token_service
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Reviews API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise GoogleReviewsError(f"Network error: {e}", operation=method) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Reviews API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Reviews API retry loop exhausted")

    async def _auth_headers(self, account_id: str) -> dict[str, str]:
        try:
            access_token = await self.token_service.get_access_token(account_id)
        except GoogleOAuthError as e:
            raise GoogleReviewsError(
                str(e), status_code=e.status_code, operation="access_token"
            ) from e
        return self._bearer_headers(access_token)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error("Failed to parse reviews API response", operation=operation, error=str(e))
                raise GoogleReviewsError(
                    f"Invalid response format: {e}", operation=operation
                ) from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            error_data = {}
        error_message = (error_data.get("error") or {}).get("message") or response.text[:200]

        logger.error(
            "Reviews API request failed",
            operation=operation,
            status_code=response.status_code,
            error_message=error_message,
        )
        raise GoogleReviewsError(
            f"Google API error {response.status_code}: {error_message}",
            status_code=response.status_code,
            operation=operation,
            response_data=error_data,
        )

    @staticmethod
    def _location_url(account_id: str, location_id: str) -> str:
        return (
            f"{REVIEWS_API_BASE_URL}/accounts/{quote(account_id, safe='')}"
            f"/locations/{quote(location_id, safe='')}"
        )

    def _bearer_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _get_all_pages(
        self,
        url: str,
        items_key: str,
        operation: str,
        account_id: str | None = None,
        access_token: str | None = None,
        params: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Follow nextPageToken until the last page.

        Stops early on a page token already seen or after MAX_PAGES
        pages. A raw access_token is used as-is; otherwise the stored token
        for account_id is resolved on every page.
        """
        items: list[dict[str, Any]] = []
        page_token: str | None = None
        seen_tokens: set[str] = set()
        pages = 0

        while True:
            page_params = dict(params or {})
            if page_token:
                page_params["pageToken"] = page_token
            if access_token:
                headers = self._bearer_headers(access_token)
            else:
                headers = await self._auth_headers(account_id)
            response = await self._request_with_retry(
                "GET", url, headers=headers, params=page_params or None
            )
            data = self._handle_api_response(response, operation)

            page_items = data.get(items_key)
            if isinstance(page_items, list):
                items.extend(item for item in page_items if isinstance(item, dict))
            pages += 1

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            if page_token in seen_tokens or pages >= MAX_PAGES:
                logger.warning(
                    "Stopping pagination",
                    operation=operation,
                    account_id=account_id,
                    pages=pages,
                    repeated_token=page_token in seen_tokens,
                )
                break
            seen_tokens.add(page_token)

        logger.debug("Fetched pages", operation=operation, item_count=len(items), pages=pages)
        return items

    async def list_accounts(
        self, account_id: str | None = None, access_token: str | None = None
    ) -> list[dict[str, Any]]:
        """Business Profile accounts visible to the token (raw API objects)."""
        return await self._get_all_pages(
            ACCOUNTS_API_URL,
            "accounts",
            "list_accounts",
            account_id=account_id,
            access_token=access_token,
        )

    async def list_locations(self, account_id: str) -> list[dict[str, Any]]:
        url = f"{LOCATIONS_API_BASE_URL}/accounts/{quote(account_id, safe='')}/locations"
        return await self._get_all_pages(
            url,
            "locations",
            "list_locations",
            account_id=account_id,
            params={"readMask": LOCATION_READ_MASK},
        )

    async def list_reviews(self, account_id: str, location_id: str) -> list[Review]:
        """Every review of the location, in platform order, across all pages."""
        url = f"{self._location_url(account_id, location_id)}/reviews"
        items = await self._get_all_pages(url, "reviews", "list_reviews", account_id=account_id)
        return [Review.from_google(item) for item in items]

    async def post_reply(
        self, account_id: str, location_id: str, review_id: str, text: str
    ) -> dict[str, Any]:
        """Create or replace the owner reply on one review."""
        url = (
            f"{self._location_url(account_id, location_id)}"
            f"/reviews/{quote(review_id, safe='')}/reply"
        )
        headers = await self._auth_headers(account_id)
        response = await self._request_with_retry(
            "PUT", url, headers=headers, json={"comment": text}
        )
        return self._handle_api_response(response, "post_reply")
