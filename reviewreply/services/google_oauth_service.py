"""
Google OAuth for Business Profile accounts: the consent flow, and access
tokens for connected accounts.

Stored tokens live in the active store (tokens table or tokens.json), keyed by
account id. When the stored access token is missing or about to expire, a
single refresh-token exchange is made against Google's token endpoint and the
result is written back.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.repositories.base import Store

logger = get_logger(__name__)

GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
BUSINESS_PROFILE_SCOPES = ["https://www.googleapis.com/auth/business.manage"]

REQUEST_TIMEOUT = 10.0
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Refresh this many seconds before Google's stated expiry
EXPIRY_SKEW_SECONDS = 60


class GoogleOAuthError(Exception):
    """Raised when no usable access token can be obtained."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleOAuthService:
    """Consent flow, access-token lookup and refresh for one store."""

    def __init__(self, store: Store, config: Settings | None = None):
        self.store = store
        self.config = config or settings

    async def _post_with_retry(self, url: str, data: dict, operation: str) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(url, data=data, headers=headers)

                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "Google OAuth transient status",
                            operation=operation,
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue

                    return response

                except httpx.RequestError as exc:
                    if attempt == MAX_RETRIES:
                        raise

                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Google OAuth request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(wait_time)

        raise GoogleOAuthError(f"{operation} failed: Unknown error")

    @staticmethod
    def _is_fresh(token: dict[str, Any], now_ms: int) -> bool:
        if not token.get("access_token"):
            return False
        expiry = token.get("expiry_date")
        if not expiry:
            return True
        try:
            return int(expiry) - EXPIRY_SKEW_SECONDS * 1000 > now_ms
        except (TypeError, ValueError):
            return False

    def _require_client(self) -> None:
        if not self.config.GOOGLE_CLIENT_ID or not self.config.GOOGLE_CLIENT_SECRET:
            raise GoogleOAuthError(
                "Google OAuth client is not configured", error_code="config", status_code=503
            )

    def _parse_token_response(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            error_code = error_data.get("error", "unknown_error")
            logger.error(
                "Google token request failed",
                operation=operation,
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_data.get("error_description"),
            )
            raise GoogleOAuthError(
                f"{operation} failed: {error_code}",
                error_code=error_code,
                status_code=response.status_code,
                response_data=error_data,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GoogleOAuthError(f"Failed to parse Google response: {e}") from e

        if not payload.get("access_token"):
            raise GoogleOAuthError("Invalid token response from Google")

        return payload

    def generate_oauth_url(self) -> str:
        """Consent URL for Business Profile access, always requesting a refresh token."""
        self._require_client()
        params = {
            "client_id": self.config.GOOGLE_CLIENT_ID,
            "redirect_uri": self.config.google_redirect_uri(),
            "scope": " ".join(BUSINESS_PROFILE_SCOPES),
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, authorization_code: str) -> dict[str, Any]:
        """
        Exchange the callback's authorization code for tokens.

        Raises:
            GoogleOAuthError: If the client is not configured or Google rejects the code
        """
        self._require_client()
        data = {
            "client_id": self.config.GOOGLE_CLIENT_ID,
            "client_secret": self.config.GOOGLE_CLIENT_SECRET,
            "code": authorization_code,
            "grant_type": "authorization_code",
            "redirect_uri": self.config.google_redirect_uri(),
        }

        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, operation="code_exchange")
        except httpx.RequestError as e:
            logger.error("Network error during code exchange", error=str(e))
            raise GoogleOAuthError(f"Network error during code exchange: {e}") from e

        return self._parse_token_response(response, "code_exchange")

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns the raw token payload from Google (access_token, expires_in,
        scope, token_type and sometimes a new refresh_token).
        """
        self._require_client()
        data = {
            "client_id": self.config.GOOGLE_CLIENT_ID,
            "client_secret": self.config.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, operation="token_refresh")
        except httpx.RequestError as e:
            logger.error("Network error during token refresh", error=str(e))
            raise GoogleOAuthError(f"Network error during token refresh: {e}") from e

        return self._parse_token_response(response, "token_refresh")

    async def store_tokens(
        self, account_id: str, payload: dict[str, Any], now_ms: int | None = None
    ) -> dict[str, Any]:
        """Persist a token payload. A payload without refresh_token keeps the stored one."""
        now_ms = now_ms or int(time.time() * 1000)
        existing = await self.store.get_token(account_id) or {}
        expires_in = int(payload.get("expires_in") or 3600)
        token = {
            **existing,
            "access_token": payload["access_token"],
            "refresh_token": payload.get("refresh_token") or existing.get("refresh_token"),
            "scope": payload.get("scope") or existing.get("scope"),
            "expiry_date": now_ms + expires_in * 1000,
        }
        await self.store.save_token(account_id, token)
        return token

    async def resolve_account_id(self, account_id: str | None) -> str:
        """The given account, or the first connected one."""
        if account_id:
            return account_id
        account_ids = await self.store.list_token_account_ids()
        if not account_ids:
            raise GoogleOAuthError(
                "Google is not connected. Visit /auth/google to connect.",
                error_code="not_connected",
                status_code=400,
            )
        return account_ids[0]

    async def get_token_status(self, account_id: str | None = None) -> dict[str, Any]:
        account_ids = await self.store.list_token_account_ids()
        account_id = account_id or (account_ids[0] if account_ids else None)
        token = (await self.store.get_token(account_id) if account_id else None) or {}
        return {
            "account_id": account_id,
            "connected": bool(token.get("access_token") or token.get("refresh_token")),
            "scope": token.get("scope"),
            "expiry_date": token.get("expiry_date"),
            "account_ids": account_ids,
        }

    async def get_access_token(self, account_id: str) -> str:
        """Return a usable access token for the account, refreshing if needed."""
        token = await self.store.get_token(account_id)
        if not token or not (token.get("refresh_token") or token.get("access_token")):
            raise GoogleOAuthError(
                "Google is not connected for this account",
                error_code="not_connected",
                status_code=400,
            )

        now_ms = int(time.time() * 1000)
        if self._is_fresh(token, now_ms):
            return token["access_token"]

        refresh_token = token.get("refresh_token")
        if not refresh_token:
            raise GoogleOAuthError(
                "Stored access token expired and no refresh token is available",
                error_code="expired",
                status_code=401,
            )

        payload = await self.refresh_access_token(refresh_token)
        updated = await self.store_tokens(account_id, payload, now_ms=now_ms)

        logger.info(
            "Google access token refreshed",
            account_id=account_id,
            expires_in=payload.get("expires_in"),
        )
        return updated["access_token"]
