"""
Minimal Resend REST client (https://resend.com/docs/api-reference/emails/send-email).
"""

from typing import Any

import httpx

from reviewreply.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT = 15.0


class ResendError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResendClient:
    def __init__(self, api_key: str | None):
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(
        self,
        sender: str,
        to: list[str],
        subject: str,
        text: str,
        html: str | None = None,
        reply_to: str | None = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise ResendError("RESEND_API_KEY is not set")

        payload: dict[str, Any] = {"from": sender, "to": to, "subject": subject, "text": text}
        if html:
            payload["html"] = html
        if reply_to:
            payload["reply_to"] = reply_to

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise ResendError(f"Network error sending email: {e}") from e

        if not response.is_success:
            try:
                message = response.json().get("message") or response.text[:200]
            except ValueError:
                message = response.text[:200]
            raise ResendError(
                f"Resend API error {response.status_code}: {message}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return {}
