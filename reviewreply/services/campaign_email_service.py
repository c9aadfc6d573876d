"""
Campaign email delivery (birthday, event and one-off sends) through Resend.

Every message carries a footer with a signed unsubscribe link and, when
configured, the sender's physical address.
"""

import html
import re
from urllib.parse import quote

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.security.unsubscribe import create_unsubscribe_token
from reviewreply.services.resend_client import ResendClient, ResendError

logger = get_logger(__name__)

_ADDRESS_IN_BRACKETS = re.compile(r"<([^>]+)>")
DEFAULT_FROM_ADDRESS = "onboarding@resend.dev"


class CampaignEmailError(Exception):
    """Raised when a single campaign email cannot be sent."""

    def __init__(self, message: str, recipient: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.recipient = recipient
        self.recoverable = recoverable


class CampaignEmailService:
    def __init__(self, config: Settings | None = None, resend: ResendClient | None = None):
        self.config = config or settings
        self.resend = resend or ResendClient(self.config.RESEND_API_KEY)

    def unsubscribe_url(self, token: str) -> str:
        return f"{self.config.BASE_URL.rstrip('/')}/pro/unsubscribe?token={quote(token, safe='')}"

    def build_body(self, body: str, tenant_name: str, token: str) -> tuple[str, str]:
        """Return (text, html) with the compliance footer appended."""
        product = self.config.PRODUCT_NAME
        address = self.config.CAMPAIGN_FOOTER_ADDRESS.strip()
        url = self.unsubscribe_url(token)

        footer_lines = [
            "",
            "—",
            f"You received this from {tenant_name} via {product}.",
            f"Unsubscribe: {url}",
        ]
        if address:
            footer_lines.append(address)
        text = body + "\n".join(footer_lines)

        name = html.escape(tenant_name)
        html_parts = [
            html.escape(body).replace("\n", "<br>\n"),
            '<p style="margin-top:1.5em;font-size:0.85em;color:#666;">—<br>',
            f"You received this from {name} via {html.escape(product)}.<br>",
            f'<a href="{html.escape(url)}">Unsubscribe</a> from {name} emails.</p>',
        ]
        if address:
            html_parts.append(f'<p style="font-size:0.8em;color:#888;">{html.escape(address)}</p>')
        return text, "\n".join(html_parts)

    def sender(self, tenant_name: str | None) -> str:
        product = self.config.PRODUCT_NAME
        display = f"{tenant_name} via {product}" if tenant_name else product
        match = _ADDRESS_IN_BRACKETS.search(self.config.ALERT_FROM_EMAIL or "")
        address = match.group(1) if match else DEFAULT_FROM_ADDRESS
        return f"{display} <{address}>"

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        tenant_name: str,
        account_id: str,
        reply_to: str | None = None,
    ) -> None:
        recipient = (to or "").strip().lower()
        if not self.resend.configured:
            raise CampaignEmailError(
                "RESEND_API_KEY is not set; cannot send campaign email", recoverable=False
            )
        if not recipient:
            raise CampaignEmailError("Missing recipient email")

        tenant_name = tenant_name or "this business"
        token = create_unsubscribe_token(account_id, recipient, self.config.unsubscribe_secret())
        text, html_body = self.build_body(body, tenant_name, token)

        try:
            await self.resend.send_email(
                sender=self.sender(tenant_name),
                to=[recipient],
                subject=subject,
                text=text,
                html=html_body,
                reply_to=reply_to,
            )
        except ResendError as e:
            raise CampaignEmailError(str(e), recipient=recipient) from e

        logger.debug("Campaign email sent", account_id=account_id, subject=subject)
