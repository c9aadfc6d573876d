"""
Operator alerts for failed auto-reply runs: email through Resend and/or SMS
through Twilio. Each channel is used only when fully configured, and delivery
errors are logged, never raised.
"""

import asyncio
from datetime import UTC, datetime

import httpx

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.review_domain import ReplyRunResult
from reviewreply.services.resend_client import ResendClient

logger = get_logger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SMS_MAX_CHARS = 1600
REQUEST_TIMEOUT = 15.0


class AlertService:
    def __init__(self, config: Settings | None = None, resend: ResendClient | None = None):
        self.config = config or settings
        self.resend = resend or ResendClient(self.config.RESEND_API_KEY)

    @property
    def email_enabled(self) -> bool:
        return bool(self.config.ALERT_EMAIL and self.resend.configured)

    @property
    def sms_enabled(self) -> bool:
        c = self.config
        return bool(
            c.ALERT_PHONE and c.TWILIO_ACCOUNT_SID and c.TWILIO_AUTH_TOKEN and c.TWILIO_FROM_NUMBER
        )

    def build_messages(
        self,
        tenant_name: str | None,
        account_id: str | None,
        error: BaseException | str | None = None,
        result: ReplyRunResult | None = None,
        now: datetime | None = None,
    ) -> tuple[str, str, str]:
        """Return (subject, body, sms_text)."""
        product = self.config.PRODUCT_NAME
        label = tenant_name or account_id or "Unknown business"
        now = now or datetime.now(UTC)

        subject = f"{product}: auto-reply failed"
        body = f"{product} auto-reply failed for {label}"
        if account_id:
            body += f" ({account_id})"
        body += ".\n\n"

        error_text = str(error) if error is not None else ""
        if error is not None:
            subject = f"{product}: auto-reply error"
            body += f"Error: {error_text or type(error).__name__}\n"

        if result is not None and (result.failed > 0 or result.details):
            body += (
                f"Attempted: {result.attempted}, succeeded: {result.succeeded}, "
                f"failed: {result.failed}.\n"
            )
            reason = result.first_error()
            if reason:
                body += f"Reason: {reason}\n"

        body += f"\nTime: {now.isoformat()}"

        if error is not None:
            sms = f"{product} error ({label}): {error_text[:80]}"
        else:
            failed = result.failed if result else 0
            sms = f"{product}: {failed} reply failed for {label}. Check email."

        return subject, body, sms

    async def _send_email(self, subject: str, body: str) -> None:
        await self.resend.send_email(
            sender=self.config.ALERT_FROM_EMAIL,
            to=[self.config.ALERT_EMAIL],
            subject=subject,
            text=body,
        )

    async def _send_sms(self, text: str) -> None:
        c = self.config
        url = TWILIO_MESSAGES_URL.format(sid=c.TWILIO_ACCOUNT_SID)
        data = {"From": c.TWILIO_FROM_NUMBER, "To": c.ALERT_PHONE, "Body": text[:SMS_MAX_CHARS]}
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(
                url, data=data, auth=(c.TWILIO_ACCOUNT_SID, c.TWILIO_AUTH_TOKEN)
            )
        response.raise_for_status()

    async def send_failure_alert(
        self,
        tenant_name: str | None = None,
        account_id: str | None = None,
        error: BaseException | str | None = None,
        result: ReplyRunResult | None = None,
    ) -> None:
        subject, body, sms = self.build_messages(tenant_name, account_id, error, result)

        channels = []
        if self.email_enabled:
            channels.append(("email", self._send_email(subject, body)))
        if self.sms_enabled:
            channels.append(("sms", self._send_sms(sms)))
        if not channels:
            logger.debug("No alert channel configured", account_id=account_id)
            return

        outcomes = await asyncio.gather(*(coro for _, coro in channels), return_exceptions=True)
        for (channel, _), outcome in zip(channels, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.error(
                    "Failure alert delivery failed",
                    channel=channel,
                    account_id=account_id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
            else:
                logger.info("Failure alert sent", channel=channel, account_id=account_id)
