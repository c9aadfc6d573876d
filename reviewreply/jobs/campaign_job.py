"""
Campaign job: dispatches Pro email campaigns that are due today.

Runs hourly, and only when a relational store is configured.
    Step A  birthday emails, once per calendar day, for every Pro tenant
    Step B  confirmed event campaigns whose send date is exactly today
    Step C  scheduled one-off campaigns with send_date on or before today
Each tenant or campaign is isolated: a failure is logged and counted and the
step moves on.
"""

import asyncio
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger, log_job_summary
from reviewreply.models.domain.campaign_domain import CampaignSendResult
from reviewreply.repositories.base import CampaignStore, Store
from reviewreply.services.campaign_service import CampaignService

logger = get_logger(__name__)

JOB_NAME = "campaigns"
CAMPAIGN_TICK_SECONDS = 60 * 60
ERROR_BACKOFF_SECONDS = 60


class CampaignJobError(Exception):
    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class CampaignMetrics:
    """Metrics tracking for one campaign tick."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.today: date | None = None
        self.birthday_step_ran = False
        self.birthday_tenants = 0
        self.events_sent = 0
        self.one_offs_sent = 0
        self.emails_sent = 0
        self.emails_failed = 0
        self.campaigns_failed = 0
        self.total_duration_seconds = 0.0
        self.campaigns: list[dict] = []
        self.errors: list[dict] = []

    def record_send(self, kind: str, ref: dict, result: CampaignSendResult):
        self.emails_sent += result.sent
        self.emails_failed += result.failed
        self.campaigns.append({"kind": kind, **ref, "sent": result.sent, "failed": result.failed})

    def record_error(self, kind: str, ref: dict, error: Exception):
        self.campaigns_failed += 1
        self.errors.append(
            {"kind": kind, **ref, "error": str(error), "error_type": type(error).__name__}
        )
        logger.error(
            "Campaign step failed", kind=kind, error=str(error), error_type=type(error).__name__, **ref
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": JOB_NAME,
            "today": self.today.isoformat() if self.today else None,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "birthday_step_ran": self.birthday_step_ran,
            "birthday_tenants": self.birthday_tenants,
            "events_sent": self.events_sent,
            "one_offs_sent": self.one_offs_sent,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "campaigns_failed": self.campaigns_failed,
            "campaigns": list(self.campaigns),
            "errors": list(self.errors),
        }


class CampaignJob:
    def __init__(
        self,
        store: Store,
        campaign_store: CampaignStore,
        campaign_service: CampaignService,
        config: Settings | None = None,
    ):
        self.store = store
        self.campaign_store = campaign_store
        self.campaign_service = campaign_service
        self.config = config or settings

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.birthdays_done_for: date | None = None
        self.job_metrics = CampaignMetrics()

    def today(self) -> date:
        return datetime.now(ZoneInfo(self.config.CAMPAIGN_TIMEZONE)).date()

    async def run_once(self, today: date | None = None) -> dict:
        if self.is_running:
            logger.warning("Campaign job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        today = today or self.today()

        try:
            self.is_running = True
            self.job_metrics.reset()
            self.job_metrics.today = today

            if self.birthdays_done_for != today:
                await self._send_birthdays(today)
                self.birthdays_done_for = today
                self.job_metrics.birthday_step_ran = True

            await self._send_events(today)
            await self._send_one_offs(today)

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            return self.job_metrics.to_dict()

        finally:
            self.is_running = False

    async def _send_birthdays(self, today: date) -> None:
        try:
            tenants = [t for t in await self.store.get_all_tenants() if t.is_pro]
        except Exception as e:
            self.job_metrics.record_error("birthday", {"step": "list_tenants"}, e)
            return

        for tenant in tenants:
            ref = {"account_id": tenant.account_id}
            try:
                result = await self.campaign_service.send_birthday_campaigns(
                    tenant.account_id, today
                )
            except Exception as e:
                self.job_metrics.record_error("birthday", ref, e)
                continue
            self.job_metrics.birthday_tenants += 1
            if result.sent or result.failed:
                self.job_metrics.record_send("birthday", ref, result)

    async def _send_events(self, today: date) -> None:
        try:
            campaigns = await self.campaign_store.list_event_campaigns_awaiting_send()
        except Exception as e:
            self.job_metrics.record_error("event", {"step": "list_campaigns"}, e)
            return

        for campaign in campaigns:
            if not self.campaign_service.is_event_due(campaign, today):
                continue
            ref = {
                "account_id": campaign.account_id,
                "event_key": campaign.event_key,
                "event_year": campaign.event_year,
            }
            try:
                result = await self.campaign_service.send_event_campaign(
                    campaign.account_id, campaign.event_key, campaign.event_year
                )
            except Exception as e:
                self.job_metrics.record_error("event", ref, e)
                continue
            self.job_metrics.events_sent += 1
            self.job_metrics.record_send("event", ref, result)

    async def _send_one_offs(self, today: date) -> None:
        try:
            campaigns = await self.campaign_store.list_one_off_campaigns_due(today)
        except Exception as e:
            self.job_metrics.record_error("one_off", {"step": "list_campaigns"}, e)
            return

        for campaign in campaigns:
            ref = {"account_id": campaign.account_id, "campaign_id": campaign.id}
            try:
                result = await self.campaign_service.send_one_off_campaign(campaign)
            except Exception as e:
                self.job_metrics.record_error("one_off", ref, e)
                continue
            self.job_metrics.one_offs_sent += 1
            self.job_metrics.record_send("one_off", ref, result)

    def get_job_status(self) -> dict[str, Any]:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "timezone": self.config.CAMPAIGN_TIMEZONE,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "birthdays_done_for": (
                self.birthdays_done_for.isoformat() if self.birthdays_done_for else None
            ),
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


_campaign_job: CampaignJob | None = None


def get_campaign_job() -> CampaignJob | None:
    """Process-wide job instance, or None without a relational store."""
    global _campaign_job
    if _campaign_job is None:
        from reviewreply.services.wiring import build_campaign_job

        _campaign_job = build_campaign_job()
    return _campaign_job


async def start_campaign_scheduler(
    job: CampaignJob | None = None, config: Settings | None = None
) -> None:
    """Run the campaign tick hourly. Returns immediately without a database."""
    config = config or settings
    if not config.CAMPAIGN_SCHEDULER_ENABLED:
        logger.info("Campaign scheduler disabled")
        return

    job = job or get_campaign_job()
    if job is None:
        logger.info("Campaign scheduler not started: campaigns require DATABASE_URL")
        return

    logger.info(
        "Starting campaign scheduler",
        interval_minutes=CAMPAIGN_TICK_SECONDS // 60,
        timezone=config.CAMPAIGN_TIMEZONE,
    )

    while True:
        try:
            metrics = await job.run_once()
            if not metrics.get("skipped", False):
                log_job_summary(JOB_NAME, metrics)

            await asyncio.sleep(CAMPAIGN_TICK_SECONDS)

        except Exception as e:
            logger.error(
                "Error in campaign scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)
