"""
Auto-reply job: replies to new Google reviews for every eligible tenant.

One process-wide tick (AUTO_REPLY_INTERVAL_MINUTES). On each tick a tenant is
processed only when its own interval_minutes has elapsed since it was last
processed by this process. Tenants run sequentially; a failure in one tenant
is logged and alerted, and never stops the others.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger, log_job_summary
from reviewreply.models.domain.review_domain import ReplyRunResult
from reviewreply.models.domain.tenant_domain import Tenant
from reviewreply.repositories.base import Store
from reviewreply.services.alert_service import AlertService
from reviewreply.services.auto_reply_service import AutoReplyService
from reviewreply.services.tenant_service import TenantService

logger = get_logger(__name__)

JOB_NAME = "auto_reply"
ERROR_BACKOFF_SECONDS = 60


class AutoReplyJobError(Exception):
    """Custom exception for auto-reply job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class AutoReplyMetrics:
    """Metrics tracking for one auto-reply tick."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.tenants_processed = 0
        self.tenants_succeeded = 0
        self.tenants_failed = 0
        self.tenants_skipped = 0
        self.replies_attempted = 0
        self.replies_succeeded = 0
        self.replies_failed = 0
        self.used_legacy_fallback = False
        self.total_duration_seconds = 0.0
        self.tenants: list[dict] = []
        self.errors: list[dict] = []

    def record_result(self, account_id: str, result: ReplyRunResult):
        self.tenants_processed += 1
        self.replies_attempted += result.attempted
        self.replies_succeeded += result.succeeded
        self.replies_failed += result.failed

        if result.failed > 0:
            self.tenants_failed += 1
        else:
            self.tenants_succeeded += 1

        self.tenants.append(
            {
                "account_id": account_id,
                "attempted": result.attempted,
                "succeeded": result.succeeded,
                "failed": result.failed,
            }
        )

    def record_error(self, account_id: str, error: Exception):
        self.tenants_processed += 1
        self.tenants_failed += 1
        self.errors.append(
            {
                "account_id": account_id,
                "error": str(error),
                "error_type": type(error).__name__,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def record_skipped(self):
        self.tenants_skipped += 1

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": JOB_NAME,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "tenants_processed": self.tenants_processed,
            "tenants_succeeded": self.tenants_succeeded,
            "tenants_failed": self.tenants_failed,
            "tenants_skipped": self.tenants_skipped,
            "replies_attempted": self.replies_attempted,
            "replies_succeeded": self.replies_succeeded,
            "replies_failed": self.replies_failed,
            "used_legacy_fallback": self.used_legacy_fallback,
            "tenants": list(self.tenants),
            "errors": list(self.errors),
        }


class AutoReplyJob:
    def __init__(
        self,
        store: Store,
        reply_service: AutoReplyService,
        tenant_service: TenantService,
        alert_service: AlertService,
        config: Settings | None = None,
    ):
        self.store = store
        self.reply_service = reply_service
        self.tenant_service = tenant_service
        self.alert_service = alert_service
        self.config = config or settings

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_run_by_tenant: dict[str, datetime] = {}
        self.job_metrics = AutoReplyMetrics()

    def is_tenant_due(self, tenant: Tenant, now: datetime) -> bool:
        last = self.last_run_by_tenant.get(tenant.account_id)
        if last is None:
            return True
        interval = timedelta(minutes=max(1, tenant.interval_minutes))
        return now - last >= interval

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run a single auto-reply tick.

        Returns:
            Dict: Tick metrics, including per-tenant summaries and errors

        Raises:
            AutoReplyJobError: If the tenant list cannot be loaded
        """
        if self.is_running:
            logger.warning("Auto-reply job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        now = now or datetime.now(UTC)

        try:
            self.is_running = True
            self.job_metrics.reset()

            try:
                tenants = await self.tenant_service.get_eligible_tenants(now)
            except Exception as e:
                logger.error("Failed to load eligible tenants", error=str(e))
                raise AutoReplyJobError(
                    f"Could not load tenants: {e}", operation="get_eligible_tenants"
                ) from e

            if tenants:
                for tenant in tenants:
                    if not self.is_tenant_due(tenant, now):
                        self.job_metrics.record_skipped()
                        continue
                    self.last_run_by_tenant[tenant.account_id] = now
                    await self._process_tenant(
                        tenant.account_id, tenant.location_id, tenant.contact, tenant.name
                    )
            else:
                await self._process_legacy_tenant()

            self.job_metrics.finalize()
            self.last_run_time = now
            return self.job_metrics.to_dict()

        finally:
            self.is_running = False

    async def _process_legacy_tenant(self) -> None:
        legacy = self.config.legacy_tenant()
        if legacy is None:
            logger.info("No eligible tenants for auto-reply")
            return

        account_id, location_id = legacy
        self.job_metrics.used_legacy_fallback = True

        tenant = None
        try:
            tenant = await self.store.get_tenant(account_id)
        except Exception as e:
            logger.warning("Could not load legacy tenant record", account_id=account_id, error=str(e))

        await self._process_tenant(
            account_id,
            location_id,
            tenant.contact if tenant else None,
            tenant.name if tenant else None,
        )

    async def _process_tenant(
        self, account_id: str, location_id: str, contact: str | None, name: str | None
    ) -> None:
        try:
            result = await self.reply_service.process_pending_reviews(
                account_id, location_id, contact=contact, tenant_name=name
            )
        except Exception as e:
            logger.error(
                "Auto-reply failed for tenant",
                account_id=account_id,
                location_id=location_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.job_metrics.record_error(account_id, e)
            await self._alert(name, account_id, error=e)
            return

        self.job_metrics.record_result(account_id, result)
        if result.failed > 0:
            logger.warning(
                "Auto-reply had failed replies",
                account_id=account_id,
                failed=result.failed,
                first_error=result.first_error(),
            )
            await self._alert(name, account_id, result=result)

    async def _alert(
        self,
        name: str | None,
        account_id: str,
        error: Exception | None = None,
        result: ReplyRunResult | None = None,
    ) -> None:
        try:
            await self.alert_service.send_failure_alert(
                tenant_name=name, account_id=account_id, error=error, result=result
            )
        except Exception as e:
            logger.error("Failure alert raised", account_id=account_id, error=str(e))

    def get_job_status(self) -> dict[str, Any]:
        return {
            "job_name": JOB_NAME,
            "enabled": self.config.AUTO_REPLY_ENABLED,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": max(1, self.config.AUTO_REPLY_INTERVAL_MINUTES),
            "tracked_tenants": len(self.last_run_by_tenant),
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


_auto_reply_job: AutoReplyJob | None = None


def get_auto_reply_job() -> AutoReplyJob:
    """Process-wide job instance wired to the active store."""
    global _auto_reply_job
    if _auto_reply_job is None:
        from reviewreply.services.wiring import build_auto_reply_job

        _auto_reply_job = build_auto_reply_job()
    return _auto_reply_job


async def start_auto_reply_scheduler(
    job: AutoReplyJob | None = None, config: Settings | None = None
) -> None:
    """Run the auto-reply tick forever. Returns immediately when disabled."""
    config = config or settings
    if not config.AUTO_REPLY_ENABLED:
        logger.info("Auto-reply scheduler disabled (set AUTO_REPLY_ENABLED=true to enable)")
        return

    job = job or get_auto_reply_job()
    interval_seconds = config.auto_reply_interval_seconds()
    logger.info("Starting auto-reply scheduler", interval_minutes=interval_seconds // 60)

    while True:
        try:
            metrics = await job.run_once()
            if not metrics.get("skipped", False):
                log_job_summary(JOB_NAME, metrics)

            await asyncio.sleep(interval_seconds)

        except Exception as e:
            logger.error(
                "Error in auto-reply scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(min(ERROR_BACKOFF_SECONDS, interval_seconds))
