"""
Tenant eligibility and trial rules on top of the tenant store.
"""

from datetime import UTC, datetime, timedelta

from reviewreply.config import Settings, settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.tenant_domain import Tenant, TenantUpdate
from reviewreply.repositories.base import Store

logger = get_logger(__name__)


class TenantServiceError(Exception):
    """Raised when a tenant change is not allowed."""

    def __init__(self, message: str, status_code: int = 400, operation: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


class TenantNotFoundError(TenantServiceError):
    def __init__(self, account_id: str):
        super().__init__(f"Tenant not found: {account_id}", status_code=404, operation="lookup")
        self.account_id = account_id


class TenantService:
    def __init__(self, store: Store, config: Settings | None = None):
        self.store = store
        self.config = config or settings

    async def get_tenant(self, account_id: str) -> Tenant:
        tenant = await self.store.get_tenant(account_id)
        if tenant is None:
            raise TenantNotFoundError(account_id)
        return tenant

    async def list_tenants(self) -> list[Tenant]:
        return await self.store.get_all_tenants()

    async def get_eligible_tenants(self, now: datetime | None = None) -> list[Tenant]:
        """Tenants with auto-reply on, a location, and an active trial or subscription."""
        now = now or datetime.now(UTC)
        tenants = await self.store.get_all_tenants()
        return [t for t in tenants if t.is_eligible_for_auto_reply(now)]

    async def enforce_trial_state(self, tenant: Tenant, now: datetime | None = None) -> Tenant:
        """
        Correct a tenant record when it is read for display.

        A tenant without a trial end gets one; a tenant whose trial lapsed
        without a subscription has auto-reply switched off. Only writes when
        something changed.
        """
        now = now or datetime.now(UTC)
        update = TenantUpdate(account_id=tenant.account_id)
        changed = False

        if tenant.trial_ends_at is None and not tenant.is_subscribed:
            update.trial_ends_at = now + timedelta(days=self.config.TRIAL_DAYS)
            changed = True

        effective = tenant.model_copy(
            update={"trial_ends_at": update.trial_ends_at or tenant.trial_ends_at}
        )
        if tenant.auto_reply_enabled and not effective.can_auto_reply(now):
            update.auto_reply_enabled = False
            changed = True

        if not changed:
            return tenant

        logger.info(
            "Tenant trial state corrected",
            account_id=tenant.account_id,
            backfilled_trial=update.trial_ends_at is not None,
            disabled_auto_reply=update.auto_reply_enabled is False,
        )
        return await self.store.upsert_tenant(update, now=now)

    async def set_auto_reply(
        self, account_id: str, enabled: bool, now: datetime | None = None
    ) -> Tenant:
        now = now or datetime.now(UTC)
        tenant = await self.get_tenant(account_id)

        if enabled and not tenant.can_auto_reply(now):
            raise TenantServiceError(
                "Free trial has ended. Subscribe to turn auto-reply back on.",
                status_code=402,
                operation="set_auto_reply",
            )

        return await self.store.upsert_tenant(
            TenantUpdate(account_id=account_id, auto_reply_enabled=enabled), now=now
        )

    async def update_settings(
        self,
        account_id: str,
        contact: str | None = None,
        interval_minutes: int | None = None,
        auto_reply_enabled: bool | None = None,
        now: datetime | None = None,
    ) -> Tenant:
        now = now or datetime.now(UTC)
        await self.get_tenant(account_id)

        if interval_minutes is not None and interval_minutes < 1:
            raise TenantServiceError("interval_minutes must be at least 1", operation="update_settings")

        if auto_reply_enabled is not None:
            await self.set_auto_reply(account_id, auto_reply_enabled, now=now)

        if contact is None and interval_minutes is None:
            return await self.get_tenant(account_id)

        return await self.store.upsert_tenant(
            TenantUpdate(account_id=account_id, contact=contact, interval_minutes=interval_minutes),
            now=now,
        )
