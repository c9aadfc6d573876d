"""
Postgres-backed store. Used whenever DATABASE_URL is set.

Implements both Store and CampaignStore on top of the shared connection pool.
"""

from datetime import UTC, date, datetime
from typing import Any

from psycopg.types.json import Jsonb

from reviewreply.config import settings
from reviewreply.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from reviewreply.db.pool import db_pool, get_db_transaction
from reviewreply.db.schema import init_schema
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.campaign_domain import (
    DEFAULT_SEND_DAYS_BEFORE,
    BirthdaySettings,
    ContactCounts,
    ContactRow,
    EventCampaign,
    EventCampaignStatus,
    OneOffCampaign,
    ProContact,
)
from reviewreply.models.domain.tenant_domain import Tenant, TenantUpdate, merge_tenant
from reviewreply.repositories.base import (
    CampaignStore,
    Store,
    clamp_page,
    normalize_contact_rows,
)

logger = get_logger(__name__)

TENANT_COLUMNS = """
    account_id, location_id, name, contact, auto_reply_enabled, interval_minutes,
    free_reply_used, trial_ends_at, subscribed_at, stripe_customer_id, is_pro, updated_at
"""

EVENT_COLUMNS = """
    account_id, event_key, event_year, status, message_text, offer_text,
    send_days_before, confirmed_at, sent_at
"""

ONE_OFF_COLUMNS = "id, account_id, send_date, subject, body, status, created_at"


def _tenant_from_row(row: dict[str, Any]) -> Tenant:
    data = {k: v for k, v in row.items() if v is not None}
    return Tenant.model_validate(data)


def _event_from_row(row: dict[str, Any]) -> EventCampaign:
    return EventCampaign(
        account_id=row["account_id"],
        event_key=row["event_key"],
        event_year=row["event_year"],
        status=row.get("status") or "pending",
        message_text=row.get("message_text") or "",
        offer_text=row.get("offer_text") or "",
        send_days_before=(
            row["send_days_before"]
            if row.get("send_days_before") is not None
            else DEFAULT_SEND_DAYS_BEFORE
        ),
        confirmed_at=row.get("confirmed_at"),
        sent_at=row.get("sent_at"),
    )


class PostgresStore(Store, CampaignStore):
    backend = "postgres"

    def __init__(self, trial_days: int | None = None):
        self.trial_days = trial_days if trial_days is not None else settings.TRIAL_DAYS

    async def initialize(self) -> None:
        if not db_pool.initialized:
            await db_pool.initialize()
        await init_schema()

    async def close(self) -> None:
        await db_pool.close()

    # --- Tenants ---

    @with_db_retry()
    async def get_tenant(self, account_id: str) -> Tenant | None:
        row = await fetch_one(
            f"SELECT {TENANT_COLUMNS} FROM businesses WHERE account_id = %s", (account_id,)
        )
        return _tenant_from_row(row) if row else None

    @with_db_retry()
    async def get_all_tenants(self) -> list[Tenant]:
        rows = await fetch_all(f"SELECT {TENANT_COLUMNS} FROM businesses ORDER BY account_id")
        return [_tenant_from_row(row) for row in rows]

    @with_db_retry()
    async def upsert_tenant(self, update: TenantUpdate, now: datetime | None = None) -> Tenant:
        now = now or datetime.now(UTC)

        async with await get_db_transaction() as conn:
            row = await fetch_one(
                f"SELECT {TENANT_COLUMNS} FROM businesses WHERE account_id = %s FOR UPDATE",
                (update.account_id,),
                connection=conn,
            )
            existing = _tenant_from_row(row) if row else None
            merged = merge_tenant(existing, update, now, self.trial_days)

            await execute_query(
                """
                INSERT INTO businesses (
                    account_id, location_id, name, contact, auto_reply_enabled,
                    interval_minutes, free_reply_used, trial_ends_at, subscribed_at,
                    stripe_customer_id, is_pro, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (account_id) DO UPDATE SET
                    location_id = EXCLUDED.location_id,
                    name = EXCLUDED.name,
                    contact = EXCLUDED.contact,
                    auto_reply_enabled = EXCLUDED.auto_reply_enabled,
                    interval_minutes = EXCLUDED.interval_minutes,
                    free_reply_used = EXCLUDED.free_reply_used,
                    trial_ends_at = EXCLUDED.trial_ends_at,
                    subscribed_at = EXCLUDED.subscribed_at,
                    stripe_customer_id = EXCLUDED.stripe_customer_id,
                    is_pro = EXCLUDED.is_pro,
                    updated_at = EXCLUDED.updated_at
                """,
                (
                    merged.account_id,
                    merged.location_id,
                    merged.name,
                    merged.contact,
                    merged.auto_reply_enabled,
                    merged.interval_minutes,
                    merged.free_reply_used,
                    merged.trial_ends_at,
                    merged.subscribed_at,
                    merged.stripe_customer_id,
                    merged.is_pro,
                    merged.updated_at,
                ),
                connection=conn,
            )

        logger.debug("Tenant upserted", account_id=merged.account_id, backend=self.backend)
        return merged

    # --- Reply state ---

    @with_db_retry()
    async def get_replied_review_ids(self, account_id: str, location_id: str) -> set[str]:
        row = await fetch_one(
            """
            SELECT replied_review_ids FROM auto_state
            WHERE account_id = %s AND location_id = %s
            """,
            (account_id, location_id),
        )
        ids = row["replied_review_ids"] if row else None
        return set(ids) if isinstance(ids, list) else set()

    @with_db_retry()
    async def save_replied_review_ids(
        self, account_id: str, location_id: str, review_ids: set[str]
    ) -> None:
        await execute_query(
            """
            INSERT INTO auto_state (account_id, location_id, replied_review_ids)
            VALUES (%s, %s, %s)
            ON CONFLICT (account_id, location_id) DO UPDATE SET
                replied_review_ids = (
                    SELECT COALESCE(jsonb_agg(DISTINCT ids.review_id ORDER BY ids.review_id), '[]'::jsonb)
                    FROM jsonb_array_elements_text(
                        auto_state.replied_review_ids || EXCLUDED.replied_review_ids
                    ) AS ids(review_id)
                )
            """,
            (account_id, location_id, Jsonb(sorted(review_ids))),
        )

    @with_db_retry()
    async def add_replied_review_id(self, account_id: str, location_id: str, review_id: str) -> None:
        # Atomic append, no read-modify-write
        await execute_query(
            """
            INSERT INTO auto_state (account_id, location_id, replied_review_ids)
            VALUES (%s, %s, %s)
            ON CONFLICT (account_id, location_id) DO UPDATE SET
                replied_review_ids = CASE
                    WHEN auto_state.replied_review_ids @> EXCLUDED.replied_review_ids
                        THEN auto_state.replied_review_ids
                    ELSE auto_state.replied_review_ids || EXCLUDED.replied_review_ids
                END
            """,
            (account_id, location_id, Jsonb([review_id])),
        )

    # --- Contacts ---

    @with_db_retry()
    async def replace_contacts(self, account_id: str, rows: list[ContactRow]) -> ContactCounts:
        with_email, without_email = normalize_contact_rows(rows)
        now = datetime.now(UTC)

        async with await get_db_transaction() as conn:
            previous = await fetch_all(
                """
                SELECT LOWER(email) AS email, unsubscribed_at FROM pro_contacts
                WHERE account_id = %s AND email IS NOT NULL AND unsubscribed_at IS NOT NULL
                """,
                (account_id,),
                connection=conn,
            )
            unsubscribed = {row["email"]: row["unsubscribed_at"] for row in previous}

            await execute_query(
                "DELETE FROM pro_contacts WHERE account_id = %s", (account_id,), connection=conn
            )

            payload = [
                (
                    account_id,
                    row.email,
                    row.first_name,
                    row.birthday,
                    row.phone,
                    unsubscribed.get(row.email) if row.email else None,
                    now,
                )
                for row in with_email + without_email
            ]
            if payload:
                async with conn.cursor() as cur:
                    await cur.executemany(
                        """
                        INSERT INTO pro_contacts (
                            account_id, email, first_name, birthday, phone,
                            unsubscribed_at, created_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        """,
                        payload,
                    )

        logger.info(
            "Contacts replaced",
            account_id=account_id,
            total=len(payload),
            carried_unsubscribes=sum(1 for p in payload if p[5] is not None),
        )
        return await self.count_contacts(account_id)

    @with_db_retry()
    async def get_sendable_contacts(self, account_id: str) -> list[ProContact]:
        rows = await fetch_all(
            """
            SELECT id, email, first_name, birthday, phone, unsubscribed_at FROM pro_contacts
            WHERE account_id = %s AND email IS NOT NULL AND unsubscribed_at IS NULL
            ORDER BY id
            """,
            (account_id,),
        )
        return [ProContact.model_validate(row) for row in rows]

    @with_db_retry()
    async def list_contacts(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> list[ProContact]:
        limit, offset = clamp_page(limit, offset)
        rows = await fetch_all(
            """
            SELECT id, email, first_name, birthday, phone, unsubscribed_at FROM pro_contacts
            WHERE account_id = %s ORDER BY id LIMIT %s OFFSET %s
            """,
            (account_id, limit, offset),
        )
        return [ProContact.model_validate(row) for row in rows]

    @with_db_retry()
    async def count_contacts(self, account_id: str) -> ContactCounts:
        row = await fetch_one(
            """
            SELECT COUNT(*) AS total,
                   COUNT(*) FILTER (WHERE email IS NOT NULL) AS with_email,
                   COUNT(*) FILTER (
                       WHERE email IS NOT NULL AND unsubscribed_at IS NOT NULL
                   ) AS unsubscribed
            FROM pro_contacts WHERE account_id = %s
            """,
            (account_id,),
        )
        row = row or {}
        return ContactCounts(
            total=int(row.get("total") or 0),
            with_email=int(row.get("with_email") or 0),
            unsubscribed=int(row.get("unsubscribed") or 0),
        )

    @with_db_retry()
    async def set_contact_unsubscribed(
        self, account_id: str, email: str, now: datetime | None = None
    ) -> bool:
        if not (email or "").strip():
            return False
        updated = await execute_query(
            """
            UPDATE pro_contacts SET unsubscribed_at = %s
            WHERE account_id = %s AND LOWER(TRIM(email)) = LOWER(TRIM(%s))
            """,
            (now or datetime.now(UTC), account_id, email),
        )
        return updated > 0

    # --- OAuth tokens ---

    @with_db_retry()
    async def get_token(self, account_id: str) -> dict[str, Any] | None:
        row = await fetch_one("SELECT data FROM tokens WHERE account_id = %s", (account_id,))
        data = row["data"] if row else None
        return data if isinstance(data, dict) else None

    @with_db_retry()
    async def save_token(self, account_id: str, data: dict[str, Any]) -> None:
        await execute_query(
            """
            INSERT INTO tokens (account_id, data) VALUES (%s, %s)
            ON CONFLICT (account_id) DO UPDATE SET data = EXCLUDED.data
            """,
            (account_id, Jsonb(data)),
        )

    @with_db_retry()
    async def list_token_account_ids(self) -> list[str]:
        rows = await fetch_all(
            """
            SELECT account_id FROM tokens
            WHERE data ->> 'access_token' IS NOT NULL OR data ->> 'refresh_token' IS NOT NULL
            ORDER BY account_id
            """
        )
        return [row["account_id"] for row in rows]

    # --- Birthday settings ---

    @with_db_retry()
    async def get_birthday_settings(self, account_id: str) -> BirthdaySettings | None:
        row = await fetch_one(
            """
            SELECT enabled, message_text, offer_text, updated_at
            FROM pro_birthday_settings WHERE account_id = %s
            """,
            (account_id,),
        )
        if not row:
            return None
        return BirthdaySettings(
            enabled=bool(row.get("enabled")),
            message_text=row.get("message_text") or "",
            offer_text=row.get("offer_text") or "",
            updated_at=row.get("updated_at"),
        )

    @with_db_retry()
    async def save_birthday_settings(
        self, account_id: str, birthday_settings: BirthdaySettings
    ) -> BirthdaySettings:
        row = await fetch_one(
            """
            INSERT INTO pro_birthday_settings (account_id, enabled, message_text, offer_text, updated_at)
            VALUES (%s, %s, %s, %s, NOW())
            ON CONFLICT (account_id) DO UPDATE SET
                enabled = EXCLUDED.enabled,
                message_text = EXCLUDED.message_text,
                offer_text = EXCLUDED.offer_text,
                updated_at = NOW()
            RETURNING enabled, message_text, offer_text, updated_at
            """,
            (
                account_id,
                birthday_settings.enabled,
                birthday_settings.message_text,
                birthday_settings.offer_text,
            ),
        )
        return BirthdaySettings.model_validate(row)

    # --- Event campaigns ---

    @with_db_retry()
    async def get_event_campaign(
        self, account_id: str, event_key: str, event_year: int
    ) -> EventCampaign | None:
        row = await fetch_one(
            f"""
            SELECT {EVENT_COLUMNS} FROM pro_event_campaigns
            WHERE account_id = %s AND event_key = %s AND event_year = %s
            """,
            (account_id, event_key, event_year),
        )
        return _event_from_row(row) if row else None

    @with_db_retry()
    async def save_event_campaign(
        self, campaign: EventCampaign, from_statuses: tuple[EventCampaignStatus, ...]
    ) -> EventCampaign | None:
        row = await fetch_one(
            f"""
            INSERT INTO pro_event_campaigns ({EVENT_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (account_id, event_key, event_year) DO UPDATE SET
                status = EXCLUDED.status,
                message_text = EXCLUDED.message_text,
                offer_text = EXCLUDED.offer_text,
                send_days_before = EXCLUDED.send_days_before,
                confirmed_at = EXCLUDED.confirmed_at,
                sent_at = EXCLUDED.sent_at
            WHERE pro_event_campaigns.status = ANY(%s)
            RETURNING {EVENT_COLUMNS}
            """,
            (
                campaign.account_id,
                campaign.event_key,
                campaign.event_year,
                campaign.status.value,
                campaign.message_text,
                campaign.offer_text,
                campaign.send_days_before,
                campaign.confirmed_at,
                campaign.sent_at,
                [status.value for status in from_statuses],
            ),
        )
        return _event_from_row(row) if row else None

    @with_db_retry()
    async def list_event_campaigns(self, account_id: str) -> list[EventCampaign]:
        rows = await fetch_all(
            f"""
            SELECT {EVENT_COLUMNS} FROM pro_event_campaigns
            WHERE account_id = %s ORDER BY event_year, event_key
            """,
            (account_id,),
        )
        return [_event_from_row(row) for row in rows]

    @with_db_retry()
    async def list_event_campaigns_awaiting_send(self) -> list[EventCampaign]:
        rows = await fetch_all(
            f"""
            SELECT {EVENT_COLUMNS} FROM pro_event_campaigns
            WHERE status = 'confirmed' AND sent_at IS NULL
            """
        )
        return [_event_from_row(row) for row in rows]

    @with_db_retry()
    async def mark_event_campaign_sent(
        self, account_id: str, event_key: str, event_year: int, now: datetime | None = None
    ) -> None:
        await execute_query(
            """
            UPDATE pro_event_campaigns SET sent_at = %s, status = 'sent'
            WHERE account_id = %s AND event_key = %s AND event_year = %s
            """,
            (now or datetime.now(UTC), account_id, event_key, event_year),
        )

    # --- One-off campaigns ---

    @with_db_retry()
    async def create_one_off_campaign(
        self, account_id: str, send_date: date, subject: str, body: str
    ) -> OneOffCampaign:
        row = await fetch_one(
            f"""
            INSERT INTO pro_one_off_campaigns (account_id, send_date, subject, body, status)
            VALUES (%s, %s, %s, %s, 'scheduled')
            RETURNING {ONE_OFF_COLUMNS}
            """,
            (account_id, send_date, subject, body),
        )
        return OneOffCampaign.model_validate(row)

    @with_db_retry()
    async def list_one_off_campaigns(self, account_id: str) -> list[OneOffCampaign]:
        rows = await fetch_all(
            f"""
            SELECT {ONE_OFF_COLUMNS} FROM pro_one_off_campaigns
            WHERE account_id = %s ORDER BY send_date, id
            """,
            (account_id,),
        )
        return [OneOffCampaign.model_validate(row) for row in rows]

    @with_db_retry()
    async def list_one_off_campaigns_due(self, today: date) -> list[OneOffCampaign]:
        rows = await fetch_all(
            f"""
            SELECT {ONE_OFF_COLUMNS} FROM pro_one_off_campaigns
            WHERE status = 'scheduled' AND send_date <= %s
            ORDER BY send_date, id
            """,
            (today,),
        )
        return [OneOffCampaign.model_validate(row) for row in rows]

    @with_db_retry()
    async def mark_one_off_campaign_sent(self, campaign_id: int) -> None:
        await execute_query(
            "UPDATE pro_one_off_campaigns SET status = 'sent' WHERE id = %s", (campaign_id,)
        )
