"""
Idempotent schema bootstrap for the Postgres backend.
Run once at startup when DATABASE_URL is configured.
"""

from reviewreply.db.helpers import execute_query
from reviewreply.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS tokens (
        account_id TEXT PRIMARY KEY,
        data JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS businesses (
        account_id TEXT PRIMARY KEY,
        location_id TEXT NOT NULL,
        name TEXT,
        contact TEXT,
        auto_reply_enabled BOOLEAN NOT NULL DEFAULT false,
        interval_minutes INTEGER NOT NULL DEFAULT 30,
        free_reply_used BOOLEAN NOT NULL DEFAULT false,
        trial_ends_at TIMESTAMPTZ,
        subscribed_at TIMESTAMPTZ,
        stripe_customer_id TEXT,
        is_pro BOOLEAN NOT NULL DEFAULT false,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auto_state (
        account_id TEXT NOT NULL,
        location_id TEXT NOT NULL,
        replied_review_ids JSONB NOT NULL DEFAULT '[]',
        PRIMARY KEY (account_id, location_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pro_contacts (
        id BIGSERIAL PRIMARY KEY,
        account_id TEXT NOT NULL,
        email TEXT,
        first_name TEXT,
        birthday TEXT,
        phone TEXT,
        unsubscribed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_pro_contacts_account ON pro_contacts(account_id)",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_pro_contacts_account_email
    ON pro_contacts(account_id, email) WHERE email IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS pro_birthday_settings (
        account_id TEXT PRIMARY KEY,
        enabled BOOLEAN NOT NULL DEFAULT false,
        message_text TEXT,
        offer_text TEXT,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pro_event_campaigns (
        account_id TEXT NOT NULL,
        event_key TEXT NOT NULL,
        event_year INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        message_text TEXT,
        offer_text TEXT,
        send_days_before INTEGER NOT NULL DEFAULT 14,
        confirmed_at TIMESTAMPTZ,
        sent_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (account_id, event_key, event_year)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pro_one_off_campaigns (
        id SERIAL PRIMARY KEY,
        account_id TEXT NOT NULL,
        send_date DATE NOT NULL,
        subject TEXT NOT NULL,
        body TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_pro_one_off_account_date
    ON pro_one_off_campaigns(account_id, send_date)
    """,
]


async def init_schema() -> None:
    """Create every table and index if missing."""
    for statement in SCHEMA_STATEMENTS:
        await execute_query(statement)

    logger.info("Database schema ready", statements=len(SCHEMA_STATEMENTS))
