"""
Backend selection. DATABASE_URL picks Postgres; otherwise JSON files.

The choice is made once per process. Tests swap the store with set_store().
"""

from reviewreply.config import settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.repositories.base import CampaignStore, Store

logger = get_logger(__name__)

_store: Store | None = None


def build_store() -> Store:
    if settings.use_database():
        from reviewreply.repositories.postgres_store import PostgresStore

        return PostgresStore()

    from reviewreply.repositories.json_store import JsonFileStore

    return JsonFileStore()


def get_store() -> Store:
    global _store
    if _store is None:
        _store = build_store()
        logger.info("Storage backend selected", backend=_store.backend)
    return _store


def set_store(store: Store | None) -> None:
    global _store
    _store = store


def get_campaign_store() -> CampaignStore | None:
    """The campaign store, or None when the backend has no campaign tables."""
    store = get_store()
    return store if isinstance(store, CampaignStore) else None
