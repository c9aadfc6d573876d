"""
JSON-file store used when no DATABASE_URL is configured.

Each concern lives in its own file under DATA_DIR:
    businesses.json    {account_id: tenant}
    auto-state.json    {"account/location": {"replied_review_ids": [...]}}
    pro-contacts.json  {account_id: [contact, ...]}
    tokens.json        {account_id: token}

A missing or unreadable file reads as empty. Read-modify-write cycles on the
same file are serialized through one asyncio.Lock per file.
"""

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from reviewreply.config import settings
from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.campaign_domain import ContactCounts, ContactRow, ProContact
from reviewreply.models.domain.tenant_domain import Tenant, TenantUpdate, merge_tenant
from reviewreply.repositories.base import Store, StoreError, clamp_page, normalize_contact_rows

logger = get_logger(__name__)

BUSINESSES_FILE = "businesses.json"
AUTO_STATE_FILE = "auto-state.json"
CONTACTS_FILE = "pro-contacts.json"
TOKENS_FILE = "tokens.json"


def _state_key(account_id: str, location_id: str) -> str:
    return f"{account_id}/{location_id}"


class JsonFileStore(Store):
    backend = "json"

    def __init__(self, data_dir: str | Path | None = None, trial_days: int | None = None):
        self.data_dir = Path(data_dir if data_dir is not None else settings.DATA_DIR)
        self.trial_days = trial_days if trial_days is not None else settings.TRIAL_DAYS
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, filename: str) -> asyncio.Lock:
        if filename not in self._locks:
            self._locks[filename] = asyncio.Lock()
        return self._locks[filename]

    def _read_sync(self, filename: str) -> dict[str, Any]:
        path = self.data_dir / filename
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable store file, treating as empty", file=str(path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write_sync(self, filename: str, data: dict[str, Any]) -> None:
        path = self.data_dir / filename
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(path)
        except OSError as e:
            logger.error("Failed to write store file", file=str(path), error=str(e))
            raise StoreError(f"Could not write {filename}: {e}", operation="write") from e

    async def _read(self, filename: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, filename)

    async def _write(self, filename: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, filename, data)

    # --- Tenants ---

    @staticmethod
    def _parse_tenant(account_id: str, raw: Any) -> Tenant | None:
        if not isinstance(raw, dict):
            return None
        try:
            return Tenant.model_validate({**raw, "account_id": account_id})
        except ValueError as e:
            logger.warning("Skipping malformed tenant record", account_id=account_id, error=str(e))
            return None

    async def get_tenant(self, account_id: str) -> Tenant | None:
        data = await self._read(BUSINESSES_FILE)
        if account_id not in data:
            return None
        return self._parse_tenant(account_id, data[account_id])

    async def get_all_tenants(self) -> list[Tenant]:
        data = await self._read(BUSINESSES_FILE)
        tenants = []
        for account_id, raw in data.items():
            tenant = self._parse_tenant(account_id, raw)
            if tenant:
                tenants.append(tenant)
        return tenants

    async def upsert_tenant(self, update: TenantUpdate, now: datetime | None = None) -> Tenant:
        now = now or datetime.now(UTC)
        async with self._lock(BUSINESSES_FILE):
            data = await self._read(BUSINESSES_FILE)
            existing = self._parse_tenant(update.account_id, data.get(update.account_id))
            merged = merge_tenant(existing, update, now, self.trial_days)
            data[update.account_id] = merged.model_dump(mode="json")
            await self._write(BUSINESSES_FILE, data)

        logger.debug("Tenant upserted", account_id=update.account_id, backend=self.backend)
        return merged

    # --- Reply state ---

    async def get_replied_review_ids(self, account_id: str, location_id: str) -> set[str]:
        data = await self._read(AUTO_STATE_FILE)
        entry = data.get(_state_key(account_id, location_id)) or {}
        return set(entry.get("replied_review_ids") or [])

    async def save_replied_review_ids(
        self, account_id: str, location_id: str, review_ids: set[str]
    ) -> None:
        async with self._lock(AUTO_STATE_FILE):
            data = await self._read(AUTO_STATE_FILE)
            key = _state_key(account_id, location_id)
            stored = set((data.get(key) or {}).get("replied_review_ids") or [])
            data[key] = {"replied_review_ids": sorted(stored | set(review_ids))}
            await self._write(AUTO_STATE_FILE, data)

    async def add_replied_review_id(self, account_id: str, location_id: str, review_id: str) -> None:
        async with self._lock(AUTO_STATE_FILE):
            data = await self._read(AUTO_STATE_FILE)
            key = _state_key(account_id, location_id)
            ids = set((data.get(key) or {}).get("replied_review_ids") or [])
            ids.add(review_id)
            data[key] = {"replied_review_ids": sorted(ids)}
            await self._write(AUTO_STATE_FILE, data)

    # --- Contacts ---

    async def _load_contacts(self, account_id: str) -> list[ProContact]:
        data = await self._read(CONTACTS_FILE)
        contacts = []
        for index, raw in enumerate(data.get(account_id) or []):
            if isinstance(raw, dict):
                contacts.append(ProContact.model_validate({**raw, "id": index + 1}))
        return contacts

    async def replace_contacts(self, account_id: str, rows: list[ContactRow]) -> ContactCounts:
        with_email, without_email = normalize_contact_rows(rows)

        async with self._lock(CONTACTS_FILE):
            data = await self._read(CONTACTS_FILE)
            previous = {}
            for raw in data.get(account_id) or []:
                if isinstance(raw, dict) and raw.get("email") and raw.get("unsubscribed_at"):
                    previous[str(raw["email"]).lower()] = raw["unsubscribed_at"]

            stored = []
            for row in with_email + without_email:
                unsubscribed_at = previous.get(row.email) if row.email else None
                stored.append({**row.model_dump(), "unsubscribed_at": unsubscribed_at})

            data[account_id] = stored
            await self._write(CONTACTS_FILE, data)

        logger.info(
            "Contacts replaced",
            account_id=account_id,
            total=len(stored),
            carried_unsubscribes=sum(1 for c in stored if c["unsubscribed_at"]),
        )
        return await self.count_contacts(account_id)

    async def get_sendable_contacts(self, account_id: str) -> list[ProContact]:
        return [c for c in await self._load_contacts(account_id) if c.is_sendable]

    async def list_contacts(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> list[ProContact]:
        limit, offset = clamp_page(limit, offset)
        return (await self._load_contacts(account_id))[offset : offset + limit]

    async def count_contacts(self, account_id: str) -> ContactCounts:
        contacts = await self._load_contacts(account_id)
        return ContactCounts(
            total=len(contacts),
            with_email=sum(1 for c in contacts if c.email),
            unsubscribed=sum(1 for c in contacts if c.unsubscribed_at is not None),
        )

    async def set_contact_unsubscribed(
        self, account_id: str, email: str, now: datetime | None = None
    ) -> bool:
        target = (email or "").strip().lower()
        if not target:
            return False
        now = now or datetime.now(UTC)

        async with self._lock(CONTACTS_FILE):
            data = await self._read(CONTACTS_FILE)
            updated = False
            for raw in data.get(account_id) or []:
                if isinstance(raw, dict) and str(raw.get("email") or "").lower() == target:
                    raw["unsubscribed_at"] = now.isoformat()
                    updated = True
            if updated:
                await self._write(CONTACTS_FILE, data)

        return updated

    # --- OAuth tokens ---

    async def get_token(self, account_id: str) -> dict[str, Any] | None:
        data = await self._read(TOKENS_FILE)
        token = data.get(account_id)
        return token if isinstance(token, dict) else None

    async def save_token(self, account_id: str, data: dict[str, Any]) -> None:
        async with self._lock(TOKENS_FILE):
            tokens = await self._read(TOKENS_FILE)
            tokens[account_id] = data
            await self._write(TOKENS_FILE, tokens)

    async def list_token_account_ids(self) -> list[str]:
        tokens = await self._read(TOKENS_FILE)
        return sorted(
            account_id
            for account_id, token in tokens.items()
            if isinstance(token, dict) and (token.get("access_token") or token.get("refresh_token"))
        )
