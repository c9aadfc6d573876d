"""
Pro contact list: CSV upload parsing and list management.
"""

import csv
import io
from datetime import UTC, datetime

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.domain.campaign_domain import ContactCounts, ContactRow, ProContact
from reviewreply.repositories.base import Store

logger = get_logger(__name__)

MAX_CSV_BYTES = 5 * 1024 * 1024
CONTACT_COLUMNS = ("email", "first_name", "birthday", "phone")


class ContactImportError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def parse_contacts_csv(data: bytes | str) -> list[ContactRow]:
    """
    Parse an uploaded CSV with a header row.

    Recognised columns are email, first_name, birthday and phone (header
    names are matched case-insensitively after trimming). Other columns are
    ignored. Blank lines are skipped.
    """
    if isinstance(data, bytes):
        if len(data) > MAX_CSV_BYTES:
            raise ContactImportError("CSV file too large (max 5 MB)", status_code=413)
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ContactImportError("CSV must be UTF-8 encoded") from e
    else:
        text = data.lstrip("\ufeff")
        if len(text.encode("utf-8")) > MAX_CSV_BYTES:
            raise ContactImportError("CSV file too large (max 5 MB)", status_code=413)

    reader = csv.reader(io.StringIO(text))
    try:
        header = next(reader)
    except StopIteration:
        raise ContactImportError("CSV is empty") from None

    columns = {name.strip().lower(): index for index, name in enumerate(header)}
    if not any(name in columns for name in CONTACT_COLUMNS):
        raise ContactImportError(
            "CSV header must include at least one of: " + ", ".join(CONTACT_COLUMNS)
        )

    rows = []
    try:
        for record in reader:
            if not any(cell.strip() for cell in record):
                continue
            values = {}
            for name in CONTACT_COLUMNS:
                index = columns.get(name)
                if index is not None and index < len(record):
                    values[name] = record[index].strip() or None
            rows.append(ContactRow(**values))
    except csv.Error as e:
        raise ContactImportError(f"Malformed CSV: {e}") from e

    return rows


class ContactService:
    def __init__(self, store: Store):
        self.store = store

    async def import_csv(self, account_id: str, data: bytes | str) -> ContactCounts:
        rows = parse_contacts_csv(data)
        counts = await self.store.replace_contacts(account_id, rows)
        logger.info(
            "Contact list imported",
            account_id=account_id,
            rows=len(rows),
            total=counts.total,
            with_email=counts.with_email,
            unsubscribed=counts.unsubscribed,
        )
        return counts

    async def list_contacts(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> tuple[list[ProContact], ContactCounts]:
        contacts = await self.store.list_contacts(account_id, limit=limit, offset=offset)
        counts = await self.store.count_contacts(account_id)
        return contacts, counts

    async def unsubscribe(self, account_id: str, email: str) -> bool:
        updated = await self.store.set_contact_unsubscribed(
            account_id, email, now=datetime.now(UTC)
        )
        logger.info("Contact unsubscribed", account_id=account_id, matched=updated)
        return updated
