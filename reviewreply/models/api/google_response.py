# reviewreply/models/api/google_response.py
"""
Google connection API response models.
"""

from pydantic import BaseModel


class GoogleConnectResponse(BaseModel):
    ok: bool = True
    message: str = "Google connected"
    account_id: str
    location_id: str | None = None
    business_name: str | None = None


class GoogleTokenStatusResponse(BaseModel):
    account_id: str | None
    connected: bool
    scope: str | None = None
    expiry_date: int | None = None
    account_ids: list[str]
