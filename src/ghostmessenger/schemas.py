"""Persisted-session and thread-list models."""
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field


# ── Persistence ──────────────────────────────────────────────────────

class CookieRecord(BaseModel):
    name: str
    value: str
    domain: str = ".messenger.com"
    path: str = "/"
    expires: Optional[int] = None  # unix seconds; None for session cookies
    secure: bool = True
    http_only: bool = False


class SessionRecord(BaseModel):
    """JSON form of a SessionState plus the cookie jar."""
    version: int = 1
    cookies: list[CookieRecord] = []
    user_id: str
    name: str = ""
    short_name: str = ""
    token: str
    sprinkle_name: str
    site_data: dict[str, str]
    flags: list[int] = []
    dyn: str = ""
    doc_ids: dict[str, str] = {}
    session_cookie: Optional[str] = None
    request: int = 0


# ── Thread list ──────────────────────────────────────────────────────

class User(BaseModel):
    id: str
    name: str = ""
    short_name: str = ""
    username: str = ""
    gender: str = "NEUTER"


class LastMessage(BaseModel):
    sender: str = ""
    snippet: str = ""
    time: Optional[datetime] = None


class Thread(BaseModel):
    id: str
    name: str = ""
    type: str = "UNKNOWN"  # GROUP / ONE_TO_ONE
    participants: list[str] = []
    nicknames: dict[str, str] = Field(default_factory=dict)
    unread_count: int = 0
    message_count: int = 0
    updated: Optional[datetime] = None
    last_message: Optional[LastMessage] = None


def precise_time(value: Optional[str]) -> Optional[datetime]:
    """Parse the API's millisecond timestamps ("1700000000123")."""
    if not value or len(value) < 3 or not value.isdigit():
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
