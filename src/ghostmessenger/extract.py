"""
The bridge-function vocabulary and the recorder behind it.

Sandboxed scripts report session facts by calling these globals:

    setUserData(id, name, shortName)
    setAuthToken(token)
    setSiteData(key1, val1, key2, val2)
    setSprinkleName(name)
    setFeatureFlag(index)
    setResource(key, url)
    setDocumentID(key, id)
    setSessionCookie(value)

Arguments are coerced best effort and never rejected: a garbage value is
recorded as garbage. What the recorder does track is which facts were
reported, so a finished pass can be checked for missing ones.
"""
import json
from typing import Callable, Optional

from .errors import MissingRequiredFact
from .rle import Bitmap

SET_USER_DATA = "setUserData"
SET_AUTH_TOKEN = "setAuthToken"
SET_SITE_DATA = "setSiteData"
SET_SPRINKLE_NAME = "setSprinkleName"
SET_FEATURE_FLAG = "setFeatureFlag"
SET_RESOURCE = "setResource"
SET_DOCUMENT_ID = "setDocumentID"
SET_SESSION_COOKIE = "setSessionCookie"

BRIDGE_NAMES = (
    SET_USER_DATA,
    SET_AUTH_TOKEN,
    SET_SITE_DATA,
    SET_SPRINKLE_NAME,
    SET_FEATURE_FLAG,
    SET_RESOURCE,
    SET_DOCUMENT_ID,
    SET_SESSION_COOKIE,
)

# Facts a bootstrap pass must produce, in the order they are checked.
FACT_USER_DATA = "user data"
FACT_AUTH_TOKEN = "auth token"
FACT_SITE_DATA = "site data"
FACT_SPRINKLE_NAME = "sprinkle name"

# Larger indices are ignored; the bitmap is dense up to its highest position.
MAX_FEATURE_FLAG = 1 << 20


def as_str(value) -> str:
    """Coerce an interpreter value to text the way JS String() would, roughly."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (str, int, float)):
        return str(value)
    to_json = getattr(value, "json", None)
    if callable(to_json):
        try:
            return to_json()
        except Exception:
            return ""
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def as_int(value) -> int:
    """Coerce to an integer, truncating; anything unreadable becomes 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _arg(args: tuple, index: int):
    return args[index] if index < len(args) else None


class Extraction:
    """Records bridge calls for one bootstrap.

    One instance collects across every pass of a bootstrap (page scripts, then
    resource scripts). Nothing is rolled back when a pass fails; the facts
    reported up to that point stay here.
    """

    def __init__(self):
        self.user_id = ""
        self.name = ""
        self.short_name = ""
        self.token = ""
        self.sprinkle_name = ""
        self.site_data: dict[str, str] = {}
        self.flags = Bitmap()
        self.resources: dict[str, list[str]] = {}
        self.doc_ids: dict[str, str] = {}
        self.session_cookie: Optional[str] = None
        self.reported: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []

    def set_user_data(self, *args) -> None:
        self.user_id = as_str(_arg(args, 0))
        self.name = as_str(_arg(args, 1))
        self.short_name = as_str(_arg(args, 2))
        self._record(SET_USER_DATA, (self.user_id, self.name, self.short_name))

    def set_auth_token(self, *args) -> None:
        self.token = as_str(_arg(args, 0))
        self._record(SET_AUTH_TOKEN, (self.token,))

    def set_site_data(self, *args) -> None:
        values = tuple(as_str(_arg(args, i)) for i in range(4))
        self.site_data[values[0]] = values[1]
        self.site_data[values[2]] = values[3]
        self._record(SET_SITE_DATA, values)

    def set_sprinkle_name(self, *args) -> None:
        self.sprinkle_name = as_str(_arg(args, 0))
        self._record(SET_SPRINKLE_NAME, (self.sprinkle_name,))

    def set_feature_flag(self, *args) -> None:
        index = as_int(_arg(args, 0))
        if 0 <= index <= MAX_FEATURE_FLAG:
            self.flags.set(index)
        self._record(SET_FEATURE_FLAG, (index,))

    def set_resource(self, *args) -> None:
        key, url = as_str(_arg(args, 0)), as_str(_arg(args, 1))
        self.resources.setdefault(key, []).append(url)
        self._record(SET_RESOURCE, (key, url))

    def set_document_id(self, *args) -> None:
        key, doc_id = as_str(_arg(args, 0)), as_str(_arg(args, 1))
        self.doc_ids[key] = doc_id
        self._record(SET_DOCUMENT_ID, (key, doc_id))

    def set_session_cookie(self, *args) -> None:
        self.session_cookie = as_str(_arg(args, 0))
        self._record(SET_SESSION_COOKIE, (self.session_cookie,))

    def _record(self, name: str, args: tuple) -> None:
        self.reported.add(name)
        self.calls.append((name, args))

    @property
    def highest_flag(self) -> int:
        return self.flags.highest

    def bridge_functions(self) -> dict[str, Callable]:
        """Bridge callables bound to this recorder, keyed by global name."""
        return {
            SET_USER_DATA: self.set_user_data,
            SET_AUTH_TOKEN: self.set_auth_token,
            SET_SITE_DATA: self.set_site_data,
            SET_SPRINKLE_NAME: self.set_sprinkle_name,
            SET_FEATURE_FLAG: self.set_feature_flag,
            SET_RESOURCE: self.set_resource,
            SET_DOCUMENT_ID: self.set_document_id,
            SET_SESSION_COOKIE: self.set_session_cookie,
        }

    def resource_urls(self) -> list[str]:
        """Every reported resource URL once, in first-seen order."""
        seen = {}
        for urls in self.resources.values():
            for url in urls:
                seen.setdefault(url, None)
        return list(seen)

    def validate(self) -> None:
        """Raise MissingRequiredFact for the first required fact not reported."""
        if SET_USER_DATA not in self.reported or not self.user_id:
            raise MissingRequiredFact(FACT_USER_DATA)
        if SET_AUTH_TOKEN not in self.reported or not self.token:
            raise MissingRequiredFact(FACT_AUTH_TOKEN)
        if SET_SITE_DATA not in self.reported or not self.site_data:
            raise MissingRequiredFact(FACT_SITE_DATA)
        if SET_SPRINKLE_NAME not in self.reported or not self.sprinkle_name:
            raise MissingRequiredFact(FACT_SPRINKLE_NAME)
