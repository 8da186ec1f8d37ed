"""
Session state and the aggregator that fills it.

A ``SessionState`` is populated exactly once, either by a bootstrap
(``SessionAggregator.finalize``) or by loading a persisted record. After that
it is read-only except for the request counter, which every outgoing request
bumps.

Locking:
  - readers (post params, snapshots for persistence) take the read side of
    ``SessionState.lock``; populating takes the write side.
  - the request counter has its own mutex, and snapshots read it while holding
    the read side, so a saved record never pairs old fields with a new counter.
"""
import threading
from contextlib import contextmanager
from typing import Iterable, Optional

from loguru import logger

from . import rle
from .errors import AlreadyInitialized
from .extract import Extraction
from .sandbox import SandboxRunner
from .selectors import CLIENT_VERSION

_DIGITS36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("negative request counter")
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _DIGITS36[r] + out
        if not n:
            return out


def sprinkle_value(token: str) -> str:
    """The checksum parameter: '2' then every token character's code point."""
    return "2" + "".join(str(ord(c)) for c in token)


class RWLock:
    """Many readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class SessionState:
    """Everything a live session needs to build requests."""

    def __init__(self):
        self.lock = RWLock()
        self.user_id = ""
        self.name = ""
        self.short_name = ""
        self.token = ""
        self.sprinkle_name = ""
        self.site_data: dict[str, str] = {}
        self.flags = rle.Bitmap()
        self.dyn = ""
        self.doc_ids: dict[str, str] = {}
        self.session_cookie: Optional[str] = None
        # bootstrap only, not persisted
        self.resources: dict[str, list[str]] = {}
        self._initialized = False
        self._request = 0
        self._request_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def request(self) -> int:
        with self._request_lock:
            return self._request

    def next_request(self) -> int:
        """Claim the next request number; concurrent callers never share one."""
        with self._request_lock:
            self._request += 1
            return self._request

    def next_request_id(self) -> str:
        return to_base36(self.next_request())

    def commit(self, facts: Extraction) -> None:
        """Populate from a validated extraction."""
        with self.lock.write():
            if self._initialized:
                raise AlreadyInitialized()
            self.user_id = facts.user_id
            self.name = facts.name
            self.short_name = facts.short_name
            self.token = facts.token
            self.sprinkle_name = facts.sprinkle_name
            self.site_data = dict(facts.site_data)
            self.flags = rle.Bitmap(facts.flags)
            self.dyn = rle.encode(self.flags)
            self.doc_ids = dict(facts.doc_ids)
            self.session_cookie = facts.session_cookie
            self.resources = {k: list(v) for k, v in facts.resources.items()}
            self._initialized = True

    def post_params(self) -> dict[str, str]:
        """Fixed form fields sent with every request (``__req`` excluded)."""
        with self.lock.read():
            params = {
                "__a": "1",
                "__rev": str(CLIENT_VERSION),
                "__user": self.user_id,
                "fb_dtsg": self.token,
            }
            params.update(self.site_data)
            params[self.sprinkle_name] = sprinkle_value(self.token)
            params["__dyn"] = self.dyn
            return params

    def snapshot(self) -> dict:
        """Consistent copy of every persisted field."""
        with self.lock.read():
            return {
                "user_id": self.user_id,
                "name": self.name,
                "short_name": self.short_name,
                "token": self.token,
                "sprinkle_name": self.sprinkle_name,
                "site_data": dict(self.site_data),
                "flags": list(self.flags),
                "dyn": self.dyn,
                "doc_ids": dict(self.doc_ids),
                "session_cookie": self.session_cookie,
                "request": self.request,
            }

    def restore(self, data: dict) -> None:
        """Populate from a snapshot produced by ``snapshot``."""
        with self.lock.write():
            if self._initialized:
                raise AlreadyInitialized()
            self.user_id = data["user_id"]
            self.name = data["name"]
            self.short_name = data["short_name"]
            self.token = data["token"]
            self.sprinkle_name = data["sprinkle_name"]
            self.site_data = dict(data["site_data"])
            self.flags = rle.Bitmap(data["flags"])
            self.dyn = data["dyn"] or rle.encode(self.flags)
            self.doc_ids = dict(data["doc_ids"])
            self.session_cookie = data["session_cookie"]
            with self._request_lock:
                self._request = data["request"]
            self._initialized = True


class SessionAggregator:
    """Drives the bootstrap passes for one SessionState.

    Args:
        state: A fresh, unpopulated state.
        runner: Sandbox to execute scripts in. Defaults to a 1s-per-script one.

    Raises:
        AlreadyInitialized: ``state`` is already populated.
    """

    def __init__(self, state: SessionState, runner: Optional[SandboxRunner] = None):
        if state.initialized:
            raise AlreadyInitialized()
        self.state = state
        self.runner = runner or SandboxRunner()
        self.facts = Extraction()

    def run(self, scripts: Iterable[str]) -> None:
        """One sandbox pass; reported facts accumulate across passes."""
        self.runner.run(self.facts.bridge_functions(), scripts)

    def resource_urls(self) -> list[str]:
        return self.facts.resource_urls()

    def finalize(self) -> SessionState:
        """Validate the collected facts and publish them into the state."""
        self.facts.validate()
        self.state.commit(self.facts)
        logger.info(
            f"Session ready for user {self.state.user_id}: "
            f"{len(self.state.flags)} feature flag(s), {len(self.state.doc_ids)} doc id(s)"
        )
        return self.state


def bootstrap(
    state: SessionState,
    scripts: Iterable[str],
    runner: Optional[SandboxRunner] = None,
) -> SessionState:
    """Single-pass bootstrap: run ``scripts``, validate, populate ``state``."""
    aggregator = SessionAggregator(state, runner)
    aggregator.run(scripts)
    return aggregator.finalize()
