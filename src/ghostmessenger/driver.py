"""
messenger.com HTTP driver.

This is the module that talks to the site:
  - Fetching pages and pulling out their inline scripts
  - Form login (datr cookie harvested by running the login page's scripts)
  - Resuming from saved cookies
  - Bootstrap: the home page's scripts, then every resource script they
    announce, both run through the sandbox into one SessionAggregator
  - Posting API requests with the session's fixed params and a fresh __req
  - The thread-list GraphQL batch

Sandbox passes are CPU-bound and blocking, so they run in a worker thread via
asyncio.to_thread; the event loop keeps serving other requests meanwhile.
"""
import asyncio
import json
import time
from http.cookiejar import Cookie
from typing import Iterable, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from .errors import APIError, InvalidCookies, InvalidLogin, SessionCookieMissing
from .extract import Extraction
from .sandbox import SandboxRunner
from .schemas import CookieRecord, LastMessage, Thread, User, precise_time
from .selectors import (
    API_URL,
    BASE_URL,
    DATR_COOKIE,
    DATR_LIFETIME,
    INLINE_SCRIPTS,
    LOGIN_FORM,
    LOGIN_INPUTS,
    LOGIN_URL,
    THREADLIST_LIMIT,
    THREADLIST_QUERY,
    USER_COOKIE,
)
from .session import SessionAggregator, SessionState

_JS_TYPES = {"", "text/javascript", "application/javascript", "module"}

# Prefix the API puts in front of JSON bodies to defeat script inclusion.
_JSON_GUARD = "for (;;);"


def extract_inline_scripts(html: str) -> list[str]:
    """Text of every inline JS <script>, in document order."""
    soup = BeautifulSoup(html, "html.parser")
    scripts = []
    for tag in soup.select(INLINE_SCRIPTS):
        if tag.get("type", "").strip().lower() not in _JS_TYPES:
            continue
        text = tag.get_text()
        if text.strip():
            scripts.append(text)
    return scripts


def cookie_to_record(cookie: Cookie) -> CookieRecord:
    return CookieRecord(
        name=cookie.name,
        value=cookie.value or "",
        domain=cookie.domain,
        path=cookie.path,
        expires=cookie.expires,
        secure=bool(cookie.secure),
        http_only=cookie.has_nonstandard_attr("HttpOnly"),
    )


def record_to_cookie(record: CookieRecord) -> Cookie:
    return Cookie(
        version=0,
        name=record.name,
        value=record.value,
        port=None,
        port_specified=False,
        domain=record.domain,
        domain_specified=True,
        domain_initial_dot=record.domain.startswith("."),
        path=record.path,
        path_specified=True,
        secure=record.secure,
        expires=record.expires,
        discard=record.expires is None,
        comment=None,
        comment_url=None,
        rest={"HttpOnly": ""} if record.http_only else {},
    )


def _decode_json(text: str) -> dict:
    """First JSON document of an API response."""
    if text.startswith(_JSON_GUARD):
        text = text[len(_JSON_GUARD):]
    first, _, _ = text.strip().partition("\n")
    return json.loads(first)


def _parse_threads(payload: dict) -> tuple[list[Thread], dict[str, User]]:
    error = payload.get("error")
    if isinstance(error, dict) and error.get("api_error_code"):
        raise APIError(error["api_error_code"], error.get("summary", ""), error.get("description", ""))
    o0 = payload.get("o0") or {}
    if isinstance(o0.get("error"), dict) and o0["error"].get("api_error_code"):
        err = o0["error"]
        raise APIError(err["api_error_code"], err.get("summary", ""), err.get("description", ""))

    nodes = (
        o0.get("data", {})
        .get("viewer", {})
        .get("message_threads", {})
        .get("nodes", [])
    )
    threads, users = [], {}
    for node in nodes:
        key = node.get("thread_key") or {}
        thread = Thread(
            id=key.get("thread_fbid") or "",
            name=node.get("name") or "",
            type=node.get("thread_type") or "UNKNOWN",
            unread_count=node.get("unread_count") or 0,
            message_count=node.get("messages_count") or 0,
            updated=precise_time(node.get("updated_time_precise")),
        )
        last = (node.get("last_message") or {}).get("nodes") or []
        if last:
            lm = last[0]
            thread.last_message = LastMessage(
                sender=((lm.get("message_sender") or {}).get("messaging_actor") or {}).get("id", ""),
                snippet=lm.get("snippet") or "",
                time=precise_time(lm.get("timestamp_precise")),
            )
        for participant in (node.get("all_participants") or {}).get("nodes", []):
            actor = participant.get("messaging_actor") or {}
            user = User(
                id=actor.get("id", ""),
                name=actor.get("name") or "",
                short_name=actor.get("short_name") or "",
                username=actor.get("username") or "",
                gender=actor.get("gender") or "NEUTER",
            )
            users[user.id] = user
            thread.participants.append(user.id)
        if thread.type == "ONE_TO_ONE" and key.get("other_user_id"):
            thread.id = key["other_user_id"]
            if thread.id in users:
                thread.name = users[thread.id].name
        for custom in (node.get("customization_info") or {}).get("participant_customizations") or []:
            thread.nicknames[custom.get("participant_id", "")] = custom.get("nickname") or ""
        threads.append(thread)
    return threads, users


class MessengerDriver:
    """Drives login, bootstrap and API calls over one httpx client.

    Attributes:
        http (httpx.AsyncClient): Transport; its cookie jar is the session's.
        state (SessionState): Filled by ``bootstrap``.
        runner (SandboxRunner): Executes page and resource scripts.
        users (dict): Users seen in the last thread-list fetch, by id.
    """

    def __init__(self, http: httpx.AsyncClient, state: SessionState, runner: Optional[SandboxRunner] = None):
        self.http = http
        self.state = state
        self.runner = runner or SandboxRunner()
        self.users: dict[str, User] = {}

    # ── Cookies ──────────────────────────────────────────────────────

    def get_cookies(self) -> list[CookieRecord]:
        return [cookie_to_record(c) for c in self.http.cookies.jar]

    def set_cookies(self, records: Iterable[CookieRecord]) -> None:
        for record in records:
            self.http.cookies.jar.set_cookie(record_to_cookie(record))

    def _cookie(self, name: str) -> Optional[str]:
        for c in self.http.cookies.jar:
            if c.name == name:
                return c.value
        return None

    # ── Pages ────────────────────────────────────────────────────────

    async def fetch_page(self, url: str) -> str:
        logger.info(f"Fetching {url}")
        resp = await self.http.get(url)
        resp.raise_for_status()
        return resp.text

    async def _run(self, facts: Extraction, scripts: list[str]) -> None:
        await asyncio.to_thread(self.runner.run, facts.bridge_functions(), scripts)

    # ── Login / resume ───────────────────────────────────────────────

    async def resume(self) -> None:
        """Check the saved cookies still hold a session, then bootstrap.

        A logged-in client is redirected away from the login page; anything
        else means the cookies are dead.
        """
        resp = await self.http.get(LOGIN_URL, follow_redirects=False)
        if resp.status_code != 302:
            raise InvalidCookies()
        logger.info("Saved cookies accepted")
        await self.bootstrap()

    async def login(self, username: str, password: str) -> None:
        """Form login followed by bootstrap.

        Raises:
            SessionCookieMissing: The login page never handed out a datr cookie.
            InvalidLogin: The site did not set c_user after posting the form.
        """
        html = await self.fetch_page(LOGIN_URL)
        facts = Extraction()
        await self._run(facts, extract_inline_scripts(html))
        if not facts.session_cookie:
            raise SessionCookieMissing()
        self.set_cookies([CookieRecord(
            name=DATR_COOKIE,
            value=facts.session_cookie,
            domain=".messenger.com",
            expires=int(time.time()) + DATR_LIFETIME,
            http_only=True,
        )])

        soup = BeautifulSoup(html, "html.parser")
        form = soup.select_one(LOGIN_FORM)
        if form is None or not form.get("action"):
            raise InvalidLogin()
        post_url = urljoin(LOGIN_URL, form["action"])
        inputs = {tag["name"]: tag.get("value", "") for tag in form.select(LOGIN_INPUTS)}
        inputs.update({"email": username, "pass": password, "login": "1", "persistant": "1"})

        logger.info(f"Posting login form to {post_url}")
        await self.http.post(post_url, data=inputs, follow_redirects=False)

        user_id = self._cookie(USER_COOKIE)
        if not user_id or not user_id.isdigit():
            raise InvalidLogin()
        logger.info(f"Logged in as {user_id}")
        await self.bootstrap()

    # ── Bootstrap ────────────────────────────────────────────────────

    async def bootstrap(self) -> SessionState:
        """Run the home page and its resource scripts, then publish the session."""
        aggregator = SessionAggregator(self.state, self.runner)
        scripts = extract_inline_scripts(await self.fetch_page(BASE_URL))
        logger.info(f"Running {len(scripts)} inline script(s)")
        await asyncio.to_thread(aggregator.run, scripts)

        resources = []
        for url in aggregator.resource_urls():
            resp = await self.http.get(url)
            resp.raise_for_status()
            resources.append(resp.text)
        if resources:
            logger.info(f"Running {len(resources)} resource script(s)")
            await asyncio.to_thread(aggregator.run, resources)

        return aggregator.finalize()

    # ── API ──────────────────────────────────────────────────────────

    async def post_form(self, url: str, data: Optional[dict] = None) -> httpx.Response:
        """POST with the session params and the next request counter."""
        form = dict(data or {})
        form.update(self.state.post_params())
        form["__req"] = self.state.next_request_id()
        resp = await self.http.post(url, data=form)
        resp.raise_for_status()
        return resp

    async def get_threads(self) -> list[Thread]:
        doc_id = self.state.doc_ids.get(THREADLIST_QUERY, "")
        queries = {
            "o0": {
                "doc_id": doc_id,
                "query_params": {
                    "limit": THREADLIST_LIMIT,
                    "before": None,
                    "tags": [],
                    "isWorkUser": 0,
                    "includeDeliveryReceipts": True,
                    "includeSeqID": False,
                },
            }
        }
        resp = await self.post_form(API_URL, {
            "batch_name": THREADLIST_QUERY,
            "queries": json.dumps(queries),
        })
        threads, users = _parse_threads(_decode_json(resp.text))
        self.users.update(users)
        logger.info(f"Fetched {len(threads)} thread(s)")
        return threads
