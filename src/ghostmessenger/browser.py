"""
Manual login through a real browser.

For accounts where the form login is blocked (checkpoints, 2FA), the user
logs in by hand in a patchright Chromium window. The cookies are read from
the browser context while the window is open, since a closed context can no
longer be queried, and handed back as CookieRecords for the HTTP client.
"""
import asyncio
from pathlib import Path
from typing import Optional

from patchright.async_api import async_playwright, BrowserContext, Error as BrowserError
from loguru import logger

from .schemas import CookieRecord
from .selectors import BASE_URL, USER_AGENT, USER_COOKIE

# Persistent profile so a second manual login is usually not needed.
DEFAULT_PROFILE_DIR = Path.home() / ".ghostmessenger" / "profile"


def browser_cookie_to_record(cookie: dict) -> CookieRecord:
    expires = cookie.get("expires")
    return CookieRecord(
        name=cookie["name"],
        value=cookie["value"],
        domain=cookie.get("domain") or ".messenger.com",
        path=cookie.get("path") or "/",
        expires=int(expires) if expires is not None and expires >= 0 else None,
        secure=bool(cookie.get("secure")),
        http_only=bool(cookie.get("httpOnly")),
    )


class BrowserManager:
    def __init__(self, profile_dir: Optional[Path] = None, headless: bool = False):
        self.profile_dir = Path(profile_dir) if profile_dir else DEFAULT_PROFILE_DIR
        self.headless = headless
        self._patchright = None
        self._browser_context: Optional[BrowserContext] = None

        self.profile_dir.mkdir(parents=True, exist_ok=True)

    async def start(self) -> BrowserContext:
        """Open the persistent profile in Chromium, logged in or not."""
        logger.info(f"Opening browser profile {self.profile_dir} for messenger.com login")
        self._patchright = await async_playwright().start()
        self._browser_context = await self._patchright.chromium.launch_persistent_context(
            user_data_dir=str(self.profile_dir),
            headless=self.headless,
            user_agent=USER_AGENT,
            args=["--disable-blink-features=AutomationControlled"],
            no_viewport=True,
        )
        return self._browser_context

    async def stop(self):
        """Close the profile and the patchright driver; safe to call twice."""
        context, self._browser_context = self._browser_context, None
        driver, self._patchright = self._patchright, None
        if context is not None:
            await context.close()
        if driver is not None:
            await driver.stop()
        logger.info("Login browser closed")

    async def capture_login(self, poll: float = 1.0) -> list[CookieRecord]:
        """Open messenger.com and wait for the user to log in and close the window.

        Returns the cookies from the last poll that saw a c_user cookie, or
        whatever was last seen if the user never logged in.
        """
        context = await self.start()
        cookies: list[dict] = []
        try:
            page = await context.new_page()
            await page.goto(BASE_URL)
            while context.pages:
                try:
                    current = await context.cookies(BASE_URL)
                except BrowserError:
                    # window closed between the check and the read
                    break
                if any(c["name"] == USER_COOKIE for c in current) or not cookies:
                    cookies = current
                await asyncio.sleep(poll)
        finally:
            await self.stop()
        return [browser_cookie_to_record(c) for c in cookies]

    @property
    def context(self) -> Optional[BrowserContext]:
        return self._browser_context
