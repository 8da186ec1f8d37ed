from pathlib import Path
from typing import Iterable, Optional

import httpx
from loguru import logger

from . import persist
from .driver import MessengerDriver
from .sandbox import DEFAULT_BUDGET, SandboxRunner
from .schemas import CookieRecord, Thread
from .selectors import USER_AGENT
from .session import SessionState


class GhostMessenger:
    """Async facade over the driver, plus session save/load.

    Usage:
        async with GhostMessenger(cookies=saved) as client:
            await client.resume()
            threads = await client.threads()
            client.save(path)
    """

    def __init__(
        self,
        cookies: Optional[Iterable[CookieRecord]] = None,
        budget: float = DEFAULT_BUDGET,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.http = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            timeout=30.0,
            transport=transport,
        )
        self.state = SessionState()
        self.driver = MessengerDriver(self.http, self.state, SandboxRunner(budget=budget))
        if cookies:
            self.driver.set_cookies(cookies)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def ready(self) -> bool:
        return self.state.initialized

    def cookies(self) -> list[CookieRecord]:
        return self.driver.get_cookies()

    async def login(self, username: str, password: str) -> SessionState:
        await self.driver.login(username, password)
        return self.state

    async def resume(self) -> SessionState:
        await self.driver.resume()
        return self.state

    async def threads(self) -> list[Thread]:
        return await self.driver.get_threads()

    def save(self, path: Path, binary: bool = False) -> None:
        """Write the session and cookie jar to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        if binary:
            path.write_bytes(persist.dumps_binary(self.state, self.cookies()))
        else:
            path.write_text(persist.dumps_json(self.state, self.cookies()) + "\n", encoding="utf-8")
        logger.info(f"Session saved to {path}")

    def load(self, path: Path) -> None:
        """Restore a session saved by ``save``; the format is sniffed."""
        data = path.read_bytes()
        if data.startswith(persist.MAGIC):
            cookies = persist.loads_binary(self.state, data)
        else:
            cookies = persist.loads_json(self.state, data.decode("utf-8"))
        self.driver.set_cookies(cookies)
        logger.info(f"Session loaded from {path} (request #{self.state.request})")

    async def close(self):
        await self.http.aclose()
