"""Tests for the manual-login browser helpers that need no real browser."""
import pytest

from ghostmessenger.browser import BrowserManager, browser_cookie_to_record


class _Closable:
    def __init__(self):
        self.closed = 0

    async def close(self):
        self.closed += 1

    async def stop(self):
        self.closed += 1


class TestCookieConversion:
    def test_browser_cookie_fields(self):
        record = browser_cookie_to_record({
            "name": "c_user", "value": "100001234", "domain": ".messenger.com",
            "path": "/", "expires": 1900000000.5, "secure": True, "httpOnly": False,
        })
        assert record.expires == 1900000000
        assert record.secure and not record.http_only

    def test_session_cookie_has_no_expiry(self):
        record = browser_cookie_to_record({"name": "xs", "value": "a", "expires": -1, "httpOnly": True})
        assert record.expires is None
        assert record.domain == ".messenger.com"
        assert record.http_only


class TestBrowserManager:
    def test_profile_directory_is_created(self, tmp_path):
        profile = tmp_path / "profile"
        BrowserManager(profile_dir=profile)
        assert profile.is_dir()

    @pytest.mark.asyncio
    async def test_stop_closes_once(self, tmp_path):
        """stop() releases both handles, and a second call is a no-op."""
        manager = BrowserManager(profile_dir=tmp_path)
        context, driver = _Closable(), _Closable()
        manager._browser_context, manager._patchright = context, driver

        await manager.stop()
        await manager.stop()

        assert context.closed == 1
        assert driver.closed == 1
        assert manager.context is None

    @pytest.mark.asyncio
    async def test_stop_before_start(self, tmp_path):
        await BrowserManager(profile_dir=tmp_path).stop()
