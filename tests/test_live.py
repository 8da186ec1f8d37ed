"""
Live checks against the real messenger.com.

These need a working saved login (`ghostmessenger login`) and network access,
and are skipped otherwise.

Run:
    python -m pytest tests/test_live.py -v -m slow
"""
import pytest

from ghostmessenger.client import GhostMessenger
from ghostmessenger.config import get_cookies, load_config

pytestmark = pytest.mark.slow


@pytest.fixture
def saved_cookies():
    cookies = get_cookies(load_config())
    if not cookies:
        pytest.skip("no saved cookies; run 'ghostmessenger login' first")
    return cookies


class TestLiveSession:
    """Bootstrap from the saved cookies and make one API call."""

    @pytest.mark.asyncio
    async def test_resume_and_list_threads(self, saved_cookies):
        """The home page still reports every required fact, and the API accepts our params."""
        async with GhostMessenger(cookies=saved_cookies) as client:
            state = await client.resume()
            assert state.user_id.isdigit()
            assert state.dyn
            assert state.doc_ids, "no GraphQL document ids found in resource scripts"

            threads = await client.threads()
            assert isinstance(threads, list)
