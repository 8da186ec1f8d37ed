"""
Pytest configuration and shared fixtures for ghostmessenger tests.

Registers custom markers:
    slow: Tests that hit the real messenger.com (require a saved login)

Usage:
    pytest tests/ -v                    # Run all tests
    pytest tests/ -v -m "not slow"      # Skip live-site tests
"""
import pytest

from ghostmessenger.extract import Extraction
from ghostmessenger.session import SessionState

# Feature indices reported by HOME_SCRIPT; encodes to "Jc".
HOME_FLAGS = [0, 1, 2, 5, 6, 7, 8]

HOME_SCRIPT = """
requireLazy(["ServerJS"], function (ServerJS) {
    new ServerJS().handle({
        define: [
            ["CurrentUserInitialData", [], {"USER_ID": "100001234", "NAME": "Ada Lovelace", "SHORT_NAME": "Ada"}, 0],
            ["DTSGInitialData", [], {"token": "AQH:tok"}, 1],
            ["SiteData", [], {"haste_session": "19700.HYP", "pkg_cohort": "HYP:comet_pkg"}, 2],
            ["SprinkleConfig", [], {"param_name": "jazoest"}, 5],
            ["LSD", [], {"token": "lsd"}, 6],
            ["MessengerConfig", [], {}, 7],
            ["WebConnectionClassServerGuess", [], {}, 8]
        ],
        require: [
            ["Bootloader", "handlePayload", [], [{"rsrcMap": {
                "a1": {"type": "js", "src": "https://static.xx.fbcdn.net/rsrc.php/v3/a1.js"},
                "b2": {"type": "js", "src": "https://static.xx.fbcdn.net/rsrc.php/v3/b2.js"}
            }}]]
        ]
    });
});
"""

RESOURCE_SCRIPT = """
__d("MessengerGraphQLThreadlistFetcher.graphql", [], function (a, b, c, d, e, f) {
    e.exports = "1234567890";
}, null);
__d("SomeUnrelatedModule", [], function () { throw new Error("never run"); }, null);
"""

LOGIN_SCRIPT = """
bigPipe.onPageletArrive({
    jsmods: {
        require: [["CookieCore", "setWithoutChecks", [], ["_js_datr", "dAtRvAlUe", 63072000000, false]]]
    }
});
"""


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that hit the real messenger.com (slow, requires login)"
    )


def make_facts() -> Extraction:
    """An extraction holding every required fact, as a page would report them."""
    facts = Extraction()
    facts.set_user_data("100001234", "Ada Lovelace", "Ada")
    facts.set_auth_token("AQH:tok")
    facts.set_site_data("__hs", "19700.HYP", "__pc", "HYP:comet_pkg")
    facts.set_sprinkle_name("jazoest")
    for index in HOME_FLAGS:
        facts.set_feature_flag(index)
    facts.set_resource("a1", "https://static.xx.fbcdn.net/rsrc.php/v3/a1.js")
    facts.set_document_id("MessengerGraphQLThreadlistFetcher", "1234567890")
    facts.set_session_cookie("dAtRvAlUe")
    return facts


@pytest.fixture
def facts() -> Extraction:
    return make_facts()


@pytest.fixture
def populated_state(facts) -> SessionState:
    state = SessionState()
    state.commit(facts)
    return state
