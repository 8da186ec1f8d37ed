"""
Centralized URLs, constants and HTML selectors for messenger.com.

When messenger.com changes its login form or page layout and bootstrap breaks,
this is the first file to update (the second is runtime.py).
"""

# ── URLs ──────────────────────────────────────────────────────────────

BASE_URL = "https://www.messenger.com/"
LOGIN_URL = BASE_URL + "login"
API_URL = BASE_URL + "api/graphqlbatch/"

# ── Client identity ───────────────────────────────────────────────────

# Sent as __rev with every request.
CLIENT_VERSION = 3822019

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)

# ── HTML ──────────────────────────────────────────────────────────────

# Inline scripts only: external ones are fetched separately as resources.
INLINE_SCRIPTS = "script:not([src])"

LOGIN_FORM = "form"
LOGIN_INPUTS = "input[name]"

# ── Cookies ───────────────────────────────────────────────────────────

# Anonymous browser cookie the login page sets from script.
DATR_COOKIE = "datr"
DATR_LIFETIME = 48 * 3600

# Present only once logged in; its value is the user id.
USER_COOKIE = "c_user"

# ── GraphQL batch names ───────────────────────────────────────────────

THREADLIST_QUERY = "MessengerGraphQLThreadlistFetcher"
THREADLIST_LIMIT = 99
