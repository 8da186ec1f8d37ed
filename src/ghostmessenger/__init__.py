"""
ghostmessenger: a browserless messenger.com session client.

Bootstraps a session by running the site's own inline scripts in a QuickJS
sandbox with a stub browser environment. The scripts hand their session facts
(user id, token, feature flags, document ids) to host bridge functions, and
the feature flags are compacted into the ``__dyn`` request parameter.

Public API:
    from ghostmessenger import GhostMessenger

    async with GhostMessenger(cookies=saved) as client:
        await client.resume()
        threads = await client.threads()
"""

from .client import GhostMessenger
from .errors import (
    AlreadyInitialized,
    GhostMessengerError,
    MissingRequiredFact,
    ScriptFault,
    TimeBudgetExceeded,
)
from .sandbox import SandboxRunner
from .session import SessionAggregator, SessionState

__all__ = [
    "GhostMessenger",
    "SandboxRunner",
    "SessionAggregator",
    "SessionState",
    "GhostMessengerError",
    "TimeBudgetExceeded",
    "ScriptFault",
    "MissingRequiredFact",
    "AlreadyInitialized",
]
