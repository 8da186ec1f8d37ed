"""Exception types raised by ghostmessenger.

Every failure is terminal for the operation in progress; nothing here is
retried internally. The CLI is the only place these get turned into messages.
"""
from typing import Optional


class GhostMessengerError(Exception):
    """Base class for all ghostmessenger errors."""


class TimeBudgetExceeded(GhostMessengerError):
    """A sandboxed script ran longer than its per-script budget."""

    def __init__(self, budget: float, index: int):
        super().__init__(f"script #{index} exceeded its {budget:g}s time budget")
        self.budget = budget
        self.index = index


class ScriptFault(GhostMessengerError):
    """A sandboxed script raised a runtime error."""

    def __init__(self, message: str, index: int, script: Optional[str] = None):
        super().__init__(f"script #{index} failed: {message}")
        self.message = message
        self.index = index
        self.script = script


class MissingRequiredFact(GhostMessengerError):
    """A bootstrap pass finished without reporting a required fact."""

    def __init__(self, fact: str):
        super().__init__(f"{fact} not set")
        self.fact = fact


class AlreadyInitialized(GhostMessengerError):
    def __init__(self):
        super().__init__("session already initialised")


class SessionFormatError(GhostMessengerError):
    """A persisted session record could not be read."""


class SessionCookieMissing(GhostMessengerError):
    def __init__(self):
        super().__init__("error grabbing datr cookie")


class InvalidCookies(GhostMessengerError):
    def __init__(self):
        super().__init__("invalid cookies")


class InvalidLogin(GhostMessengerError):
    def __init__(self):
        super().__init__("invalid login credentials")


class APIError(GhostMessengerError):
    """Error payload returned by the GraphQL batch endpoint."""

    def __init__(self, code: int, summary: str = "", description: str = ""):
        super().__init__(description or summary or f"API error {code}")
        self.code = code
        self.summary = summary
        self.description = description
