"""
Sandboxed execution of page scripts.

Scripts run one at a time in a single QuickJS context so later scripts see the
globals earlier ones left behind, exactly as a browser runs a page's inline
scripts. The only way out of the sandbox is the set of bridge functions the
caller installs.

The interpreter lives in a child process. Inside it every bridge function is a
stub that forwards ``(name, args)`` over a pipe and returns ``undefined``; the
parent replays those calls against the real bridge functions in the order
they were made. A watchdog timer guards every script with its own budget.
When it fires the parent stops reading, kills the child and raises
``TimeBudgetExceeded``. A pure-JS busy loop is stopped the same way as a
script stuck behind a slow bridge call, and scripts that had not started yet
are never executed.
"""
import json
import multiprocessing
import threading
from typing import Callable, Iterable, Mapping, Optional

import quickjs
from loguru import logger

from .errors import ScriptFault, TimeBudgetExceeded
from .runtime import RUNTIME_JS

# Reference budget per script, in seconds.
DEFAULT_BUDGET = 1.0

# Interpreter startup and stub runtime evaluation are not budgeted per script.
STARTUP_TIMEOUT = 30.0

# How often the parent wakes up to look at the watchdog while waiting.
_POLL = 0.01

# Child -> parent messages.
_READY = "ready"
_CALL = "call"
_DONE = "done"
_FAULT = "fault"

BridgeFunctions = Mapping[str, Callable]


class Watchdog:
    """Per-script timer that flags, but never performs, cancellation.

    Usage:
        dog = Watchdog(1.0)
        dog.arm()          # before the first script
        dog.arm()          # reset before every following script
        dog.expired.is_set()
        dog.stop()
    """

    def __init__(self, budget: float):
        self.budget = budget
        self.expired = threading.Event()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def _fire(self) -> None:
        logger.warning(f"Watchdog: script exceeded {self.budget:g}s budget, cancelling")
        self.expired.set()

    def arm(self) -> None:
        """Start a fresh budget window, discarding the previous one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self.expired.clear()
            self._timer = threading.Timer(self.budget, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


# ── Child process ────────────────────────────────────────────────────

def _plain(value):
    """Make an interpreter value picklable; objects travel as parsed JSON."""
    if isinstance(value, quickjs.Object):
        try:
            return json.loads(value.json())
        except (quickjs.JSException, TypeError, ValueError):
            return None
    return value


def _forward(conn, name: str) -> Callable:
    def bridge(*args):
        conn.send((_CALL, name, tuple(_plain(a) for a in args)))
        return None

    return bridge


def _serve(conn, names: list[str], runtime: str) -> None:
    """Child entry point: evaluate scripts sent by the parent until told to stop."""
    context = quickjs.Context()
    for name in names:
        context.add_callable(name, _forward(conn, name))
    try:
        context.eval(runtime)
    except quickjs.JSException as e:
        conn.send((_FAULT, str(e)))
        return
    conn.send((_READY,))
    while True:
        script = conn.recv()
        if script is None:
            return
        try:
            context.eval(script)
        except quickjs.JSException as e:
            conn.send((_FAULT, str(e)))
            return
        conn.send((_DONE,))


# ── Parent side ──────────────────────────────────────────────────────

class SandboxRunner:
    """Runs script sequences against a set of bridge functions.

    Each ``run`` call gets a brand new interpreter (and process), so nothing
    leaks between bootstrap passes.

    Args:
        budget: Seconds each individual script may run before being cancelled.
                Time spent inside bridge functions counts against it.
        runtime: Stub environment evaluated after the bridge functions are
                 installed and before the first script.
    """

    def __init__(self, budget: float = DEFAULT_BUDGET, runtime: str = RUNTIME_JS):
        self.budget = budget
        self.runtime = runtime

    def run(self, bridge_functions: BridgeFunctions, scripts: Iterable[str]) -> None:
        """Execute ``scripts`` in order.

        Returns normally only if every script completed.

        Raises:
            TimeBudgetExceeded: A script outlived its budget. Bridge calls made
                before the cancellation stay with whoever received them.
            ScriptFault: A script threw. ``script`` holds the offending source.
        """
        mp = multiprocessing.get_context("spawn")
        conn, child_conn = mp.Pipe()
        proc = mp.Process(
            target=_serve,
            args=(child_conn, list(bridge_functions), self.runtime),
            daemon=True,
        )
        proc.start()
        child_conn.close()

        dog = Watchdog(self.budget)
        index = -1
        try:
            self._startup(conn)
            for index, script in enumerate(scripts):
                dog.arm()
                logger.debug(f"Sandbox: running script #{index} ({len(script)} chars)")
                conn.send(script)
                self._await(conn, bridge_functions, dog, index, script)
            conn.send(None)
        finally:
            dog.stop()
            conn.close()
            if proc.is_alive():
                proc.terminate()
            proc.join()
        logger.debug(f"Sandbox: {index + 1} script(s) completed")

    def _startup(self, conn) -> None:
        if not conn.poll(STARTUP_TIMEOUT):
            raise ScriptFault("sandbox did not start", -1, self.runtime)
        message = self._receive(conn, -1, self.runtime)
        if message[0] == _FAULT:
            raise ScriptFault(message[1], -1, self.runtime)

    def _await(self, conn, bridge_functions: BridgeFunctions, dog: Watchdog, index: int, script: str) -> None:
        """Replay bridge calls until the script finishes, faults or runs out of time."""
        while True:
            if dog.expired.is_set():
                raise TimeBudgetExceeded(self.budget, index)
            if not conn.poll(_POLL):
                continue
            message = self._receive(conn, index, script)
            kind = message[0]
            if kind == _CALL:
                _, name, args = message
                try:
                    bridge_functions[name](*args)
                except Exception as e:
                    raise ScriptFault(f"{name}: {e}", index, script) from e
            elif kind == _DONE:
                if dog.expired.is_set():
                    # finished, but only after the watchdog gave up on it
                    raise TimeBudgetExceeded(self.budget, index)
                return
            else:
                raise ScriptFault(message[1], index, script)

    @staticmethod
    def _receive(conn, index: int, script: str) -> tuple:
        try:
            return conn.recv()
        except EOFError:
            raise ScriptFault("sandbox process exited", index, script) from None
