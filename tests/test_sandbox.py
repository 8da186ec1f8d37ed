"""
Tests for the sandbox runner and the stub browser environment.

These execute real JavaScript in a QuickJS child process, so they need the
quickjs package but no network.
"""
import time

import pytest

from ghostmessenger.errors import ScriptFault, TimeBudgetExceeded
from ghostmessenger.extract import SET_AUTH_TOKEN, SET_FEATURE_FLAG, SET_SPRINKLE_NAME, Extraction
from ghostmessenger.sandbox import SandboxRunner, Watchdog

from .conftest import HOME_FLAGS, HOME_SCRIPT, LOGIN_SCRIPT, RESOURCE_SCRIPT

BUSY_LOOP = "while (true) {}"


def _busy(ms: int) -> str:
    return f"var __t = Date.now(); while (Date.now() - __t < {ms}) {{}}"


class Recorder:
    def __init__(self):
        self.calls = []

    def bridge(self, *names):
        def make(name):
            return lambda *args: self.calls.append((name, args))
        return {name: make(name) for name in names}


class TestSequencing:
    def test_scripts_share_globals_in_order(self):
        """s1 reports f and sets a global; s2 reads it after f was observed."""
        rec = Recorder()
        SandboxRunner().run(rec.bridge("f", "g"), [
            "f(1); var shared = 41;",
            "g(shared + 1);",
        ])
        assert rec.calls == [("f", (1,)), ("g", (42,))]

    def test_calls_within_a_script_keep_their_order(self):
        rec = Recorder()
        SandboxRunner().run(rec.bridge("f"), ["for (var i = 0; i < 5; i++) { f(i); }"])
        assert [args[0] for _, args in rec.calls] == [0, 1, 2, 3, 4]

    def test_each_run_gets_a_fresh_context(self):
        runner = SandboxRunner()
        runner.run({}, ["var leaked = 1;"])
        with pytest.raises(ScriptFault):
            runner.run({}, ["leaked + 1;"])

    def test_empty_sequence_succeeds(self):
        SandboxRunner().run({}, [])


class TestFaults:
    def test_thrown_error_becomes_script_fault(self):
        rec = Recorder()
        script = "throw new Error('boom');"
        with pytest.raises(ScriptFault) as exc:
            SandboxRunner().run(rec.bridge("f"), ["f(1);", script, "f(2);"])
        assert "boom" in exc.value.message
        assert exc.value.index == 1
        assert exc.value.script == script
        assert rec.calls == [("f", (1,))]

    def test_reference_to_unknown_global_faults(self):
        with pytest.raises(ScriptFault):
            SandboxRunner().run({}, ["definitelyNotDefined();"])

    def test_syntax_error_faults(self):
        with pytest.raises(ScriptFault):
            SandboxRunner().run({}, ["var = ;"])

    def test_failing_bridge_function_faults(self):
        def broken(*args):
            raise RuntimeError("recorder is full")

        with pytest.raises(ScriptFault) as exc:
            SandboxRunner().run({"f": broken}, ["f(1);"])
        assert "recorder is full" in exc.value.message
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_object_arguments_arrive_as_plain_data(self):
        rec = Recorder()
        SandboxRunner().run(rec.bridge("f"), ["f({a: [1, 'x']}, null, 2.5, true);"])
        assert rec.calls == [("f", ({"a": [1, "x"]}, None, 2.5, True))]


class TestTimeBudget:
    def test_runaway_script_is_cancelled(self):
        """Prior calls stay recorded and later scripts are never started."""
        facts = Extraction()
        pulled = []

        def scripts():
            for s in ["setAuthToken('tok'); setFeatureFlag(4);", BUSY_LOOP, "setSprinkleName('x');"]:
                pulled.append(s)
                yield s

        with pytest.raises(TimeBudgetExceeded) as exc:
            SandboxRunner(budget=0.2).run(facts.bridge_functions(), scripts())

        assert exc.value.index == 1
        assert facts.token == "tok"
        assert 4 in facts.flags
        assert SET_SPRINKLE_NAME not in facts.reported
        assert len(pulled) == 2

    def test_budget_applies_per_script_not_cumulatively(self):
        rec = Recorder()
        scripts = [_busy(100) + "; f(%d);" % i for i in range(4)]
        SandboxRunner(budget=0.5).run(rec.bridge("f"), scripts)
        assert len(rec.calls) == 4

    def test_slow_bridge_call_counts_against_the_budget(self):
        """A bridge function that blocks past the budget ends the run."""
        calls = []

        def slow(*args):
            calls.append(args)
            time.sleep(0.6)

        with pytest.raises(TimeBudgetExceeded) as exc:
            SandboxRunner(budget=0.2).run({"f": slow}, ["f(1);", "f(2);"])
        assert exc.value.index == 0
        assert calls == [(1,)]

    def test_script_cannot_catch_the_cancellation(self):
        """Swallowing exceptions in JS does not keep a runaway script alive."""
        rec = Recorder()
        with pytest.raises(TimeBudgetExceeded):
            SandboxRunner(budget=0.3).run(rec.bridge("f"), [
                "while (true) { try { f(); } catch (e) {} }",
            ])
        assert rec.calls

    def test_watchdog_fires_and_resets(self):
        dog = Watchdog(0.05)
        dog.arm()
        assert dog.expired.wait(2)
        dog.arm()
        assert not dog.expired.is_set()
        dog.stop()

        fresh = Watchdog(5)
        fresh.arm()
        fresh.arm()
        assert not fresh.expired.is_set()
        fresh.stop()


class TestStubEnvironment:
    def test_home_page_dispatch_reports_every_fact(self):
        facts = Extraction()
        SandboxRunner().run(facts.bridge_functions(), [HOME_SCRIPT])

        assert (facts.user_id, facts.name, facts.short_name) == ("100001234", "Ada Lovelace", "Ada")
        assert facts.token == "AQH:tok"
        assert facts.site_data == {"__hs": "19700.HYP", "__pc": "HYP:comet_pkg"}
        assert facts.sprinkle_name == "jazoest"
        assert list(facts.flags) == HOME_FLAGS
        assert facts.resource_urls() == [
            "https://static.xx.fbcdn.net/rsrc.php/v3/a1.js",
            "https://static.xx.fbcdn.net/rsrc.php/v3/b2.js",
        ]
        facts.validate()

    def test_resource_script_reports_document_ids(self):
        facts = Extraction()
        SandboxRunner().run(facts.bridge_functions(), [RESOURCE_SCRIPT])
        assert facts.doc_ids == {"MessengerGraphQLThreadlistFetcher": "1234567890"}

    def test_object_exports_carry_the_id(self):
        facts = Extraction()
        SandboxRunner().run(facts.bridge_functions(), [
            '__d("MessengerGraphQLThreadFetcher.graphql", [], function (a, b, c, d, e) {'
            ' e.exports = {id: "42", metadata: {}, name: "MessengerGraphQLThreadFetcher"}; });'
        ])
        assert facts.doc_ids == {"MessengerGraphQLThreadFetcher": "42"}

    def test_login_page_reports_session_cookie(self):
        facts = Extraction()
        SandboxRunner().run(facts.bridge_functions(), [LOGIN_SCRIPT])
        assert facts.session_cookie == "dAtRvAlUe"

    def test_browser_globals_are_inert(self):
        rec = Recorder()
        SandboxRunner().run(rec.bridge("f"), [
            "document.getElementById('x'); window.addEventListener('load', function () {});"
            "setTimeout(function () { f('timer'); }, 0); console.log('hi');"
            "CavalryLogger.setPageID('p'); require('Anything').guard(function () {})();"
            "f(navigator.userAgent === '' ? 'ok' : 'bad');",
        ])
        assert rec.calls == [("f", ("ok",))]

    def test_missing_bridge_arguments_do_not_raise(self):
        facts = Extraction()
        SandboxRunner().run(facts.bridge_functions(), [
            "setUserData(); setFeatureFlag('nope'); setFeatureFlag(1e20); setSiteData(1);",
        ])
        assert facts.user_id == ""
        assert list(facts.flags) == [0]
        assert facts.site_data == {"1": "", "": ""}
        assert {SET_FEATURE_FLAG} <= facts.reported
        assert SET_AUTH_TOKEN not in facts.reported
