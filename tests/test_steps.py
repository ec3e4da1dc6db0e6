"""Tests for the navigation sequencer."""
import pytest

from mcp_static_lease.appliance.base import ApplianceSession
from mcp_static_lease.appliance.steps import (
    SET_ATTRIBUTE_JS,
    Click,
    Evaluate,
    Fill,
    Hook,
    Navigate,
    ReadText,
    SetAttribute,
    Sleep,
    StepContext,
    StepSequence,
    WaitNotVisible,
    WaitVisible,
    run_sequence,
)
from mcp_static_lease.errors import ApplianceRejected, StepFailed


class RecordingPage:
    """Page that logs every call and fails on selectors marked missing."""

    def __init__(self, missing=()):
        self.calls = []
        self.missing = set(missing)

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url))

    async def wait_for_selector(self, selector, state=None, timeout=None):
        self.calls.append(("wait", selector, state))
        if selector in self.missing:
            raise RuntimeError(f"no element {selector}")

    async def click(self, selector, timeout=None):
        self.calls.append(("click", selector))

    async def fill(self, selector, text, timeout=None):
        self.calls.append(("fill", selector, text))

    async def eval_on_selector(self, selector, script, arg=None):
        self.calls.append(("eval_on", selector, script, arg))

    async def evaluate(self, script, arg=None):
        self.calls.append(("evaluate", script, arg))
        return {"echo": arg}

    async def inner_text(self, selector, timeout=None):
        return "  Saved \n"


@pytest.fixture
def page():
    return RecordingPage(missing={"#gone"})


@pytest.fixture
def ctx(page):
    session = ApplianceSession(endpoint="192.0.2.1", username="admin", page=page)
    return StepContext(session=session, timeout_ms=1000)


class TestStepSequence:
    """Tests for StepSequence composition."""

    def test_concatenation_keeps_order(self):
        """Adding sequences appends steps in order."""
        first = StepSequence.of(Navigate("https://gw/"), Click("#a"))
        second = StepSequence.of(Click("#b"))
        combined = first + second
        assert len(combined) == 3
        assert combined.describe() == ["Navigate(https://gw/)", "Click(#a)", "Click(#b)"]
        assert len(first) == 2

    def test_secret_fill_is_masked(self):
        assert Fill("#pw", "s3cret", secret=True).describe() == "Fill(#pw, ***)"
        assert Fill("#user", "admin").describe() == "Fill(#user, admin)"


class TestRunSequence:
    """Tests for run_sequence."""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, ctx, page):
        """Every step runs in the declared order."""
        await run_sequence(StepSequence.of(
            Navigate("https://gw/"),
            WaitVisible("#login"),
            Fill("#user", "admin"),
            Click("#go"),
            WaitNotVisible("#spinner"),
            SetAttribute("#box", "checked", "true"),
            Sleep(0),
        ), ctx)

        assert page.calls == [
            ("goto", "https://gw/"),
            ("wait", "#login", "visible"),
            ("fill", "#user", "admin"),
            ("click", "#go"),
            ("wait", "#spinner", "hidden"),
            ("eval_on", "#box", SET_ATTRIBUTE_JS, ["checked", "true"]),
        ]

    @pytest.mark.asyncio
    async def test_first_failure_aborts(self, ctx, page):
        """A failing step stops the sequence and is wrapped in StepFailed."""
        with pytest.raises(StepFailed) as exc_info:
            await run_sequence(StepSequence.of(
                Click("#a"),
                WaitVisible("#gone"),
                Click("#never"),
            ), ctx)

        assert exc_info.value.step == "WaitVisible(#gone)"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert ("click", "#never") not in page.calls

    @pytest.mark.asyncio
    async def test_lease_errors_pass_through(self, ctx):
        """Errors from the lease taxonomy are not wrapped."""
        async def reject(ctx):
            raise ApplianceRejected("bad value")

        with pytest.raises(ApplianceRejected):
            await run_sequence(StepSequence.of(Hook(reject, name="reject")), ctx)

    @pytest.mark.asyncio
    async def test_results_are_collected(self, ctx):
        """Evaluate and ReadText store their results by key."""
        await run_sequence(StepSequence.of(
            Evaluate("(x) => x", key="echo", arg={"a": 1}),
            ReadText("#msg", key="msg"),
        ), ctx)

        assert ctx.results["echo"] == {"echo": {"a": 1}}
        assert ctx.results["msg"] == "Saved"
