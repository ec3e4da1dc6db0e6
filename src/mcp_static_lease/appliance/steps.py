"""Navigation sequencer: ordered primitive UI steps run on one session.

A StepSequence is an immutable list of steps. run_sequence executes them
strictly in order with no retry; the first failing step aborts the rest.
Each wait step is bounded by the context timeout and nothing else.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Optional

from ..errors import LeaseError, StepFailed
from .base import ApplianceSession

logger = logging.getLogger(__name__)

SET_VALUE_JS = """(el, value) => {
    el.value = value;
    el.dispatchEvent(new Event('change', {bubbles: true}));
}"""

SET_ATTRIBUTE_JS = "(el, [name, value]) => el.setAttribute(name, value)"

REMOVE_ATTRIBUTE_JS = "(el, name) => el.removeAttribute(name)"


@dataclass
class StepContext:
    """Operation-local state shared by the steps of one sequence."""
    session: ApplianceSession
    timeout_ms: float = 30000
    results: dict[str, Any] = field(default_factory=dict)

    @property
    def page(self) -> Any:
        return self.session.page


@dataclass(frozen=True)
class Step:
    """A single UI action."""

    async def run(self, ctx: StepContext) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Navigate(Step):
    url: str

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.goto(self.url, wait_until="domcontentloaded", timeout=ctx.timeout_ms)

    def describe(self) -> str:
        return f"Navigate({self.url})"


@dataclass(frozen=True)
class _Wait(Step):
    selector: str

    state = "visible"

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.wait_for_selector(self.selector, state=self.state, timeout=ctx.timeout_ms)

    def describe(self) -> str:
        return f"{type(self).__name__}({self.selector})"


@dataclass(frozen=True)
class WaitVisible(_Wait):
    state = "visible"


@dataclass(frozen=True)
class WaitNotVisible(_Wait):
    state = "hidden"


@dataclass(frozen=True)
class WaitAttached(_Wait):
    state = "attached"


@dataclass(frozen=True)
class Click(Step):
    selector: str

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.click(self.selector, timeout=ctx.timeout_ms)

    def describe(self) -> str:
        return f"Click({self.selector})"


@dataclass(frozen=True)
class Fill(Step):
    """Type into an input the way a user would (login form)."""
    selector: str
    text: str
    secret: bool = False

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.fill(self.selector, self.text, timeout=ctx.timeout_ms)

    def describe(self) -> str:
        shown = "***" if self.secret else self.text
        return f"Fill({self.selector}, {shown})"


@dataclass(frozen=True)
class SetFieldValue(Step):
    """Assign an input's value property directly."""
    selector: str
    value: str

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.eval_on_selector(self.selector, SET_VALUE_JS, self.value)

    def describe(self) -> str:
        return f"SetFieldValue({self.selector}, {self.value})"


@dataclass(frozen=True)
class SetAttribute(Step):
    selector: str
    name: str
    value: str

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.eval_on_selector(self.selector, SET_ATTRIBUTE_JS, [self.name, self.value])

    def describe(self) -> str:
        return f"SetAttribute({self.selector}, {self.name}={self.value})"


@dataclass(frozen=True)
class RemoveAttribute(Step):
    selector: str
    name: str

    async def run(self, ctx: StepContext) -> None:
        await ctx.page.eval_on_selector(self.selector, REMOVE_ATTRIBUTE_JS, self.name)

    def describe(self) -> str:
        return f"RemoveAttribute({self.selector}, {self.name})"


@dataclass(frozen=True)
class Evaluate(Step):
    """Evaluate a page script and store its JSON result under key."""
    script: str
    key: str
    arg: Any = None

    async def run(self, ctx: StepContext) -> None:
        ctx.results[self.key] = await ctx.page.evaluate(self.script, self.arg)

    def describe(self) -> str:
        return f"Evaluate({self.key})"


@dataclass(frozen=True)
class ReadText(Step):
    selector: str
    key: str

    async def run(self, ctx: StepContext) -> None:
        ctx.results[self.key] = (await ctx.page.inner_text(self.selector, timeout=ctx.timeout_ms)).strip()

    def describe(self) -> str:
        return f"ReadText({self.selector} -> {self.key})"


@dataclass(frozen=True)
class Sleep(Step):
    seconds: float

    async def run(self, ctx: StepContext) -> None:
        await asyncio.sleep(self.seconds)

    def describe(self) -> str:
        return f"Sleep({self.seconds:.2f}s)"


@dataclass(frozen=True)
class Hook(Step):
    """Arbitrary decision logic. May raise to abort the sequence."""
    fn: Callable[[StepContext], Awaitable[None]]
    name: str = "hook"

    async def run(self, ctx: StepContext) -> None:
        await self.fn(ctx)

    def describe(self) -> str:
        return f"Hook({self.name})"


@dataclass(frozen=True)
class StepSequence:
    """Immutable ordered list of steps."""
    steps: tuple[Step, ...] = ()

    @classmethod
    def of(cls, *steps: Step) -> "StepSequence":
        return cls(tuple(steps))

    def __add__(self, other: "StepSequence") -> "StepSequence":
        return StepSequence(self.steps + other.steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def describe(self) -> list[str]:
        return [step.describe() for step in self.steps]


async def run_sequence(
    sequence: StepSequence,
    ctx: StepContext,
    label: Optional[str] = None,
) -> None:
    """Run every step in order, stopping at the first failure.

    LeaseError subclasses propagate unchanged; anything else is wrapped
    in StepFailed naming the step.
    """
    total = len(sequence)
    prefix = f"[{label}] " if label else ""
    for index, step in enumerate(sequence, 1):
        logger.debug(f"{prefix}step {index}/{total}: {step.describe()}")
        try:
            await step.run(ctx)
        except LeaseError:
            raise
        except Exception as e:
            logger.debug(f"{prefix}step {index}/{total} failed: {e}")
            raise StepFailed(step.describe(), e) from e
