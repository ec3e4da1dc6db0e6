"""Dialog classifier.

The appliance signals outcomes on two independent channels:

1. Native browser dialogs (alert/confirm) for hard preconditions such as a
   duplicate entry. The listener records the message on the session and
   accepts the dialog in a detached task so the page keeps responding.
2. In-page overlay panels after Apply. An error marker element inside the
   overlay means the change was rejected; the overlay text is captured
   either way.

Dialog state reaches the running sequence by message passing: the listener
only writes to the operation's session, and the sequence polls it with
CheckAlerts after mutating steps.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..errors import AlertAborted
from . import ui
from .base import ApplianceSession
from .steps import Step, StepContext

logger = logging.getLogger(__name__)

ERROR_MARKER_JS = "(selector) => document.querySelector(selector) !== null"


class DialogListener:
    """Page 'dialog' event handler bound to one session."""

    def __init__(self, session: ApplianceSession):
        self.session = session
        self._pending: set[asyncio.Task] = set()

    def __call__(self, dialog: Any) -> None:
        message = dialog.message
        logger.warning(f"Unsolicited dialog from {self.session.endpoint}: {message}")
        self.session.record_alert(message)
        task = asyncio.ensure_future(self._accept(dialog))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _accept(self, dialog: Any) -> None:
        try:
            await dialog.accept()
        except Exception as e:
            # The page may already be closing when teardown races the accept
            logger.debug(f"Dialog accept failed: {e}")

    def attach(self, page: Any) -> None:
        page.on("dialog", self)

    async def drain(self) -> None:
        """Wait for outstanding accept tasks before the page is closed."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def raise_if_alerted(session: ApplianceSession) -> None:
    if session.alert_found:
        raise AlertAborted(session.alert_message)


@dataclass(frozen=True)
class OverlayVerdict:
    """Classification of the response overlay after Apply."""
    rejected: bool
    text: str

    def to_dict(self) -> dict:
        return {"rejected": self.rejected, "text": self.text}


async def classify_overlay(ctx: StepContext) -> OverlayVerdict:
    """Probe the visible overlay for the error marker and read its text."""
    has_error = bool(await ctx.page.evaluate(ERROR_MARKER_JS, ui.ERROR_MARKER))
    text = (await ctx.page.inner_text(ui.OVERLAY_CONTENT, timeout=ctx.timeout_ms)).strip()
    logger.debug(f"Overlay message: {text}")
    return OverlayVerdict(rejected=has_error, text=text)


@dataclass(frozen=True)
class CheckAlerts(Step):
    """Give a dialog time to fire, then abort if one did."""
    settle: float = 0.0

    async def run(self, ctx: StepContext) -> None:
        if self.settle:
            await asyncio.sleep(self.settle)
        raise_if_alerted(ctx.session)

    def describe(self) -> str:
        return f"CheckAlerts({self.settle:.2f}s)"


@dataclass(frozen=True)
class ClassifyOverlay(Step):
    key: str = "overlay"

    async def run(self, ctx: StepContext) -> None:
        ctx.results[self.key] = await classify_overlay(ctx)

    def describe(self) -> str:
        return f"ClassifyOverlay({self.key})"
