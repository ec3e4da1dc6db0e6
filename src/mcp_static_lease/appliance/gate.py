"""Session gate: exclusive owner of the appliance's single UI session.

The appliance accepts one logged-in session at a time and has no
operation-scoped locking of its own. Every operation therefore runs as:

    acquire lock -> launch browser -> login -> run sequence -> teardown -> release

Sessions are never reused across operations. The lock has no timeout;
callers cancel by cancelling their asyncio task, and teardown still runs.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from playwright.async_api import async_playwright

from .. import models
from ..errors import (
    AlertAborted,
    ApplianceRejected,
    LoginFailed,
    StepFailed,
    TransportFailure,
)
from ..utils.logging_config import timed
from . import ui
from .base import ApplianceConfig, ApplianceSession
from .dialogs import DialogListener
from .steps import (
    Click,
    Fill,
    Navigate,
    StepContext,
    StepSequence,
    WaitVisible,
    run_sequence,
)

logger = logging.getLogger(__name__)


class PlaywrightLauncher:
    """Launch a throwaway Chromium page for one session."""

    def __init__(self, extra_args: Optional[list[str]] = None):
        self.extra_args = list(extra_args or [])

    @asynccontextmanager
    async def open_page(self, config: ApplianceConfig) -> AsyncIterator[Any]:
        launch_args = [
            "--no-sandbox",
            "--disable-gpu",
            "--disable-dev-shm-usage",
            *config.browser_args,
            *self.extra_args,
        ]
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=config.headless, args=launch_args)
            try:
                # The appliance ships a self-signed certificate
                context = await browser.new_context(ignore_https_errors=not config.verify_ssl)
                context.set_default_timeout(config.timeout_ms)
                context.set_default_navigation_timeout(config.timeout_ms)
                page = await context.new_page()
                yield page
            finally:
                await browser.close()


def login_sequence(config: ApplianceConfig) -> StepSequence:
    return StepSequence.of(
        Navigate(config.base_url),
        WaitVisible(ui.LOGIN_BUTTON),
        Fill(ui.LOGIN_USERNAME, config.username),
        Fill(ui.LOGIN_PASSWORD, config.get_password(), secret=True),
        Click(ui.LOGIN_BUTTON),
        WaitVisible(ui.LANDING_MARKER),
    )


class SessionGate:
    """Serialize step sequences onto fresh appliance sessions."""

    def __init__(
        self,
        appliance_id: str,
        config: ApplianceConfig,
        launcher: Optional[Any] = None,
    ):
        self.appliance_id = appliance_id
        self.config = config
        self.launcher = launcher or PlaywrightLauncher()
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _login(self, ctx: StepContext) -> None:
        try:
            await run_sequence(login_sequence(self.config), ctx, label=f"{self.appliance_id}:login")
        except StepFailed as e:
            raise LoginFailed(f"login flow broken: {e}") from e
        logger.debug(f"Logged in to {self.appliance_id} as {self.config.username}")

    def _alert_outcome(
        self,
        session: ApplianceSession,
        ctx: StepContext,
        cause: str,
    ) -> models.OperationOutcome:
        """A dialog that fired before a later step failed is the real reason."""
        logger.error(f"[{self.appliance_id}] router alert preceded failure: {session.alert_message}")
        ctx.results["transport_error"] = cause
        return models.OperationOutcome.alert_aborted(session.alert_message, details=ctx.results)

    @timed("session")
    async def execute(
        self,
        sequence: StepSequence,
        label: Optional[str] = None,
    ) -> models.OperationOutcome:
        """Run a sequence on a fresh session and classify how it ended.

        Successful runs return a success outcome whose details hold the
        step results. Errors raised by steps become the matching outcome
        variant; cancellation propagates after teardown.
        """
        label = label or self.appliance_id
        if self.busy:
            logger.debug(f"[{label}] waiting for the appliance session")

        async with self._lock:
            session = ApplianceSession(endpoint=self.config.host, username=self.config.username)
            ctx = StepContext(session=session, timeout_ms=self.config.timeout_ms)
            listener = DialogListener(session)
            logger.info(f"[{label}] opening session to {self.config.host}")
            try:
                async with self.launcher.open_page(self.config) as page:
                    session.page = page
                    listener.attach(page)
                    try:
                        await self._login(ctx)
                        await run_sequence(sequence, ctx, label=label)
                    finally:
                        await listener.drain()
            except AlertAborted as e:
                logger.error(f"[{label}] halted by router alert: {e.alert_message}")
                return models.OperationOutcome.alert_aborted(e.alert_message, details=ctx.results)
            except ApplianceRejected as e:
                return models.OperationOutcome.rejected(e.overlay_text, details=ctx.results)
            except TransportFailure as e:
                logger.error(f"[{label}] browser session failed: {e}")
                if session.alert_found:
                    return self._alert_outcome(session, ctx, str(e))
                return models.OperationOutcome.transport_failure(str(e), details=ctx.results)
            except Exception as e:
                # Browser launch and teardown errors raised outside any step
                logger.exception(f"[{label}] browser session failed")
                if session.alert_found:
                    return self._alert_outcome(session, ctx, f"browser session failed: {e}")
                return models.OperationOutcome.transport_failure(
                    f"browser session failed: {e}", details=ctx.results
                )
            finally:
                session.page = None
                logger.info(f"[{label}] session closed")

        return models.OperationOutcome.success(details=ctx.results)
