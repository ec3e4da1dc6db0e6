"""Lease reconciler: create/read/update/delete of one static lease.

Each operation is built as a step sequence and submitted to the session
gate. Per-operation states, recorded in the outcome details under
"states":

    navigating -> submitting -> awaiting_response
        -> {success | rejected | alert_aborted} -> [compensating] -> done

Only create compensates: a rejected Apply leaves the new row pending on the
appliance, which would block the next attempt, so the row is removed and
the removal applied. Cleanup is best effort; the rejection is reported
either way.
"""
import logging
from enum import Enum
from typing import Optional

from ..appliance import ui
from ..appliance.dialogs import CheckAlerts, ClassifyOverlay, OverlayVerdict
from ..appliance.extractor import FindRow, RemoveRow, RowMatch, WaitTableSettled
from ..appliance.gate import SessionGate
from ..appliance.steps import (
    Click,
    Hook,
    RemoveAttribute,
    SetAttribute,
    SetFieldValue,
    Sleep,
    StepContext,
    StepSequence,
    WaitAttached,
    WaitNotVisible,
    WaitVisible,
    run_sequence,
)
from ..errors import ApplianceRejected, LeaseError, TransportFailure
from ..models import OperationOutcome, OutcomeKind, ReservationEntry, normalize_mac
from ..utils.connection import retry_call
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)


class LeaseState(str, Enum):
    NAVIGATING = "navigating"
    SUBMITTING = "submitting"
    AWAITING_RESPONSE = "awaiting_response"
    SUCCESS = "success"
    REJECTED = "rejected"
    COMPENSATING = "compensating"
    DONE = "done"


def mark(state: LeaseState) -> Hook:
    """Step recording a state transition in the operation results."""
    async def _mark(ctx: StepContext) -> None:
        ctx.results.setdefault("states", []).append(state.value)
        logger.debug(f"[{ctx.session.endpoint}] -> {state.value}")
    return Hook(_mark, name=f"state:{state.value}")


class _ReadFailed(TransportFailure):
    def __init__(self, outcome: OperationOutcome):
        self.outcome = outcome
        super().__init__(outcome.message)


class LeaseReconciler:
    """Drive the static lease screen of one appliance."""

    def __init__(self, gate: SessionGate):
        self.gate = gate
        self.config = gate.config

    @property
    def appliance_id(self) -> str:
        return self.gate.appliance_id

    # === Shared step fragments ===

    def _open_lease_screen(self) -> StepSequence:
        return StepSequence.of(
            mark(LeaseState.NAVIGATING),
            Click(ui.TREE_ROOT),
            WaitVisible(ui.LAN_STATUS_LINK),
            Click(ui.LAN_STATUS_LINK),
            Sleep(self.config.menu_delay),
            WaitVisible(ui.ADD_ROW),
        )

    def _settle_table(self) -> StepSequence:
        return StepSequence.of(
            WaitTableSettled(ui.LEASE_TABLE_ID, floor=self.config.table_settle_delay),
        )

    def _apply(self) -> StepSequence:
        return StepSequence.of(
            WaitVisible(ui.APPLY_BUTTON),
            Click(ui.APPLY_BUTTON),
            Sleep(self.config.overlay_delay),
            WaitVisible(ui.OVERLAY_PANEL),
        )

    def _dismiss_overlay(self) -> StepSequence:
        return StepSequence.of(
            WaitVisible(ui.CONTINUE_BUTTON),
            Sleep(self.config.overlay_delay),
            WaitNotVisible(ui.LOADING),
            Click(ui.CONTINUE_BUTTON),
            WaitNotVisible(ui.OVERLAY),
        )

    # === Create ===

    def _cleanup_sequence(self, mac: str) -> StepSequence:
        async def reapply_if_removed(ctx: StepContext) -> None:
            if ctx.results.get("cleanup_removed"):
                logger.debug(f"Removing stale entry for {mac}")
                await run_sequence(self._apply() + self._dismiss_overlay(), ctx)
            else:
                logger.warning(f"No match found for MAC {mac} in the table")

        return (
            self._dismiss_overlay()
            + StepSequence.of(WaitVisible(ui.LEASE_TABLE))
            + self._settle_table()
            + StepSequence.of(
                RemoveRow(ui.LEASE_TABLE_ID, ui.COL_MAC, mac, key="cleanup_removed"),
                Hook(reapply_if_removed, name="reapply_if_removed"),
            )
        )

    def _create_sequence(self, entry: ReservationEntry) -> StepSequence:
        if entry.enabled:
            toggle = SetAttribute(ui.FIELD_ENABLED, "checked", "true")
        else:
            toggle = RemoveAttribute(ui.FIELD_ENABLED, "checked")

        async def settle_response(ctx: StepContext) -> None:
            verdict: OverlayVerdict = ctx.results["overlay"]
            if not verdict.rejected:
                await run_sequence(StepSequence.of(mark(LeaseState.SUCCESS)) + self._dismiss_overlay(), ctx)
                return

            logger.error(f"Router rejected config: {verdict.text}. Starting cleanup.")
            await run_sequence(StepSequence.of(mark(LeaseState.REJECTED), mark(LeaseState.COMPENSATING)), ctx)
            try:
                await run_sequence(self._cleanup_sequence(entry.mac_address), ctx, label="cleanup")
            except LeaseError as e:
                logger.warning(f"Cleanup after rejection failed for {entry.mac_address}: {e}")
                ctx.results["cleanup_error"] = str(e)

        return (
            self._open_lease_screen()
            + StepSequence.of(
                mark(LeaseState.SUBMITTING),
                SetFieldValue(ui.FIELD_IP, entry.ip_address),
                SetFieldValue(ui.FIELD_MAC, entry.mac_address),
                SetFieldValue(ui.FIELD_HOSTNAME, entry.hostname),
                toggle,
                Click(ui.ADD_BUTTON),
                # Router refuses duplicates with a native alert
                CheckAlerts(settle=self.config.alert_settle_delay),
                Sleep(self.config.menu_delay),
                mark(LeaseState.AWAITING_RESPONSE),
            )
            + self._apply()
            + StepSequence.of(
                CheckAlerts(),
                ClassifyOverlay("overlay"),
                Hook(settle_response, name="settle_response"),
                mark(LeaseState.DONE),
            )
        )

    @timed("lease_create")
    async def create(self, entry: ReservationEntry) -> OperationOutcome:
        """Add a static lease and apply it.

        Returns success with the declared entry, rejected with the
        overlay text (after best-effort cleanup), alert_aborted with the
        dialog text (no cleanup), or transport_failure.
        """
        logger.info(f"Creating lease {entry.mac_address} -> {entry.ip_address} ({entry.hostname})")
        outcome = await self.gate.execute(
            self._create_sequence(entry),
            label=f"{self.appliance_id}:create:{entry.mac_address}",
        )
        if not outcome.ok:
            return outcome

        verdict: Optional[OverlayVerdict] = outcome.details.get("overlay")
        if verdict is not None and verdict.rejected:
            return OperationOutcome.rejected(verdict.text, details=outcome.details)

        text = verdict.text if verdict else ""
        logger.info(f"Router reported success: {text}")
        return OperationOutcome.success(entry=entry, message=text, details=outcome.details)

    # === Read ===

    def _read_sequence(self, mac: str) -> StepSequence:
        return (
            self._open_lease_screen()
            + StepSequence.of(
                WaitVisible(ui.LEASE_TABLE),
                WaitVisible(ui.FIELD_IP),
            )
            + self._settle_table()
            + StepSequence.of(
                FindRow(ui.LEASE_TABLE_ID, ui.COL_MAC, mac, key="row"),
                mark(LeaseState.DONE),
            )
        )

    async def _read_once(self, mac: str) -> OperationOutcome:
        outcome = await self.gate.execute(
            self._read_sequence(mac),
            label=f"{self.appliance_id}:read:{mac}",
        )
        if outcome.kind == OutcomeKind.TRANSPORT_FAILURE:
            raise _ReadFailed(outcome)
        return outcome

    @timed("lease_read")
    async def read(self, mac_address: str) -> OperationOutcome:
        """Scrape the lease for a hardware address from the status table.

        Absent rows give not_found; the caller drops the entry from its
        tracked state. Transport failures are retried since reads do not
        change the appliance.
        """
        mac = normalize_mac(mac_address)
        logger.debug(f"READ START - target MAC: {mac}")
        try:
            outcome = await retry_call(
                self._read_once,
                mac,
                max_attempts=max(1, self.config.retries),
                min_wait=self.config.retry_delay,
                max_wait=self.config.retry_delay * 5,
                exceptions=(_ReadFailed,),
            )
        except _ReadFailed as e:
            return e.outcome

        if not outcome.ok:
            return outcome

        row: RowMatch = outcome.details.get("row") or RowMatch(found=False)
        if not row.found:
            logger.warning(f"Lease {mac} not found on router")
            return OperationOutcome.not_found(f"no static lease for {mac}", details=outcome.details)

        entry = ReservationEntry(
            hostname=row.text(ui.COL_HOSTNAME),
            mac_address=mac,
            ip_address=row.text(ui.COL_IP),
            enabled=row.is_checked(ui.COL_ENABLED),
        )
        logger.debug(f"READ RESULT - host: {entry.hostname}, IP: {entry.ip_address}, enabled: {entry.enabled}")
        return OperationOutcome.success(entry=entry, details=outcome.details)

    # === Delete ===

    def _delete_sequence(self, mac: str) -> StepSequence:
        async def require_removed(ctx: StepContext) -> None:
            if not ctx.results.get("removed"):
                raise TransportFailure(f"existing lease not found: {mac}")
            logger.debug(f"Entry found for {mac}")

        async def settle_response(ctx: StepContext) -> None:
            verdict: OverlayVerdict = ctx.results["overlay"]
            if verdict.rejected:
                await run_sequence(StepSequence.of(mark(LeaseState.REJECTED)), ctx)
                raise ApplianceRejected(verdict.text)
            await run_sequence(StepSequence.of(mark(LeaseState.SUCCESS)), ctx)

        return (
            self._open_lease_screen()
            + self._settle_table()
            + StepSequence.of(
                mark(LeaseState.SUBMITTING),
                RemoveRow(ui.LEASE_TABLE_ID, ui.COL_MAC, mac, key="removed"),
                Sleep(self.config.table_settle_delay),
                Hook(require_removed, name="require_removed"),
                mark(LeaseState.AWAITING_RESPONSE),
            )
            + self._apply()
            + StepSequence.of(
                CheckAlerts(),
                ClassifyOverlay("overlay"),
                Hook(settle_response, name="settle_response"),
            )
            + self._dismiss_overlay()
            + StepSequence.of(
                WaitAttached(ui.LEASE_TABLE),
                mark(LeaseState.DONE),
            )
        )

    @timed("lease_delete")
    async def delete(self, mac_address: str) -> OperationOutcome:
        """Remove the lease for a hardware address and apply.

        Deleting an absent lease is an error, not a no-op.
        """
        mac = normalize_mac(mac_address)
        logger.info(f"Deleting lease {mac}")
        outcome = await self.gate.execute(
            self._delete_sequence(mac),
            label=f"{self.appliance_id}:delete:{mac}",
        )
        if not outcome.ok:
            return outcome
        verdict: Optional[OverlayVerdict] = outcome.details.get("overlay")
        return OperationOutcome.success(message=verdict.text if verdict else "", details=outcome.details)

    # === Update ===

    @timed("lease_update")
    async def update(self, old_mac_address: str, entry: ReservationEntry) -> OperationOutcome:
        """Replace a lease: delete the old row, then create the new one.

        The table is keyed by hardware address and rows have no edit
        control, so there is no in-place update. A failed delete stops
        before the create so the table never holds two rows for one MAC.
        """
        deleted = await self.delete(old_mac_address)
        if not deleted.ok:
            failed = deleted.with_prefix("update failed in delete phase")
            failed.details["failed_phase"] = "delete"
            return failed

        created = await self.create(entry)
        if not created.ok:
            failed = created.with_prefix("update failed in create phase")
            failed.details["failed_phase"] = "create"
            return failed
        return created

    # === Import ===

    async def import_entry(self, mac_address: str) -> OperationOutcome:
        """Look up an existing lease by identity so it can be tracked."""
        return await self.read(mac_address)
