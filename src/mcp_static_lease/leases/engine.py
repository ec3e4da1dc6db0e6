"""Lease Engine - plan and apply a desired lease set on one appliance.

Orchestrates:
1. Refreshing tracked state from the appliance
2. Planning the changes against tracked state
3. Executing them through the reconciler, one at a time
4. Recording each change in tracked state and the audit log
"""
import logging
from typing import Optional

from ..errors import AlertAborted, ApplianceRejected, LeaseNotFound, TransportFailure
from ..models import OperationOutcome, OutcomeKind, ReservationEntry, normalize_mac
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .reconciler import LeaseReconciler
from .schema import (
    ApplyResult,
    ChangeType,
    DesiredLeases,
    LeaseChange,
    LeasePlan,
    RefreshReport,
)
from .state import LeaseStateStore

logger = logging.getLogger(__name__)

# Deletes free hardware addresses and IPs before anything claims them
_APPLY_ORDER = {
    ChangeType.DELETE: 0,
    ChangeType.REPLACE: 1,
    ChangeType.UPDATE: 2,
    ChangeType.CREATE: 3,
    ChangeType.NO_CHANGE: 4,
}

_COMPARED_FIELDS = ("hostname", "ip_address", "enabled")


def diff_entry(current: ReservationEntry, desired: ReservationEntry) -> list[str]:
    return [f for f in _COMPARED_FIELDS if getattr(current, f) != getattr(desired, f)]


class LeaseEngine:
    """
    Reconcile a named set of static leases on one appliance.

    Usage:
        engine = LeaseEngine(reconciler, store)
        plan = engine.plan(desired)
        result = await engine.apply(desired, dry_run=True)
    """

    def __init__(
        self,
        reconciler: LeaseReconciler,
        store: LeaseStateStore,
        tracker: Optional[ChangeTracker] = None,
    ):
        self.reconciler = reconciler
        self.store = store
        self.appliance_id = reconciler.appliance_id
        self.tracker = tracker or ChangeTracker(self.appliance_id)

    def tracked(self) -> dict[str, ReservationEntry]:
        return self.store.load(self.appliance_id)

    # === Refresh ===

    async def refresh(self, persist: bool = True) -> RefreshReport:
        """Re-read every tracked lease and update tracked state.

        Leases the appliance no longer has are dropped from state so the
        next plan recreates them. Reads that fail keep the entry as is.
        With persist=False the refreshed state is only returned on the
        report and the state file is left untouched.
        """
        report = RefreshReport(appliance_id=self.appliance_id)
        leases = self.tracked()

        async with timed_section("refresh", self.appliance_id, tracked=len(leases)):
            for name, entry in list(leases.items()):
                report.checked += 1
                outcome = await self.reconciler.read(entry.mac_address)

                if outcome.kind == OutcomeKind.NOT_FOUND:
                    logger.warning(f"Lease '{name}' ({entry.mac_address}) disappeared from {self.appliance_id}")
                    del leases[name]
                    report.dropped.append(name)
                elif outcome.ok and outcome.entry is not None:
                    if outcome.entry != entry:
                        logger.info(f"Lease '{name}' drifted: {diff_entry(entry, outcome.entry)}")
                        report.drifted.append(name)
                    leases[name] = outcome.entry
                else:
                    report.errors[name] = outcome.message or outcome.kind.value

            if persist:
                self.store.save(self.appliance_id, leases)

        report.leases = leases
        return report

    # === Plan ===

    def plan(
        self,
        desired: DesiredLeases,
        current: Optional[dict[str, ReservationEntry]] = None,
    ) -> LeasePlan:
        """Compare the desired leases against tracked state.

        current overrides the stored state, e.g. with a refresh that was
        not persisted.
        """
        if desired.appliance_id != self.appliance_id:
            raise ValueError(
                f"Desired config targets '{desired.appliance_id}', engine manages '{self.appliance_id}'"
            )

        if current is None:
            current = self.tracked()
        changes: list[LeaseChange] = []

        for name, entry in desired.leases.items():
            existing = current.get(name)
            if existing is None:
                changes.append(LeaseChange(name, ChangeType.CREATE, desired=entry))
            elif existing.mac_address != entry.mac_address:
                changes.append(LeaseChange(
                    name, ChangeType.REPLACE, current=existing, desired=entry,
                    changed_fields=["mac_address", *diff_entry(existing, entry)],
                ))
            else:
                changed = diff_entry(existing, entry)
                change_type = ChangeType.UPDATE if changed else ChangeType.NO_CHANGE
                changes.append(LeaseChange(
                    name, change_type, current=existing, desired=entry, changed_fields=changed,
                ))

        for name, existing in current.items():
            if name not in desired.leases:
                changes.append(LeaseChange(name, ChangeType.DELETE, current=existing))

        changes.sort(key=lambda c: _APPLY_ORDER[c.change_type])
        return LeasePlan(appliance_id=self.appliance_id, changes=changes)

    # === Apply ===

    async def apply(
        self,
        desired: DesiredLeases,
        dry_run: bool = False,
        refresh: bool = True,
    ) -> ApplyResult:
        """Bring the appliance to the desired lease set.

        Changes run in plan order and stop at the first failure; state
        reflects every change that completed. A dry run reads the appliance
        but writes neither to it nor to the state file.
        """
        result = ApplyResult(dry_run=dry_run)
        current: Optional[dict[str, ReservationEntry]] = None

        if refresh:
            report = await self.refresh(persist=not dry_run)
            if report.errors:
                result.error = "Failed to refresh tracked state"
                result.error_context = "\n".join(f"{n}: {e}" for n, e in report.errors.items())
                return result
            current = report.leases

        plan = self.plan(desired, current)
        if plan.no_change:
            result.success = True
            result.changes_made = ["No changes needed - state already matches"]
            return result

        if dry_run:
            result.success = True
            result.changes_made = [c.describe() for c in plan.pending]
            for change in plan.pending:
                self._audit(change, OperationOutcome.success(), dry_run=True)
            return result

        async with timed_section("apply", self.appliance_id, changes=plan.total_changes):
            for change in plan.pending:
                outcome = await self._execute(change)
                self._record(change, outcome)
                self._audit(change, outcome)
                result.outcomes.append({"name": change.name, "change": change.change_type.value, **outcome.to_dict()})

                if not outcome.ok:
                    result.error = f"{change.describe().strip()}: {outcome.message or outcome.kind.value}"
                    result.error_context = outcome.kind.value
                    logger.error(f"Apply stopped on {self.appliance_id}: {result.error}")
                    return result

                result.changes_made.append(change.describe())

        result.success = True
        return result

    async def _execute(self, change: LeaseChange) -> OperationOutcome:
        if change.change_type == ChangeType.CREATE:
            return await self.reconciler.create(change.desired)
        if change.change_type == ChangeType.DELETE:
            return await self.reconciler.delete(change.current.mac_address)
        return await self.reconciler.update(change.current.mac_address, change.desired)

    def _record(self, change: LeaseChange, outcome: OperationOutcome) -> None:
        """Update tracked state after one executed change."""
        if outcome.ok:
            if change.change_type == ChangeType.DELETE:
                self.store.remove(self.appliance_id, change.name)
            else:
                self.store.put(self.appliance_id, change.name, outcome.entry or change.desired)
            return

        # The old row is already gone when the create half of an update fails
        if outcome.details.get("failed_phase") == "create":
            self.store.remove(self.appliance_id, change.name)

    def _audit(self, change: LeaseChange, outcome: OperationOutcome, dry_run: bool = False) -> None:
        operation = {
            ChangeType.CREATE: "lease_create",
            ChangeType.DELETE: "lease_delete",
        }.get(change.change_type, "lease_update")
        self.tracker.log_change(
            operation=operation,
            resource=change.name,
            parameters=change.to_dict(),
            success=outcome.ok,
            output=outcome.message if outcome.ok else "",
            error=None if outcome.ok else (outcome.message or outcome.kind.value),
            dry_run=dry_run,
            before_state=change.current.to_dict() if change.current else None,
            after_state=change.desired.to_dict() if change.desired and outcome.ok else None,
        )

    # === Import ===

    async def import_lease(self, name: str, mac_address: str) -> ReservationEntry:
        """Start tracking an existing lease under a resource name.

        Raises:
            LeaseNotFound: The appliance has no lease for the address
            LeaseError: The lookup itself failed
        """
        mac = normalize_mac(mac_address)
        outcome = await self.reconciler.import_entry(mac)
        self.tracker.log_change(
            operation="lease_import",
            resource=name,
            parameters={"mac_address": mac},
            success=outcome.ok,
            error=None if outcome.ok else (outcome.message or outcome.kind.value),
            after_state=outcome.entry.to_dict() if outcome.entry else None,
        )

        if outcome.kind == OutcomeKind.NOT_FOUND:
            raise LeaseNotFound(mac)
        if not outcome.ok or outcome.entry is None:
            raise outcome_error(outcome)

        self.store.put(self.appliance_id, name, outcome.entry)
        logger.info(f"Imported lease '{name}' ({mac}) on {self.appliance_id}")
        return outcome.entry


def outcome_error(outcome: OperationOutcome) -> Exception:
    """Exception matching a failed outcome."""
    if outcome.kind == OutcomeKind.REJECTED:
        return ApplianceRejected(outcome.message)
    if outcome.kind == OutcomeKind.ALERT_ABORTED:
        return AlertAborted(outcome.message)
    return TransportFailure(outcome.message)
