"""Shared fixtures: an in-memory Icotera admin UI driven through a fake page.

The fake honours the same selectors and page scripts the engine sends to a
real browser. Committed rows live on FakeAppliance; each page works on its
own pending copy until Apply succeeds.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from mcp_static_lease.appliance import ApplianceConfig, SessionGate
from mcp_static_lease.appliance import ui
from mcp_static_lease.appliance.dialogs import ERROR_MARKER_JS
from mcp_static_lease.appliance.extractor import (
    FIND_ROW_JS,
    REMOVE_ROW_JS,
    ROW_COUNT_JS,
    identity_matches,
)
from mcp_static_lease.appliance.steps import (
    REMOVE_ATTRIBUTE_JS,
    SET_ATTRIBUTE_JS,
    SET_VALUE_JS,
)
from mcp_static_lease.leases.reconciler import LeaseReconciler

APPLIED_TEXT = "The configuration has been applied."
REJECTED_TEXT = "Error: IP address is outside the LAN subnet."
DUPLICATE_TEXT = "Duplicate entry: MAC address already exists"


@dataclass
class Row:
    ip: str
    mac: str
    host: str
    enabled: bool = False

    def cells(self) -> list[str]:
        return [self.ip, self.mac, self.host, ""]


class FakeDialog:
    def __init__(self, message: str):
        self.message = message
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True


@dataclass
class FakeAppliance:
    """Server side of the appliance: committed leases and credentials."""
    username: str = "admin"
    password: str = "secret"
    rows: list[Row] = field(default_factory=list)
    reject_ips: set[str] = field(default_factory=set)
    reject_apply: bool = False
    dialog_after: dict[str, str] = field(default_factory=dict)
    hide_table: bool = False
    broken_selectors: set[str] = field(default_factory=set)
    hang_on: Optional[str] = None
    events: list[str] = field(default_factory=list)
    snapshots: list[list[Row]] = field(default_factory=list)
    removals: list[str] = field(default_factory=list)
    dialogs: list[FakeDialog] = field(default_factory=list)
    active: int = 0
    max_active: int = 0

    def add(self, ip: str, mac: str, host: str, enabled: bool = False) -> None:
        self.rows.append(Row(ip, mac, host, enabled))

    def find(self, mac: str) -> list[Row]:
        return [r for r in self.rows if identity_matches(r.mac, mac)]

    def commit(self, rows: list[Row]) -> None:
        self.rows = [Row(r.ip, r.mac, r.host, r.enabled) for r in rows]
        self.snapshots.append(list(self.rows))


class FakePage:
    """Client side: one logged-in browser tab."""

    def __init__(self, appliance: FakeAppliance):
        self.appliance = appliance
        self.handlers: dict[str, list] = {}
        self.screen = "blank"
        self.logged_in = False
        self.tree_open = False
        self.credentials: dict[str, str] = {}
        self.fields: dict[str, str] = {}
        self.enabled_checked = False
        self.rows: Optional[list[Row]] = None
        self.overlay: Optional[tuple[str, bool]] = None

    # --- event plumbing ---

    def on(self, event: str, handler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def _fire_dialog(self, message: str) -> None:
        dialog = FakeDialog(message)
        self.appliance.dialogs.append(dialog)
        for handler in self.handlers.get("dialog", []):
            handler(dialog)

    # --- visibility model ---

    def _visible(self, selector: str) -> bool:
        on_leases = self.logged_in and self.screen == "leases"
        if selector == ui.LOGIN_BUTTON:
            return self.screen == "login"
        if selector == ui.LANDING_MARKER:
            return self.logged_in
        if selector == ui.TREE_ROOT:
            return self.logged_in
        if selector == ui.LAN_STATUS_LINK:
            return self.logged_in and self.tree_open
        if selector == ui.LEASE_TABLE:
            return on_leases and not self.appliance.hide_table
        if selector in (ui.ADD_ROW, ui.ADD_BUTTON, ui.APPLY_BUTTON,
                        ui.FIELD_IP, ui.FIELD_MAC, ui.FIELD_HOSTNAME, ui.FIELD_ENABLED):
            return on_leases
        if selector in (ui.OVERLAY, ui.OVERLAY_PANEL, ui.CONTINUE_BUTTON, ui.OVERLAY_CONTENT):
            return self.overlay is not None
        if selector == ui.LOADING:
            return False
        raise AssertionError(f"unexpected selector {selector}")

    async def _require(self, selector: str) -> None:
        await asyncio.sleep(0)
        if selector in self.appliance.broken_selectors or not self._visible(selector):
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    # --- page API used by steps ---

    async def goto(self, url: str, wait_until: str = "load", timeout: float = 0) -> None:
        await asyncio.sleep(0)
        self.screen = "login"

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 0) -> None:
        if selector == self.appliance.hang_on:
            await asyncio.Event().wait()
        await asyncio.sleep(0)
        if selector in self.appliance.broken_selectors:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")
        visible = self._visible(selector)
        if state == "hidden" and visible:
            raise PlaywrightTimeoutError(f"{selector} still visible")
        if state in ("visible", "attached") and not visible:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def fill(self, selector: str, text: str, timeout: float = 0) -> None:
        await self._require(ui.LOGIN_BUTTON)
        self.credentials[selector] = text

    async def click(self, selector: str, timeout: float = 0) -> None:
        await self._require(selector)
        if selector == ui.LOGIN_BUTTON:
            if (self.credentials.get(ui.LOGIN_USERNAME) == self.appliance.username
                    and self.credentials.get(ui.LOGIN_PASSWORD) == self.appliance.password):
                self.logged_in = True
                self.screen = "home"
        elif selector == ui.TREE_ROOT:
            self.tree_open = True
        elif selector == ui.LAN_STATUS_LINK:
            self.screen = "leases"
            if self.rows is None:
                self.rows = [Row(r.ip, r.mac, r.host, r.enabled) for r in self.appliance.rows]
        elif selector == ui.ADD_BUTTON:
            mac = self.fields.get(ui.FIELD_MAC, "")
            if any(identity_matches(r.mac, mac) for r in self.rows):
                self._fire_dialog(DUPLICATE_TEXT)
                return
            self.rows.append(Row(
                self.fields.get(ui.FIELD_IP, ""),
                mac,
                self.fields.get(ui.FIELD_HOSTNAME, ""),
                self.enabled_checked,
            ))
        elif selector == ui.APPLY_BUTTON:
            if self.appliance.reject_apply or any(r.ip in self.appliance.reject_ips for r in self.rows):
                self.overlay = (REJECTED_TEXT, True)
            else:
                self.appliance.commit(self.rows)
                self.overlay = (APPLIED_TEXT, False)
        elif selector == ui.CONTINUE_BUTTON:
            self.overlay = None
        else:
            raise AssertionError(f"unexpected click on {selector}")
        if selector in self.appliance.dialog_after:
            self._fire_dialog(self.appliance.dialog_after[selector])

    async def eval_on_selector(self, selector: str, script: str, arg: Any = None) -> Any:
        await self._require(selector)
        if script == SET_VALUE_JS:
            self.fields[selector] = arg
        elif script == SET_ATTRIBUTE_JS:
            name, _value = arg
            if selector == ui.FIELD_ENABLED and name == "checked":
                self.enabled_checked = True
        elif script == REMOVE_ATTRIBUTE_JS:
            if selector == ui.FIELD_ENABLED and arg == "checked":
                self.enabled_checked = False
        else:
            raise AssertionError("unexpected element script")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        await asyncio.sleep(0)
        table = self.rows if self.logged_in and self.screen == "leases" else None
        if self.appliance.hide_table:
            table = None
        if script == ROW_COUNT_JS:
            return len(table) if table is not None and arg == ui.LEASE_TABLE_ID else -1
        if script == FIND_ROW_JS:
            if table is None or arg["tableId"] != ui.LEASE_TABLE_ID:
                return {"found": False}
            for row in table:
                if identity_matches(row.cells()[arg["column"]], arg["target"]):
                    return {
                        "found": True,
                        "cells": [c.strip() for c in row.cells()],
                        "checked": [None, None, None, row.enabled],
                    }
            return {"found": False}
        if script == REMOVE_ROW_JS:
            if table is None or arg["tableId"] != ui.LEASE_TABLE_ID:
                return False
            for row in table:
                if identity_matches(row.cells()[arg["column"]], arg["target"]):
                    table.remove(row)
                    self.appliance.removals.append(arg["target"])
                    return True
            return False
        if script == ERROR_MARKER_JS:
            return arg == ui.ERROR_MARKER and self.overlay is not None and self.overlay[1]
        raise AssertionError("unexpected page script")

    async def inner_text(self, selector: str, timeout: float = 0) -> str:
        await self._require(selector)
        if selector == ui.OVERLAY_CONTENT:
            return f"  {self.overlay[0]}\n"
        raise AssertionError(f"unexpected inner_text on {selector}")


class FakeLauncher:
    """Stands in for PlaywrightLauncher, one FakePage per session."""

    def __init__(self, appliance: FakeAppliance):
        self.appliance = appliance
        self.pages: list[FakePage] = []

    @asynccontextmanager
    async def open_page(self, config: ApplianceConfig):
        appliance = self.appliance
        appliance.active += 1
        appliance.max_active = max(appliance.max_active, appliance.active)
        appliance.events.append("open")
        page = FakePage(appliance)
        self.pages.append(page)
        try:
            yield page
        finally:
            appliance.active -= 1
            appliance.events.append("close")


def make_config(**overrides) -> ApplianceConfig:
    values = dict(
        type="icotera-i4850",
        name="Test Gateway",
        host="192.0.2.1",
        username="admin",
        password="secret",
        timeout=1,
        retries=1,
        retry_delay=0,
        menu_delay=0,
        alert_settle_delay=0,
        table_settle_delay=0,
        overlay_delay=0,
    )
    values.update(overrides)
    return ApplianceConfig(**values)


@pytest.fixture
def appliance():
    return FakeAppliance()


@pytest.fixture
def launcher(appliance):
    return FakeLauncher(appliance)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def gate(config, launcher):
    return SessionGate("test-gw", config, launcher=launcher)


@pytest.fixture
def reconciler(gate):
    return LeaseReconciler(gate)
