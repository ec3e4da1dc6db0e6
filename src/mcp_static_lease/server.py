"""MCP Server for static DHCP lease management.

Drives the web UI of single-session appliances (Icotera i4850) through a
headless browser, one operation at a time per appliance.

Tools exposed:
- list_appliances: List all configured appliances
- appliance_status: Check that an appliance's admin UI answers
- lease_read: Read the static lease for a MAC address
- lease_create: Add a static lease
- lease_update: Replace a static lease (delete, then create)
- lease_delete: Remove a static lease
- lease_import: Start tracking an existing lease under a name
- lease_plan: Show changes needed to reach a desired lease set
- lease_apply: Apply a desired lease set (declarative)
- get_audit_log: Recent lease changes
"""
import asyncio
import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .appliance import check_reachable
from .config.inventory import ApplianceInventory
from .leases import LeaseConfigParser
from .models import ReservationEntry
from .utils.audit_log import ChangeTracker, setup_audit_logging, get_recent_changes
from .utils.logging_config import setup_logging, timed_section

# Initialize audit logging
setup_audit_logging()

setup_logging()
logger = logging.getLogger(__name__)

# Global inventory (initialized on first tool call)
inventory: Optional[ApplianceInventory] = None


def get_inventory() -> ApplianceInventory:
    """Get or create the appliance inventory."""
    global inventory
    if inventory is None:
        inventory = ApplianceInventory(os.environ.get("LEASECRAFT_CONFIG"))
    return inventory


server = Server("leasecraft")

_APPLIANCE_ID = {
    "type": "string",
    "description": "Appliance ID from appliances.yaml (e.g., 'home-gw')",
}
_MAC = {
    "type": "string",
    "description": "Hardware address, e.g. 'aa:bb:cc:dd:ee:ff' (case-insensitive)",
}
_LEASE_FIELDS = {
    "hostname": {"type": "string", "description": "Hostname for the reservation"},
    "mac_address": _MAC,
    "ip_address": {"type": "string", "description": "Reserved IPv4 address"},
    "enabled": {
        "type": "boolean",
        "description": "Whether the reservation is active",
        "default": False,
    },
}


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_appliances",
            description="List all configured appliances with their types and hosts",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="appliance_status",
            description="Check whether an appliance's admin UI is reachable (does not log in)",
            inputSchema={
                "type": "object",
                "properties": {"appliance_id": _APPLIANCE_ID},
                "required": ["appliance_id"],
            },
        ),
        Tool(
            name="lease_read",
            description="Read the static lease for a MAC address from the LAN status table",
            inputSchema={
                "type": "object",
                "properties": {"appliance_id": _APPLIANCE_ID, "mac_address": _MAC},
                "required": ["appliance_id", "mac_address"],
            },
        ),
        Tool(
            name="lease_create",
            description="Add a static lease and apply it. Returns the router's response text.",
            inputSchema={
                "type": "object",
                "properties": {"appliance_id": _APPLIANCE_ID, **_LEASE_FIELDS},
                "required": ["appliance_id", "hostname", "mac_address", "ip_address"],
            },
        ),
        Tool(
            name="lease_update",
            description=(
                "Replace a static lease: removes the lease for old_mac_address, "
                "then creates the new one. The create is skipped if the delete fails."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "appliance_id": _APPLIANCE_ID,
                    "old_mac_address": {
                        "type": "string",
                        "description": "MAC address of the lease to replace",
                    },
                    **_LEASE_FIELDS,
                },
                "required": [
                    "appliance_id", "old_mac_address", "hostname", "mac_address", "ip_address",
                ],
            },
        ),
        Tool(
            name="lease_delete",
            description="Remove the static lease for a MAC address. Fails if there is none.",
            inputSchema={
                "type": "object",
                "properties": {"appliance_id": _APPLIANCE_ID, "mac_address": _MAC},
                "required": ["appliance_id", "mac_address"],
            },
        ),
        Tool(
            name="lease_import",
            description="Start tracking an existing lease under a resource name",
            inputSchema={
                "type": "object",
                "properties": {
                    "appliance_id": _APPLIANCE_ID,
                    "name": {"type": "string", "description": "Resource name for the lease"},
                    "mac_address": _MAC,
                },
                "required": ["appliance_id", "name", "mac_address"],
            },
        ),
        Tool(
            name="lease_plan",
            description="Show the changes needed to reach a desired lease set (no changes made)",
            inputSchema={
                "type": "object",
                "properties": {
                    "config": {
                        "type": "object",
                        "description": "Desired lease set: {appliance: ID, leases: {name: {...}}}",
                    },
                },
                "required": ["config"],
            },
        ),
        Tool(
            name="lease_apply",
            description=(
                "Apply a desired lease set. Refreshes tracked state, then runs "
                "deletes, replacements and creates, stopping at the first failure."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "config": {
                        "type": "object",
                        "description": "Desired lease set: {appliance: ID, leases: {name: {...}}}",
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "Preview changes without applying (reads the router, saves nothing)",
                        "default": False,
                    },
                },
                "required": ["config"],
            },
        ),
        Tool(
            name="get_audit_log",
            description="Get recent lease changes from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "appliance_id": _APPLIANCE_ID,
                    "operation": {
                        "type": "string",
                        "description": "Filter by operation (e.g., 'lease_create')",
                    },
                    "limit": {"type": "integer", "default": 20},
                },
                "required": [],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    appliance_id = arguments.get("appliance_id", "N/A")

    async with timed_section(f"tool:{name}", appliance_id=appliance_id):
        try:
            inv = get_inventory()

            if name == "list_appliances":
                return await handle_list_appliances(inv)

            elif name == "appliance_status":
                return await handle_appliance_status(inv, arguments["appliance_id"])

            elif name == "lease_read":
                return await handle_lease_read(
                    inv, arguments["appliance_id"], arguments["mac_address"]
                )

            elif name == "lease_create":
                return await handle_lease_create(inv, arguments)

            elif name == "lease_update":
                return await handle_lease_update(inv, arguments)

            elif name == "lease_delete":
                return await handle_lease_delete(
                    inv, arguments["appliance_id"], arguments["mac_address"]
                )

            elif name == "lease_import":
                return await handle_lease_import(
                    inv,
                    arguments["appliance_id"],
                    arguments["name"],
                    arguments["mac_address"],
                )

            elif name == "lease_plan":
                return await handle_lease_plan(inv, arguments["config"])

            elif name == "lease_apply":
                return await handle_lease_apply(
                    inv, arguments["config"], arguments.get("dry_run", False)
                )

            elif name == "get_audit_log":
                return await handle_get_audit_log(
                    arguments.get("appliance_id"),
                    arguments.get("operation"),
                    arguments.get("limit", 20),
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

def _json(data: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2))]


def _entry_from_args(args: dict) -> ReservationEntry:
    return ReservationEntry(
        hostname=args["hostname"],
        mac_address=args["mac_address"],
        ip_address=args["ip_address"],
        enabled=bool(args.get("enabled", False)),
    )


async def handle_list_appliances(inv: ApplianceInventory) -> list[TextContent]:
    """List all configured appliances."""
    appliances = []
    for appliance_id in inv.get_appliance_ids():
        config = inv.get_appliance_config(appliance_id)
        appliances.append({
            "id": appliance_id,
            "name": config.get("name", appliance_id),
            "type": config.get("type"),
            "host": config.get("host"),
            "busy": inv.get_gate(appliance_id).busy,
        })
    return _json({"appliances": appliances})


async def handle_appliance_status(inv: ApplianceInventory, appliance_id: str) -> list[TextContent]:
    status = await check_reachable(inv.get_config(appliance_id))
    return _json({
        "appliance_id": appliance_id,
        "reachable": status.reachable,
        "status_code": status.status_code,
        "error": status.error,
    })


async def handle_lease_read(
    inv: ApplianceInventory, appliance_id: str, mac_address: str
) -> list[TextContent]:
    outcome = await inv.get_reconciler(appliance_id).read(mac_address)
    return _json({"appliance_id": appliance_id, **outcome.to_dict()})


async def handle_lease_create(inv: ApplianceInventory, args: dict) -> list[TextContent]:
    """Create a lease directly, outside any desired lease set."""
    appliance_id = args["appliance_id"]
    entry = _entry_from_args(args)
    outcome = await inv.get_reconciler(appliance_id).create(entry)

    ChangeTracker(appliance_id).log_change(
        operation="lease_create",
        resource=entry.mac_address,
        parameters=entry.to_dict(),
        success=outcome.ok,
        output=outcome.message if outcome.ok else "",
        error=None if outcome.ok else outcome.message,
        after_state=entry.to_dict() if outcome.ok else None,
    )
    return _json({"appliance_id": appliance_id, **outcome.to_dict()})


async def handle_lease_update(inv: ApplianceInventory, args: dict) -> list[TextContent]:
    appliance_id = args["appliance_id"]
    entry = _entry_from_args(args)
    outcome = await inv.get_reconciler(appliance_id).update(args["old_mac_address"], entry)

    ChangeTracker(appliance_id).log_change(
        operation="lease_update",
        resource=entry.mac_address,
        parameters={"old_mac_address": args["old_mac_address"], **entry.to_dict()},
        success=outcome.ok,
        output=outcome.message if outcome.ok else "",
        error=None if outcome.ok else outcome.message,
        after_state=entry.to_dict() if outcome.ok else None,
    )
    return _json({"appliance_id": appliance_id, **outcome.to_dict()})


async def handle_lease_delete(
    inv: ApplianceInventory, appliance_id: str, mac_address: str
) -> list[TextContent]:
    outcome = await inv.get_reconciler(appliance_id).delete(mac_address)

    ChangeTracker(appliance_id).log_change(
        operation="lease_delete",
        resource=mac_address,
        parameters={"mac_address": mac_address},
        success=outcome.ok,
        output=outcome.message if outcome.ok else "",
        error=None if outcome.ok else outcome.message,
    )
    return _json({"appliance_id": appliance_id, **outcome.to_dict()})


async def handle_lease_import(
    inv: ApplianceInventory, appliance_id: str, name: str, mac_address: str
) -> list[TextContent]:
    entry = await inv.get_engine(appliance_id).import_lease(name, mac_address)
    return _json({
        "appliance_id": appliance_id,
        "name": name,
        "imported": entry.to_dict(),
    })


async def handle_lease_plan(inv: ApplianceInventory, config: dict) -> list[TextContent]:
    desired = LeaseConfigParser().parse(config)
    plan = inv.get_engine(desired.appliance_id).plan(desired)
    return _json({**plan.to_dict(), "summary": plan.summary()})


async def handle_lease_apply(
    inv: ApplianceInventory, config: dict, dry_run: bool = False
) -> list[TextContent]:
    """Apply a desired lease set."""
    desired = LeaseConfigParser().parse(config)
    result = await inv.get_engine(desired.appliance_id).apply(desired, dry_run=dry_run)
    return _json({"appliance_id": desired.appliance_id, **result.to_dict()})


async def handle_get_audit_log(
    appliance_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 20
) -> list[TextContent]:
    """Get recent lease changes from the audit log."""
    records = get_recent_changes(
        appliance_id=appliance_id,
        operation=operation,
        limit=limit
    )

    formatted_records = []
    for r in records:
        formatted_records.append({
            "timestamp": r.timestamp,
            "appliance_id": r.appliance_id,
            "operation": r.operation,
            "resource": r.resource,
            "dry_run": r.dry_run,
            "success": r.success,
            "parameters": r.parameters,
            "output": r.output,
            "error": r.error,
        })

    return _json({
        "total_records": len(formatted_records),
        "filters": {
            "appliance_id": appliance_id,
            "operation": operation,
            "limit": limit,
        },
        "records": formatted_records,
    })


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for appliance_id in inv.get_appliance_ids():
        config = inv.get_appliance_config(appliance_id)
        resources.append(Resource(
            uri=AnyUrl(f"lease://{appliance_id}/state"),
            name=f"{config.get('name', appliance_id)} Tracked Leases",
            description=f"Static leases tracked for {appliance_id}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: lease://appliance_id/state
    uri_str = str(uri)
    if uri_str.startswith("lease://"):
        parts = uri_str[8:].split("/")
        if len(parts) >= 2 and parts[1] == "state":
            appliance_id = parts[0]
            leases = get_inventory().state_store.load(appliance_id)
            return json.dumps({
                "appliance_id": appliance_id,
                "leases": {name: entry.to_dict() for name, entry in leases.items()},
            }, indent=2)

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
