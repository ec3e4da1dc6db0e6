#!/usr/bin/env python3
"""leasecraft command line.

Usage:
    leasecraft plan    [-f leases.yaml]
    leasecraft apply   [-f leases.yaml] [--dry-run]
    leasecraft read    MAC    -a APPLIANCE
    leasecraft import  NAME MAC -a APPLIANCE
    leasecraft refresh -a APPLIANCE

Environment variables:
    LEASECRAFT_CONFIG       Path to appliances.yaml
    APPLIANCE_PASSWORD      Appliance credentials (default password_env)
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config.inventory import ApplianceInventory
from .errors import LeaseError
from .leases import LeaseConfigParser, ParseError
from .utils.audit_log import setup_audit_logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leasecraft",
        description="Reconcile static DHCP leases on single-session appliances",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Preview changes for a desired lease set
    leasecraft plan -f configs/leases.yaml

    # Apply them
    leasecraft apply -f configs/leases.yaml

    # Track a lease that already exists on the router
    leasecraft import printer1 aa:bb:cc:dd:ee:ff -a home-gw
""",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="appliances.yaml (default: search ./configs, ., ~/.config/leasecraft, /etc/leasecraft)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("plan", "Show planned changes"), ("apply", "Apply a desired lease set")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "-f", "--file",
            type=Path,
            default=Path("leases.yaml"),
            help="Desired lease set (default: leases.yaml)",
        )
        if name == "apply":
            cmd.add_argument("--dry-run", action="store_true", help="Preview without applying")

    read = sub.add_parser("read", help="Read the lease for a MAC address")
    read.add_argument("mac_address")
    read.add_argument("-a", "--appliance", required=True)

    imp = sub.add_parser("import", help="Track an existing lease under a name")
    imp.add_argument("name")
    imp.add_argument("mac_address")
    imp.add_argument("-a", "--appliance", required=True)

    refresh = sub.add_parser("refresh", help="Re-read all tracked leases")
    refresh.add_argument("-a", "--appliance", required=True)

    return parser


def _print(data: dict) -> None:
    print(json.dumps(data, indent=2))


async def run_command(args: argparse.Namespace, inv: ApplianceInventory) -> int:
    if args.command in ("plan", "apply"):
        desired = LeaseConfigParser().parse_file(args.file)
        engine = inv.get_engine(desired.appliance_id)
        if args.command == "plan":
            print(engine.plan(desired).summary())
            return 0
        result = await engine.apply(desired, dry_run=args.dry_run)
        _print(result.to_dict())
        return 0 if result.success else 1

    if args.command == "read":
        outcome = await inv.get_reconciler(args.appliance).read(args.mac_address)
        _print(outcome.to_dict())
        return 0 if outcome.ok else 1

    if args.command == "import":
        entry = await inv.get_engine(args.appliance).import_lease(args.name, args.mac_address)
        _print({"name": args.name, "imported": entry.to_dict()})
        return 0

    if args.command == "refresh":
        report = await inv.get_engine(args.appliance).refresh()
        _print(report.to_dict())
        return 0 if not report.errors else 1

    logger.error(f"Unknown command: {args.command}")
    return 2


def main(argv: Optional[list[str]] = None, inventory: Optional[ApplianceInventory] = None) -> int:
    """Main entry point for the leasecraft CLI."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    setup_audit_logging()

    try:
        inv = inventory or ApplianceInventory(args.config)
        return asyncio.run(run_command(args, inv))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (FileNotFoundError, KeyError, ParseError, ValueError) as e:
        logger.error(str(e))
        return 2
    except LeaseError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
