# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import logging
import sqlite3
import sys

from pydantic import ValidationError

from ..blockchain.migration import MigrationManager, MigrationParams, VerificationParams
from ..protocol.config.params import CONFIGS, DEFAULT_CONFIG
from ..protocol.crypto.addresses import format_address
from ..protocol.types.common import MigrationError


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

def get_manager(args) -> MigrationManager:
    return MigrationManager(CONFIGS[args.config])

# --- Commands ---
def cmd_copy(args):
    try:
        params = MigrationParams(
            source_path=args.source,
            destination_path=args.destination,
            retention_length=args.retention_length,
            address_list_path=args.addresses,
            root=args.root,
            verify_rebuild=args.verify_rebuild,
            compact=not args.no_compact,
        )
        result = get_manager(args).migrate(params)
    except (MigrationError, ValidationError, ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result.plan is not None:
        print(f"Plan:     {result.plan.describe()}")
        print(f"Snapshots copied: {result.snapshots_copied}")
    for root in result.roots:
        print(f"Root:     0x{root.hex()}")
    print(f"Nodes:    {result.nodes} account, {result.storage_nodes} storage")
    print(f"Code:     {result.code_blobs} blobs")
    print(f"Accounts: {result.accounts}")
    print(f"Written:  {result.bytes_written} bytes")
    if result.rebuilt_root is not None:
        print(f"Rebuild check passed: 0x{result.rebuilt_root.hex()}")
    if result.missing_addresses:
        print(f"{len(result.missing_addresses)} addresses not present in state:")
        for address in result.missing_addresses:
            print(f"  {format_address(address)}")

def cmd_check(args):
    try:
        params = VerificationParams(
            source_path=args.source,
            destination_path=args.destination,
            root=args.root,
            address_list_path=args.addresses,
        )
        report = get_manager(args).verify(params)
    except (MigrationError, ValidationError, ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Checked {report.checked} addresses at root 0x{report.root.hex()}")
    if report.ok:
        print("State matches.")
        return
    print(f"{len(report.mismatches)} mismatching addresses:")
    for mismatch in report.mismatches:
        print(f"  {mismatch.describe()}")
    sys.exit(2)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="State trie migration and verification")
    parser.add_argument("--config", choices=sorted(CONFIGS), default=DEFAULT_CONFIG.name,
                        help="Migration preset")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    subparsers = parser.add_subparsers(dest="command")

    # copy
    p_copy = subparsers.add_parser("copy", help="Copy reachable state into a new store")
    p_copy.add_argument("source", help="Source store path (opened read-only)")
    p_copy.add_argument("destination", help="Destination store path")
    p_copy.add_argument("--root", help="Explicit state root (hex); skips the retention scan")
    p_copy.add_argument("--addresses", help="File with one address per line for a targeted copy")
    p_copy.add_argument("--retention-length", type=int,
                        help="Minimum block distance between latest and backup roots (default: preset)")
    p_copy.add_argument("--verify-rebuild", action="store_true",
                        help="Cross-check the copy with a logical rebuild")
    p_copy.add_argument("--no-compact", action="store_true", help="Skip compaction afterwards")

    # check
    p_check = subparsers.add_parser("check", help="Compare account state between two stores")
    p_check.add_argument("source", help="Source store path")
    p_check.add_argument("destination", help="Destination store path")
    p_check.add_argument("--root", required=True, help="State root (hex) to compare at")
    p_check.add_argument("--addresses", required=True, help="File with one address per line")

    return parser

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "copy": cmd_copy(args)
    elif args.command == "check": cmd_check(args)
    else: parser.print_help()

if __name__ == "__main__":
    main()
