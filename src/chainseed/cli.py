"""chainseed CLI: provision a running dev chain, or check a config offline."""

import argparse
import logging
import os
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path
from typing import List, Optional

REPORT_FILENAME = "provision_report.json"
DEFAULT_KEY_ENV = "CHAINSEED_PRIVATE_KEY"


def _configure_logging(quiet: bool, verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _config_paths(args) -> List[Path]:
    if args.config:
        return [Path(p) for p in args.config]
    from .kernel.config import DEFAULT_CONFIG_PATH
    return [DEFAULT_CONFIG_PATH]


def _write_report(result, output_dir: Optional[Path], quiet: bool) -> None:
    from ._internal.canonical_json import canonical_dumps

    if output_dir is None:
        return
    output_dir.mkdir(parents=True, exist_ok=True)
    report_out = output_dir / REPORT_FILENAME
    report_out.write_text(canonical_dumps(result.model_dump(mode="json")) + "\n", encoding="utf-8")
    if not quiet:
        print(f"  Report: {report_out}")


def _print_provision_summary(result) -> None:
    status = "OK" if result.ok else "FAILED"
    print(f"[{status}] Provisioning {'complete' if result.ok else 'aborted'} ({result.endpoint})")
    for outcome in result.contracts:
        address = outcome.address or "-"
        print(f"  {outcome.name}: {address} ({outcome.state.value})")
    for tx in result.transactions:
        print(f"  tx {tx.name}: {tx.status}" + (f" {tx.tx_hash}" if tx.tx_hash else ""))
    if result.verified or result.warnings:
        print(f"  Verified: {result.verified}")
    for issue in result.warnings:
        print(f"  Warning [{issue.code}] {issue.name}: {issue.message}")


def main():
    """Main CLI entry point for chainseed commands."""
    try:
        chainseed_version = get_version("chainseed")
    except PackageNotFoundError:
        chainseed_version = "dev"

    parser = argparse.ArgumentParser(
        prog="chainseed",
        description="chainseed: provision a local Ethereum dev chain from a declarative config"
    )
    parser.add_argument("--version", action="version", version=f"chainseed {chainseed_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--config",
        action="append",
        default=None,
        help="Path to a config file (.toml or .json). Repeat to merge several; defaults to Contracts.toml"
    )
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every RPC-level step (DEBUG)."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # provision command
    provision_parser = subparsers.add_parser(
        "provision",
        help="Deploy/inject contracts and run transactions against a running chain",
        parents=[parent_parser]
    )
    provision_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Chain RPC port on localhost (overrides [chain].port)"
    )
    provision_parser.add_argument(
        "--rpc-url",
        default=None,
        help="Full RPC endpoint URL (overrides [chain].rpc_url and --port)"
    )
    provision_parser.add_argument(
        "--deployer",
        default=None,
        help="Deployer account address (overrides [chain].deployer)"
    )
    provision_parser.add_argument(
        "--private-key-env",
        default=DEFAULT_KEY_ENV,
        help=f"Environment variable holding a key to sign locally with (default {DEFAULT_KEY_ENV})"
    )
    provision_parser.add_argument(
        "--receipt-timeout",
        type=float,
        default=None,
        help="Seconds to wait for each transaction receipt"
    )
    provision_parser.add_argument(
        "--wait-for-chain",
        type=int,
        default=0,
        metavar="ATTEMPTS",
        help="Poll the node up to ATTEMPTS times before starting"
    )
    provision_parser.add_argument(
        "--rerun-transactions",
        action="store_true",
        default=None,
        help="Submit transactions even if every contract was already present. Without it, a run "
             "that failed after its contracts were provisioned leaves its transactions unsent "
             "on every later run"
    )
    provision_parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help=f"Output directory for {REPORT_FILENAME}"
    )

    # check command
    subparsers.add_parser(
        "check",
        help="Validate a config offline (structure, encodings, references)",
        parents=[parent_parser]
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.quiet, args.verbose)

    if args.command == "provision":
        from .api import apply_overrides, provision
        from .errors import ProvisionError
        from .kernel.config import load_configs

        try:
            config = load_configs(_config_paths(args))
            config = apply_overrides(
                config,
                port=args.port,
                rpc_url=args.rpc_url,
                deployer=args.deployer,
                receipt_timeout=args.receipt_timeout,
                rerun_transactions=args.rerun_transactions,
            )
            private_key = os.environ.get(args.private_key_env) or None
            result = provision(config, private_key=private_key, wait_attempts=args.wait_for_chain)
        except ProvisionError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if not args.quiet:
            _print_provision_summary(result)
        _write_report(result, args.output_dir, args.quiet)
        if not result.ok:
            print(f"Error: {result.error}", file=sys.stderr)
            sys.exit(1)
        sys.exit(0)
    elif args.command == "check":
        from .api import validate

        paths = _config_paths(args)
        result = validate(paths)
        if not args.quiet:
            status = "OK" if result.ok else "FAILED"
            print(f"[{status}] Config check complete")
            print(f"  Errors: {len(result.errors)}")
            print(f"  Warnings: {len(result.warnings)}")
        for issue in result.errors:
            where = ".".join(p for p in (issue.entry, issue.field) if p)
            print(f"Error: [{issue.code}] {where + ': ' if where else ''}{issue.message}", file=sys.stderr)
        sys.exit(0 if result.ok else 1)


if __name__ == "__main__":
    main()
