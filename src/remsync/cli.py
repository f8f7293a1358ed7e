"""Command line interface for remsync.

Configuration is resolved once per invocation with unified precedence:
CLI args > env vars (.env loaded first) > YAML config > defaults.

Everything meant for the user goes to stdout; logs and progress go to
stderr, so ``remsync ls`` and ``remsync pull --json`` can be piped.

Exit codes:
    0  success
    1  a pull pass finished with per-document failures
    2  fatal error (configuration, local store, remote store, invariant)
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from .config_schema import UnifiedConfig, build_config
from .core.client import StorageClient
from .core.tokens import render_token
from .errors import RemsyncError
from .logger import setup_logging
from .sync.engine import SyncDriver
from .sync.models import SyncAction, SyncPhase
from .sync.reporter import (
    format_dry_run_preview,
    format_pass_report,
    format_tree,
    report_to_json,
)
from .validators import validate_doc_id

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2

# Commands that can run without a device token.
_TOKENLESS_COMMANDS = {"register", "init"}


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remsync",
        description="Mirror a reMarkable cloud document store into a local directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Register this machine with a one-time code from the web app
  remsync register abcdefgh

  # Show the remote tree
  remsync ls

  # Preview, then run, a pull into ~/remarkable
  remsync pull ~/remarkable --dry-run
  remsync pull ~/remarkable --create

  # Write a starter config file
  remsync init
        """,
    )
    parser.add_argument(
        "--auth-server",
        help="Override authentication server URL (takes precedence over "
        "REMSYNC_AUTH_SERVER and config files)",
    )
    parser.add_argument(
        "--discovery-server",
        help="Override service discovery URL (takes precedence over "
        "REMSYNC_DISCOVERY_SERVER and config files)",
    )
    parser.add_argument(
        "--device-token",
        help="Override device token (visible in process list -- prefer "
        "REMSYNC_DEVICE_TOKEN)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"remsync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    register = sub.add_parser(
        "register", help="Exchange a one-time code for a device token"
    )
    register.add_argument("code", help="One-time code from the web app")
    register.add_argument(
        "--desc",
        default="desktop-linux",
        help="Device description (default: desktop-linux)",
    )
    register.add_argument(
        "--id", dest="device_id", help="Device id (default: random UUID4)"
    )

    sub.add_parser("show-tokens", help="Print device and user token claims")
    sub.add_parser("ls", help="Print the remote document tree")

    fetch = sub.add_parser("fetch-blob", help="Download one document blob")
    fetch.add_argument("doc_id", metavar="ID", help="Document id")
    fetch.add_argument("out", metavar="OUT", help="Output file path")

    pull = sub.add_parser(
        "pull", help="Make a local store mirror the remote store"
    )
    pull.add_argument(
        "base_path",
        metavar="BASEPATH",
        nargs="?",
        help="Local store directory (default: store.path from config)",
    )
    pull.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without changing anything",
    )
    pull.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    pull.add_argument(
        "--max-parallel",
        type=int,
        help="Concurrent blob fetches, 1-16 (default: 4)",
    )
    pull.add_argument(
        "--create",
        action="store_true",
        help="Create the store directory if it does not exist",
    )

    sub.add_parser("init", help="Write a starter config file")

    return parser


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


def _load_unified() -> UnifiedConfig:
    if not discover_config_files():
        return UnifiedConfig()
    return build_config(load_hierarchical_config())


def _resolve_config(args: argparse.Namespace, unified: UnifiedConfig) -> Config:
    yaml_fallbacks: dict[str, Any] = {
        k: v
        for k, v in unified.remote.model_dump().items()
        if v is not None
    }
    return load_config(
        auth_server=args.auth_server,
        discovery_server=args.discovery_server,
        device_token=args.device_token,
        debug=args.debug,
        max_parallel_fetches=getattr(args, "max_parallel", None),
        yaml_fallbacks=yaml_fallbacks,
        require_token=args.command not in _TOKENLESS_COMMANDS,
    )


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


def cmd_register(
    args: argparse.Namespace, client: StorageClient, unified: UnifiedConfig
) -> int:
    device_id = args.device_id or str(uuid.uuid4())
    token = client.register_device(args.code, args.desc, device_id)
    logger.info("Registered device %s", device_id)
    print(token)
    return EXIT_OK


def cmd_show_tokens(
    args: argparse.Namespace, client: StorageClient, unified: UnifiedConfig
) -> int:
    print("Device token:")
    print(render_token(client.config.device_token))
    print("User token:")
    print(render_token(client.acquire_user_token()))
    return EXIT_OK


def cmd_ls(
    args: argparse.Namespace, client: StorageClient, unified: UnifiedConfig
) -> int:
    tree = format_tree(client.list_documents())
    if tree:
        print(tree)
    return EXIT_OK


def cmd_fetch_blob(
    args: argparse.Namespace, client: StorageClient, unified: UnifiedConfig
) -> int:
    ok, reason = validate_doc_id(args.doc_id)
    if not ok:
        _stderr_print(f"ERROR: {reason}")
        return EXIT_FATAL

    written = 0
    with open(args.out, "wb") as fh:
        for chunk in client.fetch_blob(args.doc_id):
            fh.write(chunk)
            written += len(chunk)
    print(f"Wrote {written} bytes to {args.out}")
    return EXIT_OK


def _print_progress(
    phase: SyncPhase, doc_id: str | None, action: SyncAction | None
) -> None:
    if doc_id is None:
        _stderr_print(f"[{phase.value}]")
    else:
        label = action.value if action is not None else ""
        _stderr_print(f"  {label} {doc_id}")


def cmd_pull(
    args: argparse.Namespace, client: StorageClient, unified: UnifiedConfig
) -> int:
    raw_path = args.base_path or unified.store.path
    if not raw_path:
        _stderr_print(
            "ERROR: No store directory given and store.path is not set"
        )
        return EXIT_FATAL
    base_path = Path(raw_path).expanduser()

    if args.create and not args.dry_run:
        base_path.mkdir(parents=True, exist_ok=True)

    driver = SyncDriver(
        client,
        base_path,
        max_parallel=client.config.max_parallel_fetches,
        progress=None if args.json else _print_progress,
    )
    report = driver.run(dry_run=args.dry_run)

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_pass_report(report))

    return EXIT_OK if report.ok else EXIT_FAILURES


_COMMANDS = {
    "register": cmd_register,
    "show-tokens": cmd_show_tokens,
    "ls": cmd_ls,
    "fetch-blob": cmd_fetch_blob,
    "pull": cmd_pull,
}


def cmd_init() -> int:
    path, created = ensure_config()
    if created:
        print(f"Created starter config: {path}")
    else:
        print(f"Config file already exists: {path}")
    return EXIT_OK


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run one command, and return its exit code."""
    args = build_parser().parse_args(argv)

    # .env first, so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    try:
        unified = _load_unified()
    except (ValueError, OSError, yaml.YAMLError) as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_FATAL

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    if args.command == "init":
        try:
            return cmd_init()
        except OSError as e:
            _stderr_print(f"ERROR: Cannot write config: {e}")
            return EXIT_FATAL

    try:
        config = _resolve_config(args, unified)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_FATAL

    client = StorageClient(config)
    try:
        return _COMMANDS[args.command](args, client, unified)
    except (RemsyncError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _stderr_print(f"ERROR: {e}")
        return EXIT_FATAL


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    run()
