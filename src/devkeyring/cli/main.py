"""devkeyring command-line entry point.

Usage::

    devkeyring -c config.yaml --validate-only
    devkeyring -c config.yaml handle-event --event-name issues --event-path event.json
    devkeyring -c config.yaml crl build --output crl.json
    devkeyring -c config.yaml cert status alice
    devkeyring -c config.yaml cert authorize 1a2b3c... bob
    devkeyring -c config.yaml ca check
    devkeyring -c config.yaml serve
    python -m devkeyring -c config.yaml crl build

``handle-event`` is what the GitHub Actions workflow runs: the event
name and payload path come from ``GITHUB_EVENT_NAME`` and
``GITHUB_EVENT_PATH`` when the flags are omitted.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from devkeyring import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devkeyring",
        description="devkeyring: developer certificate lifecycle on a GitHub issue ledger",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # handle-event
    event_parser = subparsers.add_parser(
        "handle-event",
        help="Handle one GitHub issue event (Actions entry point)",
    )
    event_parser.add_argument(
        "--event-name",
        default=os.environ.get("GITHUB_EVENT_NAME"),
        help="Event name (default: $GITHUB_EVENT_NAME)",
    )
    event_parser.add_argument(
        "--event-path",
        default=os.environ.get("GITHUB_EVENT_PATH"),
        help="Path to the event payload JSON (default: $GITHUB_EVENT_PATH)",
    )

    # crl
    crl_parser = subparsers.add_parser("crl", help="CRL management")
    crl_sub = crl_parser.add_subparsers(dest="crl_command")
    build = crl_sub.add_parser("build", help="Build and publish the CRL from the ledger")
    build.add_argument("--output", default=None, help="Override crl.output_path")

    # cert
    cert_parser = subparsers.add_parser("cert", help="Certificate queries")
    cert_sub = cert_parser.add_subparsers(dest="cert_command")
    status = cert_sub.add_parser("status", help="Show the certificate state of an identity")
    status.add_argument("identity", help="Developer handle")
    authorize = cert_sub.add_parser(
        "authorize",
        help="Check whether a requester may revoke a serial",
    )
    authorize.add_argument("serial", help="Certificate serial number (hex)")
    authorize.add_argument("requester", help="Identity asking for revocation")

    # ca
    ca_parser = subparsers.add_parser("ca", help="Intermediate CA management")
    ca_sub = ca_parser.add_subparsers(dest="ca_command")
    ca_sub.add_parser("check", help="Load the intermediate CA and test-sign a certificate")

    # serve
    subparsers.add_parser("serve", help="Run the webhook receiver (development server)")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"devkeyring: error: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    try:
        from devkeyring.config import ConfigValidationError, KeyringConfig

        config = KeyringConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from devkeyring.logging import configure_logging

    configure_logging(config.settings.logging)
    if args.debug:
        logging.getLogger("devkeyring").setLevel(logging.DEBUG)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command
    if command is None:
        parser.print_help(sys.stderr)
        sys.exit(2)

    from devkeyring.core.errors import KeyringError

    try:
        exit_code = _dispatch(command, config, args)
    except KeyringError as exc:
        if args.debug:
            raise
        _print_error(exc.detail)
        sys.exit(1)
    sys.exit(exit_code)


def _dispatch(command: str, config, args) -> int:
    if command == "handle-event":
        from devkeyring.cli.commands.event import run_handle_event

        return run_handle_event(config, args)
    if command == "crl":
        from devkeyring.cli.commands.crl import run_crl

        return run_crl(config, args)
    if command == "cert":
        from devkeyring.cli.commands.cert import run_cert

        return run_cert(config, args)
    if command == "ca":
        from devkeyring.cli.commands.ca import run_ca

        return run_ca(config, args)

    from devkeyring.cli.commands.serve import run_serve

    return run_serve(config, args)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    authority = s.authority.cert_path or ("inline PEM" if s.authority.cert_pem else "not configured")
    lines = [
        "Configuration OK",
        f"  ledger:      {s.ledger.repository} ({s.ledger.api_url})",
        f"  labels:      issued={s.ledger.issuance_label} revoked={s.ledger.revocation_label}",
        f"  authority:   {authority}",
        f"  curves:      {', '.join(s.authority.allowed_curves)}",
        f"  privileged:  {s.privilege.role} of {s.privilege.organization}",
        f"  crl:         {s.crl.output_path}",
        f"  reputation:  {s.reputation.policy}",
    ]
    print("\n".join(lines))
