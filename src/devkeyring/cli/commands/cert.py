"""Certificate query subcommands."""

from __future__ import annotations

import logging
import sys

from devkeyring.core.clock import format_timestamp

log = logging.getLogger(__name__)


def run_cert(config, args) -> int:
    """Handle cert subcommands."""
    from devkeyring.app.context import Container

    if args.cert_command == "status":
        return _cert_status(Container(config.settings), args.identity)
    if args.cert_command == "authorize":
        return _cert_authorize(Container(config.settings), args.serial, args.requester)
    print("devkeyring: error: expected 'cert status' or 'cert authorize'", file=sys.stderr)
    return 2


def _cert_status(container, identity: str) -> int:
    """Print the certificate state of *identity*.

    Exit status 0 when an active certificate exists, 1 when none does,
    3 when the ledger could not be read.
    """
    state = container.resolver.resolve(identity)
    if state.degraded:
        print(f"{identity}: state unknown, ledger unavailable ({state.error.detail})")
        return 3

    active = state.active
    if active is None:
        print(f"{identity}: no active certificate")
    else:
        print(f"{identity}: active certificate {active.serial_number}")
        print(f"  fingerprint: {active.fingerprint or '-'}")
        print(f"  issued:      {format_timestamp(active.issued_at)} (#{active.source_record_id})")
        print(f"  expires:     {format_timestamp(active.expires_at)}")

    stats = container.resolver.statistics(identity)
    print(
        f"  history:     {stats.total} issued, {stats.expired} expired, {stats.revoked} revoked",
    )
    return 0 if active is not None else 1


def _cert_authorize(container, serial: str, requester: str) -> int:
    """Print whether *requester* may revoke *serial*; exit 0 when permitted."""
    from devkeyring.ledger.parser import normalize_serial

    decision = container.authorizer.authorize(normalize_serial(serial), requester)
    print(decision.message)
    return 0 if decision.permitted else 1
