"""CRL management subcommands."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_crl(config, args) -> int:
    """Handle crl subcommands."""
    if args.crl_command == "build":
        return _crl_build(config, args.output)
    print("devkeyring: error: expected 'crl build'", file=sys.stderr)
    return 2


def _crl_build(config, output: str | None) -> int:
    """Rebuild the CRL from a full ledger scan and publish it."""
    from devkeyring.app.context import Container

    container = Container(config.settings)
    crl = container.crl_builder.build()
    changed = container.crl_publisher.publish(crl, output)
    target = output or config.settings.crl.output_path
    state = "updated" if changed else "unchanged"
    print(f"CRL {state}: {target} ({crl.total_revoked} revoked of {crl.total_issued} issued)")
    return 0
