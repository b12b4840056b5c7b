"""Intermediate CA subcommands."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)

SELF_TEST_IDENTITY = "devkeyring-self-test"


def run_ca(config, args) -> int:
    """Handle ca subcommands."""
    if args.ca_command == "check":
        return _ca_check(config)
    print("devkeyring: error: expected 'ca check'", file=sys.stderr)
    return 2


def _ca_check(config) -> int:
    """Load the intermediate CA and sign an ephemeral CSR with it."""
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    from devkeyring.app.context import Container

    container = Container(config.settings)
    authority = container.authority

    key = ec.generate_private_key(ec.SECP256R1())
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, SELF_TEST_IDENTITY)]),
        )
        .sign(key, hashes.SHA256())
    )
    issued = container.issuer().issue(
        csr.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        SELF_TEST_IDENTITY,
    )

    signer = authority.signer
    print(f"Intermediate CA: {signer.subject.rfc4514_string()}")
    print(f"  issuer:     {signer.issuer.rfc4514_string()}")
    print(f"  not after:  {signer.not_valid_after_utc.isoformat()}")
    print(f"  chain:      {len(authority.intermediate_chain)} certificate(s)")
    print(f"Test signature OK: serial {issued.serial_number}, fingerprint {issued.fingerprint}")
    return 0
