"""Shared certificate-building helpers.

Formatting of serials and fingerprints in the shapes the ledger and
the CRL artifact use, the fixed developer-certificate extensions, and
the signing-hash choice for a given CA key.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

SERIAL_BITS = 128
SERIAL_HEX_DIGITS = SERIAL_BITS // 4

# Curve of the *signing* key -> digest
_CURVE_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "secp256r1": hashes.SHA256,
    "secp384r1": hashes.SHA512,
}


def format_serial(serial: int) -> str:
    """Render a serial as zero-padded lowercase hex."""
    return format(serial, f"0{SERIAL_HEX_DIGITS}x")


def format_fingerprint(digest: bytes) -> str:
    """Render a digest as ``AB:CD:...`` (uppercase, colon-separated)."""
    return ":".join(f"{b:02X}" for b in digest)


def certificate_fingerprint(cert: x509.Certificate) -> str:
    """SHA-256 fingerprint of *cert*'s DER encoding."""
    der = cert.public_bytes(serialization.Encoding.DER)
    return format_fingerprint(hashlib.sha256(der).digest())


def signing_hash(key: CertificateIssuerPrivateKeyTypes) -> hashes.HashAlgorithm:
    """Pick the digest matching the strength of the signing key."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return _CURVE_HASHES.get(key.curve.name, hashes.SHA256)()
    if isinstance(key, rsa.RSAPrivateKey):
        return hashes.SHA256()
    msg = f"Unsupported CA key type {type(key).__name__}"
    raise TypeError(msg)


# ---------------------------------------------------------------------------
# Developer certificate extensions
# ---------------------------------------------------------------------------


def build_key_usage() -> x509.KeyUsage:
    """Digital signature only."""
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def build_eku() -> x509.ExtendedKeyUsage:
    return x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CODE_SIGNING])


def authority_key_identifier(issuer: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    """AKI for certificates signed by *issuer*, reusing its SKI when present."""
    try:
        ski = issuer.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(
            issuer.public_key(),  # type: ignore[arg-type]
        )
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)
