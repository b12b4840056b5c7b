"""Key-material policy for developer certificates.

Only elliptic-curve keys on P-256 or P-384 are accepted, whether they
arrive in a PKCS#10 CSR or as a bare ``PUBLIC KEY`` block.  Operators
may narrow the set through ``authority.allowed_curves``; the set is
never widened.

A CSR proves possession of the private key through its self-signature.
A bare public key does not, and the result says so.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from devkeyring.core.errors import CSRSignatureInvalid, InvalidKeyMaterial

log = logging.getLogger(__name__)

SUPPORTED_CURVES = frozenset({"secp256r1", "secp384r1"})

_CURVE_LABELS = {
    "secp256r1": "P-256",
    "secp384r1": "P-384",
}

CSR_MARKER = "-----BEGIN CERTIFICATE REQUEST-----"
PUBLIC_KEY_MARKER = "-----BEGIN PUBLIC KEY-----"


@dataclass(frozen=True)
class SubmittedKey:
    public_key: ec.EllipticCurvePublicKey
    proof_of_possession: bool
    source: str

    @property
    def curve_label(self) -> str:
        return _CURVE_LABELS.get(self.public_key.curve.name, self.public_key.curve.name)


def describe_key(pub_key: PublicKeyTypes) -> str:
    """Return a human-readable key type, e.g. ``'RSA-2048'`` or ``'EC P-256'``."""
    if isinstance(pub_key, rsa.RSAPublicKey):
        return f"RSA-{pub_key.key_size}"
    if isinstance(pub_key, ec.EllipticCurvePublicKey):
        return f"EC {_CURVE_LABELS.get(pub_key.curve.name, pub_key.curve.name)}"
    if isinstance(pub_key, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(pub_key, ed448.Ed448PublicKey):
        return "Ed448"
    return type(pub_key).__name__


def effective_curves(allowed: Collection[str] | None) -> frozenset[str]:
    """Intersect the configured curves with the supported set."""
    if allowed is None:
        return SUPPORTED_CURVES
    return SUPPORTED_CURVES & frozenset(allowed)


def check_public_key(
    pub_key: PublicKeyTypes,
    allowed_curves: Collection[str] | None = None,
) -> ec.EllipticCurvePublicKey:
    """Return *pub_key* if policy allows it.

    Raises
    ------
    InvalidKeyMaterial
        For any non-EC key or a curve outside the allowed set.

    """
    curves = effective_curves(allowed_curves)
    accepted = ", ".join(sorted(_CURVE_LABELS[c] for c in curves))
    if not isinstance(pub_key, ec.EllipticCurvePublicKey):
        msg = f"{describe_key(pub_key)} keys are not accepted; use an EC key on {accepted}"
        raise InvalidKeyMaterial(msg)
    if pub_key.curve.name not in curves:
        msg = f"Curve {pub_key.curve.name} is not accepted; use an EC key on {accepted}"
        raise InvalidKeyMaterial(msg)
    return pub_key


def _load_csr(pem: str, allowed_curves: Collection[str] | None) -> SubmittedKey:
    try:
        csr = x509.load_pem_x509_csr(pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        msg = f"Certificate request could not be parsed: {exc}"
        raise InvalidKeyMaterial(msg) from exc

    try:
        pub_key = csr.public_key()
    except (ValueError, UnsupportedAlgorithm) as exc:
        msg = f"Certificate request key could not be read: {exc}"
        raise InvalidKeyMaterial(msg) from exc
    checked = check_public_key(pub_key, allowed_curves)

    if not csr.is_signature_valid:
        msg = "Certificate request signature does not verify"
        raise CSRSignatureInvalid(msg)

    return SubmittedKey(public_key=checked, proof_of_possession=True, source="csr")


def _load_public_key(pem: str, allowed_curves: Collection[str] | None) -> SubmittedKey:
    try:
        pub_key = serialization.load_pem_public_key(pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError, UnsupportedAlgorithm) as exc:
        msg = f"Public key could not be parsed: {exc}"
        raise InvalidKeyMaterial(msg) from exc
    checked = check_public_key(pub_key, allowed_curves)
    # No signature to check: possession of the private key is unproven
    log.warning("Accepting bare public key without proof of possession")
    return SubmittedKey(public_key=checked, proof_of_possession=False, source="public_key")


def load_key_material(
    pem: str,
    allowed_curves: Collection[str] | None = None,
) -> SubmittedKey:
    """Parse submitted key material and enforce the key policy.

    Parameters
    ----------
    pem:
        A PEM ``CERTIFICATE REQUEST`` or ``PUBLIC KEY`` block.
    allowed_curves:
        Optional subset of :data:`SUPPORTED_CURVES`.

    Raises
    ------
    InvalidKeyMaterial
        Unrecognised or unparseable input, or a key outside policy.
    CSRSignatureInvalid
        A CSR whose self-signature does not verify.

    """
    text = (pem or "").strip()
    if text.startswith(CSR_MARKER):
        return _load_csr(text, allowed_curves)
    if text.startswith(PUBLIC_KEY_MARKER):
        return _load_public_key(text, allowed_curves)
    msg = "Expected a PEM 'CERTIFICATE REQUEST' or 'PUBLIC KEY' block"
    raise InvalidKeyMaterial(msg)
