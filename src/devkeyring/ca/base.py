"""Result type shared by the issuer and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class IssuedCertificate:
    """Result of a successful certificate signing operation.

    Attributes
    ----------
    pem:
        The leaf certificate alone.
    chain_pem:
        Leaf followed by the intermediate chain (up to and including
        the root).
    fingerprint:
        Uppercase colon-separated SHA-256 of the leaf's DER encoding.
    serial_number:
        32-digit lowercase hex serial.
    not_before, not_after:
        Validity window; ``not_after - not_before`` is exactly 365 days.
    proof_of_possession:
        ``True`` when the key arrived in a CSR whose self-signature
        verified; ``False`` for a bare public key.

    """

    pem: str
    chain_pem: str
    fingerprint: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    proof_of_possession: bool
