"""Signed X.509 rendition of the revocation list.

The JSON artifact built by :class:`~devkeyring.services.crl.CRLBuilder`
is the primary output.  When authority material is available the same
entries can also be published as a DER-encoded RFC 5280 CRL signed by
the intermediate CA.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from devkeyring.ca.cert_utils import authority_key_identifier, signing_hash
from devkeyring.core.types import RevocationReason

if TYPE_CHECKING:
    from devkeyring.ca.authority import AuthorityMaterial
    from devkeyring.models.crl import CRL

log = logging.getLogger(__name__)

_HEX_BASE = 16

_REASON_FLAGS = {
    RevocationReason.KEY_COMPROMISE: x509.ReasonFlags.key_compromise,
    RevocationReason.SUPERSEDED: x509.ReasonFlags.superseded,
    RevocationReason.UNSPECIFIED: x509.ReasonFlags.unspecified,
}


def build_x509_crl(
    crl: CRL,
    authority: AuthorityMaterial,
    *,
    next_update_hours: int = 168,
) -> bytes:
    """Sign *crl* with the intermediate key and return it DER-encoded.

    ``thisUpdate`` is the JSON artifact's ``generated_at``, so both
    renditions describe the same instant.  Entries whose serial is not
    valid hex, or falls outside the RFC 5280 serial range, are left
    out with a warning.
    """
    signer = authority.signer
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(signer.subject)
        .last_update(crl.generated_at)
        .next_update(crl.generated_at + timedelta(hours=next_update_hours))
        .add_extension(authority_key_identifier(signer), critical=False)
        .add_extension(x509.CRLNumber(int(crl.generated_at.timestamp())), critical=False)
    )

    added = 0
    for entry in crl.revoked_certificates:
        try:
            serial = int(entry.serial_number, _HEX_BASE)
        except ValueError:
            log.warning("Leaving non-hex serial %r out of the X.509 CRL", entry.serial_number)
            continue
        # RFC 5280 serials are positive and at most 20 octets
        try:
            revoked = (
                x509.RevokedCertificateBuilder()
                .serial_number(serial)
                .revocation_date(entry.revoked_at)
                .add_extension(x509.CRLReason(_REASON_FLAGS[entry.reason]), critical=False)
                .build()
            )
        except ValueError as exc:
            log.warning(
                "Leaving serial %s (revoke #%d) out of the X.509 CRL: %s",
                entry.serial_number,
                entry.revocation_record_id,
                exc,
            )
            continue
        builder = builder.add_revoked_certificate(revoked)
        added += 1

    key = authority.intermediate_key
    signed = builder.sign(key, signing_hash(key))
    log.info(
        "X.509 CRL signed: %d revoked certificates, next update %s",
        added,
        (crl.generated_at + timedelta(hours=next_update_hours)).isoformat(),
    )
    return signed.public_bytes(serialization.Encoding.DER)
