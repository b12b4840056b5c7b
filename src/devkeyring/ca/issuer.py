"""Certificate Issuer -- turn approved key material into a signed certificate.

The issuer is pure: it reads nothing from the ledger and writes nothing
anywhere.  The caller supplies the serials already in use so that a
collision can be detected, and records the result in the ledger itself.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Collection
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from devkeyring.ca.base import IssuedCertificate
from devkeyring.ca.cert_utils import (
    SERIAL_BITS,
    authority_key_identifier,
    build_eku,
    build_key_usage,
    certificate_fingerprint,
    format_serial,
    signing_hash,
)
from devkeyring.ca.key_policy import load_key_material
from devkeyring.core.clock import Clock, utc_now
from devkeyring.core.errors import AuthorityUnavailable, SerialCollision
from devkeyring.logging import security_events
from devkeyring.models.certificate import VALIDITY_PERIOD

if TYPE_CHECKING:
    from datetime import datetime

    from cryptography.hazmat.primitives.asymmetric import ec

    from devkeyring.ca.authority import AuthorityMaterial
    from devkeyring.config.settings import AuthoritySettings

log = logging.getLogger(__name__)


def random_serial() -> int:
    """Draw a nonzero random serial of :data:`SERIAL_BITS` bits."""
    serial = 0
    while serial == 0:
        serial = secrets.randbits(SERIAL_BITS)
    return serial


class CertificateIssuer:
    """Sign developer certificates with the intermediate CA.

    Parameters
    ----------
    authority:
        Loaded intermediate CA chain and key.
    settings:
        The ``authority`` settings section (organization, allowed curves).
    clock:
        Source of "now"; defaults to :func:`~devkeyring.core.clock.utc_now`.
    serial_source:
        Source of raw serial integers; defaults to :func:`random_serial`.

    """

    def __init__(
        self,
        authority: AuthorityMaterial,
        settings: AuthoritySettings,
        clock: Clock | None = None,
        serial_source: Callable[[], int] | None = None,
    ) -> None:
        self._authority = authority
        self._settings = settings
        self._clock = clock or utc_now
        self._serial_source = serial_source or random_serial

    def issue(
        self,
        key_material: str,
        identity: str,
        *,
        existing_serials: Collection[str] = (),
    ) -> IssuedCertificate:
        """Validate *key_material* and sign a certificate for *identity*.

        Parameters
        ----------
        key_material:
            PEM ``CERTIFICATE REQUEST`` or ``PUBLIC KEY`` block.
        identity:
            Developer handle; becomes the subject CN.
        existing_serials:
            Serials already present in the ledger (lowercase hex).

        Raises
        ------
        InvalidKeyMaterial
            Unparseable input or a key outside the EC P-256/P-384 policy.
        CSRSignatureInvalid
            The CSR self-signature does not verify.
        SerialCollision
            The drawn serial is already in *existing_serials*.
        AuthorityUnavailable
            Signing with the intermediate key failed.

        """
        submitted = load_key_material(key_material, self._settings.allowed_curves)

        serial = self._serial_source()
        serial_hex = format_serial(serial)
        if serial_hex in {s.lower() for s in existing_serials}:
            security_events.serial_collision(serial_hex, identity)
            log.critical("Serial number %s already exists in the ledger", serial_hex)
            raise SerialCollision(serial_hex)

        not_before = self._clock()
        not_after = not_before + VALIDITY_PERIOD
        cert = self._sign(submitted.public_key, identity, serial, not_before, not_after)

        leaf_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        result = IssuedCertificate(
            pem=leaf_pem,
            chain_pem=leaf_pem + self._authority.chain_pem,
            fingerprint=certificate_fingerprint(cert),
            serial_number=serial_hex,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            proof_of_possession=submitted.proof_of_possession,
        )
        log.info(
            "Signed certificate: serial=%s, cn=%s, key=EC %s, proof_of_possession=%s",
            serial_hex,
            identity,
            submitted.curve_label,
            submitted.proof_of_possession,
        )
        return result

    def _sign(
        self,
        public_key: ec.EllipticCurvePublicKey,
        identity: str,
        serial: int,
        not_before: datetime,
        not_after: datetime,
    ) -> x509.Certificate:
        signer = self._authority.signer
        subject = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, identity),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self._settings.organization),
            ],
        )
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(signer.subject)
            .public_key(public_key)
            .serial_number(serial)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(build_key_usage(), critical=True)
            .add_extension(build_eku(), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(authority_key_identifier(signer), critical=False)
        )
        key = self._authority.intermediate_key
        try:
            return builder.sign(key, signing_hash(key))
        except (ValueError, TypeError) as exc:
            msg = f"Failed to sign certificate with the intermediate CA: {exc}"
            raise AuthorityUnavailable(msg) from exc
