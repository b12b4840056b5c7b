"""Intermediate CA material.

:class:`AuthorityMaterial` holds the intermediate certificate chain
(signer first, optionally followed by further intermediates and the
root) and the signer's private key.  It is loaded from PEM files or
PEM strings and checked once, so the issuer can assume it is usable.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from devkeyring.core.errors import AuthorityUnavailable

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

    from devkeyring.config.settings import AuthoritySettings

log = logging.getLogger(__name__)


def _public_der(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@dataclass(frozen=True)
class AuthorityMaterial:
    """Signing certificate chain and key of the intermediate CA."""

    intermediate_chain: tuple[x509.Certificate, ...]
    intermediate_key: CertificateIssuerPrivateKeyTypes

    def __post_init__(self) -> None:
        if not self.intermediate_chain:
            msg = "Intermediate CA certificate chain is empty"
            raise AuthorityUnavailable(msg)
        if not isinstance(self.intermediate_key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
            msg = f"Unsupported intermediate CA key type {type(self.intermediate_key).__name__}"
            raise AuthorityUnavailable(msg)
        if _public_der(self.intermediate_key.public_key()) != _public_der(self.signer.public_key()):
            msg = "Intermediate CA private key does not match the first certificate in the chain"
            raise AuthorityUnavailable(msg)
        try:
            constraints = self.signer.extensions.get_extension_for_class(x509.BasicConstraints)
        except x509.ExtensionNotFound:
            constraints = None
        if constraints is None or not constraints.value.ca:
            msg = f"Certificate {self.signer.subject.rfc4514_string()} is not a CA certificate"
            raise AuthorityUnavailable(msg)

    @property
    def signer(self) -> x509.Certificate:
        return self.intermediate_chain[0]

    @property
    def chain_pem(self) -> str:
        """The whole chain as concatenated PEM, signer first."""
        return "".join(
            c.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for c in self.intermediate_chain
        )

    # -- loaders ------------------------------------------------------------

    @classmethod
    def from_pem(
        cls,
        cert_pem: str | bytes,
        key_pem: str | bytes,
        password: str | None = None,
    ) -> AuthorityMaterial:
        """Load from PEM text (e.g. ``MIDDLE_CA_CERT`` / ``MIDDLE_CA_KEY``).

        Raises
        ------
        AuthorityUnavailable
            When either block cannot be parsed or they do not match.

        """
        cert_bytes = cert_pem.encode("ascii") if isinstance(cert_pem, str) else cert_pem
        key_bytes = key_pem.encode("ascii") if isinstance(key_pem, str) else key_pem
        try:
            chain = x509.load_pem_x509_certificates(cert_bytes)
        except ValueError as exc:
            msg = f"Failed to load intermediate CA certificate: {exc}"
            raise AuthorityUnavailable(msg) from exc
        try:
            key = serialization.load_pem_private_key(
                key_bytes,
                password=password.encode("utf-8") if password else None,
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            msg = f"Failed to load intermediate CA private key: {exc}"
            raise AuthorityUnavailable(msg) from exc
        return cls(intermediate_chain=tuple(chain), intermediate_key=key)  # type: ignore[arg-type]

    @classmethod
    def from_files(
        cls,
        cert_path: str,
        key_path: str,
        password: str | None = None,
    ) -> AuthorityMaterial:
        """Load from PEM files on disk, warning about loose key permissions."""
        cert_pem = _read(cert_path, "certificate")
        key_pem = _read(key_path, "private key")
        check_key_permissions(key_path)
        return cls.from_pem(cert_pem, key_pem, password)

    @classmethod
    def from_settings(cls, settings: AuthoritySettings) -> AuthorityMaterial:
        """Load from whichever source the ``authority`` section configures."""
        cert = settings.cert_pem
        key = settings.key_pem
        if cert is None and settings.cert_path:
            cert = _read(settings.cert_path, "certificate")
        if key is None and settings.key_path:
            key = _read(settings.key_path, "private key")
            check_key_permissions(settings.key_path)
        if not cert:
            msg = (
                "Intermediate CA certificate not configured "
                "(authority.cert_path or authority.cert_pem)"
            )
            raise AuthorityUnavailable(msg)
        if not key:
            msg = "Intermediate CA private key not configured (authority.key_path or authority.key_pem)"
            raise AuthorityUnavailable(msg)
        material = cls.from_pem(cert, key, settings.key_password)
        log.info(
            "Intermediate CA loaded: subject=%s, chain length=%d",
            material.signer.subject.rfc4514_string(),
            len(material.intermediate_chain),
        )
        return material


def _read(path: str, what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        msg = f"Intermediate CA {what} not found: {path}"
        raise AuthorityUnavailable(msg) from None
    except OSError as exc:
        msg = f"Failed to read intermediate CA {what} from {path}: {exc}"
        raise AuthorityUnavailable(msg) from exc


def check_key_permissions(key_path: str | None) -> None:
    """Warn if the private key file is readable or writable by group/others."""
    if not key_path:
        return
    try:
        mode = os.stat(key_path).st_mode  # noqa: PTH116
    except OSError:
        return
    if mode & (stat.S_IRGRP | stat.S_IROTH | stat.S_IWGRP | stat.S_IWOTH):
        log.warning(
            "Private key file '%s' has overly permissive "
            "permissions (mode=%o). Recommend chmod 600.",
            key_path,
            stat.S_IMODE(mode),
        )
