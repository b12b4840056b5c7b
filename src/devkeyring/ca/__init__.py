"""Certificate authority operations for developer certificates.

Public API::

    from devkeyring.ca import AuthorityMaterial, CertificateIssuer

    authority = AuthorityMaterial.from_settings(settings.authority)
    issued = CertificateIssuer(authority, settings.authority).issue(csr_pem, "alice")
"""

from devkeyring.ca.authority import AuthorityMaterial
from devkeyring.ca.base import IssuedCertificate
from devkeyring.ca.crl import build_x509_crl
from devkeyring.ca.issuer import CertificateIssuer

__all__ = [
    "AuthorityMaterial",
    "CertificateIssuer",
    "IssuedCertificate",
    "build_x509_crl",
]
