"""Entity models for the devkeyring lifecycle engine.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from devkeyring.models.certificate import (
    VALIDITY_PERIOD,
    CertificateRecord,
    CertificateState,
    CertificateStatistics,
)
from devkeyring.models.crl import CRL, CRLEntry
from devkeyring.models.ledger import LedgerComment, LedgerEntry, LedgerSnapshot
from devkeyring.models.revocation import RevocationRecord

__all__ = [
    "CRL",
    "VALIDITY_PERIOD",
    "CRLEntry",
    "CertificateRecord",
    "CertificateState",
    "CertificateStatistics",
    "LedgerComment",
    "LedgerEntry",
    "LedgerSnapshot",
    "RevocationRecord",
]
