"""Lifecycle services built on top of the ledger reader.

Public API::

    from devkeyring.services import (
        CertificateStateResolver,
        CRLBuilder,
        CRLPublisher,
        KeyringService,
        RevocationAuthorizer,
    )
"""

from devkeyring.services.authorizer import AuthorizationDecision, RevocationAuthorizer
from devkeyring.services.crl import CRLBuilder, CRLPublisher, render_crl_json
from devkeyring.services.lifecycle import KeyringService
from devkeyring.services.reputation import (
    NullReputationProvider,
    ReputationProvider,
    ReputationScore,
)
from devkeyring.services.resolver import CertificateStateResolver

__all__ = [
    "AuthorizationDecision",
    "CRLBuilder",
    "CRLPublisher",
    "CertificateStateResolver",
    "KeyringService",
    "NullReputationProvider",
    "ReputationProvider",
    "ReputationScore",
    "RevocationAuthorizer",
    "render_crl_json",
]
