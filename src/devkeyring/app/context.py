"""Dependency container for devkeyring.

Built once per process, by the CLI for one-shot commands or by
:func:`~devkeyring.app.factory.create_app` for the webhook receiver,
and stored on the Flask app via ``app.extensions["container"]``.

Usage::

    from devkeyring.app.context import get_container

    c = get_container()
    state = c.resolver.resolve("alice")
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from flask import current_app

from devkeyring.ca.authority import AuthorityMaterial
from devkeyring.ca.issuer import CertificateIssuer
from devkeyring.core.clock import utc_now
from devkeyring.core.errors import AuthorityUnavailable
from devkeyring.ledger.github import GitHubClient, GitHubLedger, GitHubOrgRoleCheck
from devkeyring.ledger.reader import LedgerReader
from devkeyring.notifications.renderer import MessageRenderer
from devkeyring.services.authorizer import RevocationAuthorizer
from devkeyring.services.crl import CRLBuilder, CRLPublisher
from devkeyring.services.lifecycle import KeyringService
from devkeyring.services.reputation import NullReputationProvider
from devkeyring.services.resolver import CertificateStateResolver

if TYPE_CHECKING:
    from devkeyring.config.settings import KeyringSettings
    from devkeyring.core.clock import Clock
    from devkeyring.ledger.base import Ledger, PrivilegedRoleCheck
    from devkeyring.services.reputation import ReputationProvider

log = logging.getLogger(__name__)


class Container:
    """Application-wide dependency container.

    The GitHub-backed ledger and role check are built from *settings*
    unless replacements are passed in.  The intermediate CA is loaded
    on first use, so commands that never sign anything work without
    key material.
    """

    def __init__(  # noqa: PLR0913
        self,
        settings: KeyringSettings,
        *,
        ledger: Ledger | None = None,
        privileged_check: PrivilegedRoleCheck | None = None,
        reputation: ReputationProvider | None = None,
        authority: AuthorityMaterial | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.clock: Clock = clock or utc_now

        if ledger is None or privileged_check is None:
            client = GitHubClient(settings.ledger)
            ledger = ledger or GitHubLedger(client, settings.ledger)
            privileged_check = privileged_check or GitHubOrgRoleCheck(
                client,
                settings.privilege,
            )
        self.ledger: Ledger = ledger
        self.privileged_check: PrivilegedRoleCheck = privileged_check
        self.reputation: ReputationProvider = reputation or NullReputationProvider()

        self._authority = authority
        self._authority_lock = threading.Lock()

        self.reader = LedgerReader(self.ledger, settings.ledger)
        self.authorizer = RevocationAuthorizer(self.reader, self.privileged_check)
        self.resolver = CertificateStateResolver(self.reader, self.authorizer, self.clock)
        self.crl_builder = CRLBuilder(self.reader, settings.crl, self.clock)
        self.crl_publisher = CRLPublisher(settings.crl, self._optional_authority())
        self.renderer = MessageRenderer()
        self.keyring = KeyringService(
            ledger=self.ledger,
            resolver=self.resolver,
            authorizer=self.authorizer,
            issuer_factory=self.issuer,
            crl_builder=self.crl_builder,
            crl_publisher=self.crl_publisher,
            renderer=self.renderer,
            reputation=self.reputation,
            settings=settings,
            clock=self.clock,
        )

    # -- authority ----------------------------------------------------------

    @property
    def authority(self) -> AuthorityMaterial:
        """The intermediate CA, loaded on first access.

        Raises
        ------
        AuthorityUnavailable
            When the chain or key is missing, unreadable or invalid.

        """
        with self._authority_lock:
            if self._authority is None:
                self._authority = AuthorityMaterial.from_settings(self.settings.authority)
            return self._authority

    def _optional_authority(self) -> AuthorityMaterial | None:
        # Only the signed CRL needs the key at publish time
        if not self.settings.crl.der_output_path:
            return None
        try:
            return self.authority
        except AuthorityUnavailable as exc:
            log.warning("Signed CRL disabled: %s", exc.detail)
            return None

    def issuer(self) -> CertificateIssuer:
        """Return an issuer bound to the intermediate CA."""
        return CertificateIssuer(self.authority, self.settings.authority, self.clock)


def get_container() -> Container:
    """Return the :class:`Container` from the current Flask app.

    Raises :class:`RuntimeError` when ``create_app`` was called
    without one.
    """
    container = current_app.extensions.get("container")
    if container is None:
        msg = "Dependency container not available -- was create_app() given a container?"
        raise RuntimeError(msg)
    return container
