"""Lifecycle workflow: react to ledger events.

One call to :meth:`KeyringService.handle_event` handles one issue
event end to end and holds no state between calls:

==============================  =======================================
Event                           Handling
==============================  =======================================
opened, no title tag            label ``spam``, close, lock
opened ``[keyring]``            reputation report; approve per policy
labeled ``approved``            issue the certificate
labeled ``spam``                close, lock, block the author
opened ``[revoke]``             authorize and record the revocation
==============================  =======================================

Every terminal failure is reported back on the entry.  Unexpected
errors get a system-error comment and are re-raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from devkeyring.core.clock import Clock, format_timestamp, utc_now
from devkeyring.core.errors import (
    AuthorityUnavailable,
    CSRSignatureInvalid,
    InvalidKeyMaterial,
    KeyringError,
    LedgerUnavailable,
    SerialCollision,
)
from devkeyring.core.types import (
    ApprovalAction,
    DenialReason,
    LedgerMessage,
    Outcome,
    TitleTag,
)
from devkeyring.ledger.events import CERTIFICATE_ISSUED, CERTIFICATE_REVOKED, render_event
from devkeyring.ledger.github import entry_from_rest
from devkeyring.ledger.parser import (
    extract_key_material,
    extract_request_serial,
    extract_revocation_reason,
    recognize_title,
)
from devkeyring.logging import security_events
from devkeyring.logging.setup import event_context
from devkeyring.services.reputation import evaluate

if TYPE_CHECKING:
    from collections.abc import Callable

    from devkeyring.ca.issuer import CertificateIssuer
    from devkeyring.config.settings import KeyringSettings
    from devkeyring.ledger.base import Ledger
    from devkeyring.models.ledger import LedgerEntry
    from devkeyring.notifications.renderer import MessageRenderer
    from devkeyring.services.authorizer import RevocationAuthorizer
    from devkeyring.services.crl import CRLBuilder, CRLPublisher
    from devkeyring.services.reputation import ReputationProvider
    from devkeyring.services.resolver import CertificateStateResolver

log = logging.getLogger(__name__)

REJECTED_LABEL = "rejected"


class KeyringService:
    """Wires the lifecycle engine to the ledger's issue events.

    Parameters
    ----------
    ledger:
        Ledger used for write-back (comments, labels, closing).
    resolver, authorizer:
        Read side of the engine.
    issuer_factory:
        Returns a ready :class:`CertificateIssuer`; called only when a
        certificate is about to be issued, so a missing authority only
        affects issuance.
    crl_builder, crl_publisher:
        Rebuild and publish the CRL after a state change.  The
        publisher may be ``None`` to skip publishing.
    renderer:
        Comment templates.
    reputation:
        Reputation score source.
    settings:
        Full settings tree.

    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        ledger: Ledger,
        resolver: CertificateStateResolver,
        authorizer: RevocationAuthorizer,
        issuer_factory: Callable[[], CertificateIssuer],
        crl_builder: CRLBuilder,
        crl_publisher: CRLPublisher | None,
        renderer: MessageRenderer,
        reputation: ReputationProvider,
        settings: KeyringSettings,
        clock: Clock | None = None,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._authorizer = authorizer
        self._issuer_factory = issuer_factory
        self._crl_builder = crl_builder
        self._crl_publisher = crl_publisher
        self._renderer = renderer
        self._reputation = reputation
        self._settings = settings
        self._clock = clock or utc_now
        self._own_identities = frozenset(settings.ledger.trusted_comment_authors)

    # -- dispatch -----------------------------------------------------------

    def handle_event(
        self,
        event_name: str,
        payload: dict[str, Any],
        *,
        delivery_id: str | None = None,
    ) -> Outcome:
        """Handle one ``issues`` event payload."""
        issue = payload.get("issue")
        if event_name != "issues" or not issue:
            log.debug("Ignoring %s event", event_name)
            return Outcome.IGNORED

        action = payload.get("action")
        sender = (payload.get("sender") or {}).get("login") or ""
        with event_context(
            delivery_id=delivery_id,
            event_name=f"{event_name}.{action}",
            entry_number=issue.get("number"),
        ):
            if sender.casefold() in self._own_identities:
                log.debug("Ignoring event sent by the keyring itself (%s)", sender)
                return Outcome.IGNORED

            entry = entry_from_rest(issue)
            try:
                return self._dispatch(action, entry, payload, sender)
            except Exception as exc:
                log.exception("Failed to handle %s on entry #%d", action, entry.number)
                self._report_system_error(entry, exc)
                raise

    def _dispatch(
        self,
        action: str | None,
        entry: LedgerEntry,
        payload: dict[str, Any],
        sender: str,
    ) -> Outcome:
        tag, _ = recognize_title(entry.title)
        ledger_settings = self._settings.ledger

        if action == "opened":
            if tag is None:
                return self.close_spam(entry, block=False)
            if tag is TitleTag.KEYRING:
                return self.on_keyring_opened(entry)
            if tag is TitleTag.REVOKE:
                return self.on_revoke_opened(entry)
            return Outcome.IGNORED

        if action == "labeled":
            label = (payload.get("label") or {}).get("name")
            if label == ledger_settings.spam_label:
                return self.close_spam(entry, block=True)
            if label == ledger_settings.issuance_label and entry.has_tag(TitleTag.KEYRING):
                return self.on_approved(entry, approver=sender or None)

        return Outcome.IGNORED

    def _comment(self, entry: LedgerEntry, message: LedgerMessage, **context: Any) -> None:  # noqa: ANN401
        self._ledger.post_comment(entry.number, self._renderer.render(message, context))

    def _report_system_error(self, entry: LedgerEntry, exc: Exception) -> None:
        detail = exc.detail if isinstance(exc, KeyringError) else str(exc)
        try:
            self._comment(entry, LedgerMessage.SYSTEM_ERROR, error=detail)
        except LedgerUnavailable as comment_exc:
            log.error(  # noqa: TRY400
                "Failed to post system error comment on #%d: %s",
                entry.number,
                comment_exc.detail,
            )

    # -- spam ---------------------------------------------------------------

    def close_spam(self, entry: LedgerEntry, *, block: bool) -> Outcome:
        """Label, close and lock *entry*; optionally block its author."""
        self._ledger.set_labels(entry.number, [self._settings.ledger.spam_label])
        self._ledger.close_entry(entry.number, completed=False, lock=False)
        self._ledger.lock_entry(entry.number, "spam")
        if block:
            self._ledger.block_identity(entry.author)
        security_events.spam_closed(entry.author, entry.number, blocked=block)
        log.info("Closed entry #%d by %s as spam", entry.number, entry.author)
        return Outcome.SPAM_CLOSED

    # -- issuance -----------------------------------------------------------

    def on_keyring_opened(self, entry: LedgerEntry) -> Outcome:
        """Report reputation and apply the approval policy."""
        try:
            score = self._reputation.score(entry.author)
        except Exception:
            log.exception("Reputation lookup for %s failed; continuing without a score", entry.author)
            score = None

        decision = evaluate(score, self._settings.reputation)
        context = {"identity": entry.author, "score": score, "decision_reason": decision.reason}
        log.info("Approval decision for %s: %s", entry.author, decision.action)

        if decision.action is ApprovalAction.AUTO_REJECT:
            self._comment(entry, LedgerMessage.REJECTED, **context)
            self._ledger.add_label(entry.number, REJECTED_LABEL)
            self._ledger.close_entry(entry.number, completed=False, lock=False)
            security_events.issuance_rejected(entry.author, entry.number, decision.reason)
            return Outcome.ISSUANCE_REJECTED

        if decision.action is ApprovalAction.MANUAL_REVIEW:
            self._comment(entry, LedgerMessage.MANUAL_REVIEW, **context)
            return Outcome.PENDING_REVIEW

        self._comment(entry, LedgerMessage.REPUTATION_REPORT, **context)
        self._ledger.add_label(entry.number, self._settings.ledger.issuance_label)
        return self.on_approved(entry, approver=None)

    def _reject_issuance(
        self,
        entry: LedgerEntry,
        message: LedgerMessage,
        reason: str,
        **context: Any,  # noqa: ANN401
    ) -> Outcome:
        self._comment(entry, message, identity=entry.author, **context)
        self._ledger.remove_label(entry.number, self._settings.ledger.issuance_label)
        security_events.issuance_rejected(entry.author, entry.number, reason)
        return Outcome.ISSUANCE_REJECTED

    def _known_serials(self) -> set[str]:
        try:
            return set(self._authorizer.issuance_index())
        except LedgerUnavailable as exc:
            log.warning("Could not load known serials; collision check skipped: %s", exc.detail)
            return set()

    def on_approved(self, entry: LedgerEntry, approver: str | None) -> Outcome:
        """Issue a certificate for an approved ``[keyring]`` entry."""
        identity = entry.author
        key_material = extract_key_material(entry.body)
        if key_material is None:
            return self._reject_issuance(entry, LedgerMessage.KEY_MISSING, "no key material")

        state = self._resolver.resolve(identity)
        if state.active is not None:
            active = state.active
            self._reject_issuance(
                entry,
                LedgerMessage.ALREADY_ACTIVE,
                f"already has active certificate, issue #{active.source_record_id}",
                serial_number=active.serial_number,
                origin_record_id=active.source_record_id,
                expires_at=format_timestamp(active.expires_at),
            )
            self._ledger.close_entry(entry.number, completed=False)
            return Outcome.ISSUANCE_REJECTED
        if state.degraded:
            log.warning(
                "Issuing for %s without a confirmed certificate state (ledger unavailable)",
                identity,
            )

        try:
            issuer = self._issuer_factory()
            issued = issuer.issue(key_material, identity, existing_serials=self._known_serials())
        except (InvalidKeyMaterial, CSRSignatureInvalid) as exc:
            return self._reject_issuance(entry, LedgerMessage.ISSUE_FAILED, exc.detail, reason=exc.detail)
        except AuthorityUnavailable as exc:
            log.error("Intermediate CA unavailable: %s", exc.detail)  # noqa: TRY400
            return self._reject_issuance(entry, LedgerMessage.AUTHORITY_UNAVAILABLE, exc.detail)
        except SerialCollision as exc:
            return self._reject_issuance(entry, LedgerMessage.ISSUE_FAILED, exc.detail, reason=exc.detail)

        marker = render_event(
            CERTIFICATE_ISSUED,
            serial_number=issued.serial_number,
            fingerprint=issued.fingerprint,
            identity=identity,
            issued_at=format_timestamp(issued.not_before),
            expires_at=format_timestamp(issued.not_after),
            proof_of_possession=issued.proof_of_possession,
        )
        self._comment(
            entry,
            LedgerMessage.ISSUED,
            identity=identity,
            serial_number=issued.serial_number,
            fingerprint=issued.fingerprint,
            approver=approver,
            not_after=format_timestamp(issued.not_after),
            proof_of_possession=issued.proof_of_possession,
            certificate_pem=issued.pem,
            chain_pem=issued.chain_pem,
            marker=marker,
        )
        self._ledger.close_entry(entry.number, completed=True)
        security_events.certificate_issued(
            identity,
            issued.serial_number,
            issued.fingerprint,
            entry.number,
            proof_of_possession=issued.proof_of_possession,
        )
        self.refresh_crl()
        return Outcome.ISSUED

    # -- revocation ---------------------------------------------------------

    def _reject_revocation(self, entry: LedgerEntry, message: LedgerMessage, **context: Any) -> Outcome:  # noqa: ANN401
        self._comment(entry, message, **context)
        self._ledger.close_entry(entry.number, completed=False)
        return Outcome.REVOCATION_REJECTED

    def on_revoke_opened(self, entry: LedgerEntry) -> Outcome:
        """Authorize and record a ``[revoke]`` request."""
        requester = entry.author
        serial = extract_request_serial(entry.body)
        if serial is None:
            return self._reject_revocation(entry, LedgerMessage.SERIAL_MISSING, requester=requester)

        existing = self._authorizer.revocation_index().get(serial)
        if existing is not None:
            return self._reject_revocation(
                entry,
                LedgerMessage.ALREADY_REVOKED,
                serial_number=serial,
                revocation_record_id=existing.source_record_id,
            )

        decision = self._authorizer.authorize(serial, requester)
        if not decision.permitted:
            if decision.denial is DenialReason.NOT_OWNER:
                message = LedgerMessage.REVOKE_DENIED
            else:
                message = LedgerMessage.REVOKE_UNKNOWN
            return self._reject_revocation(
                entry,
                message,
                requester=requester,
                serial_number=serial,
                owner=decision.owner,
                origin_record_id=decision.origin_record_id,
            )

        reason = extract_revocation_reason(entry.body)
        revoked_at = format_timestamp(self._clock())
        marker = render_event(
            CERTIFICATE_REVOKED,
            serial_number=serial,
            reason=reason.value,
            revoked_at=revoked_at,
            requested_by=requester,
            owner=decision.owner,
            admin_override=decision.admin_override,
            origin_record_id=decision.origin_record_id,
        )
        self._comment(
            entry,
            LedgerMessage.REVOKED,
            serial_number=serial,
            revoked_at=revoked_at,
            reason=reason.value,
            requester=requester,
            owner=decision.owner,
            admin_override=decision.admin_override,
            origin_record_id=decision.origin_record_id,
            marker=marker,
        )
        self._ledger.add_label(entry.number, self._settings.ledger.revocation_label)
        self._ledger.close_entry(entry.number, completed=True)
        security_events.certificate_revoked(
            serial,
            requester,
            decision.owner,
            reason.value,
            entry.number,
        )
        self.refresh_crl()
        return Outcome.REVOKED

    # -- CRL ----------------------------------------------------------------

    def refresh_crl(self) -> bool:
        """Rebuild and publish the CRL; return True when it changed.

        A failure here does not undo the ledger change that triggered
        it; it is logged and ``crl build`` can be rerun.
        """
        if self._crl_publisher is None:
            return False
        try:
            return self._crl_publisher.publish(self._crl_builder.build())
        except (KeyringError, OSError, ValueError) as exc:
            log.error("CRL refresh failed; rerun 'devkeyring crl build': %s", exc)  # noqa: TRY400
            return False
