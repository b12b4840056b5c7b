"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation -- these builders
are what the application actually reads.

Access pattern::

    from devkeyring.config import get_config

    ledger = get_config().settings.ledger
    print(ledger.owner, ledger.repo)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

DEFAULT_ORGANIZATION = "KernelSU Module Developers"

# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Issue-tracker ledger location, credentials and transport limits."""

    owner: str
    repo: str
    token: str | None
    api_url: str
    graphql_url: str
    timeout_seconds: int
    max_retries: int
    retry_delay_seconds: float
    page_size: int
    max_pages: int
    issuance_label: str
    revocation_label: str
    spam_label: str
    trusted_comment_authors: tuple[str, ...]

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


def _build_ledger(data: dict | None) -> LedgerSettings:
    d = data or {}
    api_url = d.get("api_url", "https://api.github.com").rstrip("/")
    return LedgerSettings(
        owner=d["owner"],
        repo=d["repo"],
        token=d.get("token"),
        api_url=api_url,
        graphql_url=d.get("graphql_url", f"{api_url}/graphql"),
        timeout_seconds=d.get("timeout_seconds", 15),
        max_retries=d.get("max_retries", 1),
        retry_delay_seconds=d.get("retry_delay_seconds", 1.0),
        page_size=d.get("page_size", 50),
        max_pages=d.get("max_pages", 20),
        issuance_label=d.get("issuance_label", "approved"),
        revocation_label=d.get("revocation_label", "revoked"),
        spam_label=d.get("spam_label", "spam"),
        trusted_comment_authors=tuple(
            a.casefold()
            for a in d.get(
                "trusted_comment_authors",
                ["github-actions", "github-actions[bot]"],
            )
        ),
    )


# ---------------------------------------------------------------------------
# Authority (intermediate CA)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthoritySettings:
    """Intermediate CA material and the fixed subject organization.

    Material is given either as file paths or as inline PEM strings
    (typically ``${MIDDLE_CA_CERT}`` / ``${MIDDLE_CA_KEY}``).  The
    certificate source may hold the whole chain up to the root, signer
    first.
    """

    cert_path: str | None
    key_path: str | None
    cert_pem: str | None
    key_pem: str | None
    key_password: str | None
    organization: str
    allowed_curves: tuple[str, ...]


def _build_authority(data: dict | None) -> AuthoritySettings:
    d = data or {}
    return AuthoritySettings(
        cert_path=d.get("cert_path"),
        key_path=d.get("key_path"),
        cert_pem=d.get("cert_pem") or None,
        key_pem=d.get("key_pem") or None,
        key_password=d.get("key_password") or None,
        organization=d.get("organization", DEFAULT_ORGANIZATION),
        allowed_curves=tuple(d.get("allowed_curves", ["secp256r1", "secp384r1"])),
    )


# ---------------------------------------------------------------------------
# Privilege
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrivilegeSettings:
    """Organization membership role that may revoke any certificate."""

    organization: str
    role: str


def _build_privilege(data: dict | None, ledger_owner: str) -> PrivilegeSettings:
    d = data or {}
    return PrivilegeSettings(
        organization=d.get("organization") or ledger_owner,
        role=d.get("role", "admin"),
    )


# ---------------------------------------------------------------------------
# CRL
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrlSettings:
    """Published revocation list artifact."""

    version: str
    issuer: str
    output_path: str | None
    der_output_path: str | None
    der_next_update_hours: int
    publish_on_change: bool


def _build_crl(data: dict | None) -> CrlSettings:
    d = data or {}
    return CrlSettings(
        version=d.get("version", "1.0"),
        issuer=d.get("issuer", DEFAULT_ORGANIZATION),
        output_path=d.get("output_path", "crl.json"),
        der_output_path=d.get("der_output_path"),
        der_next_update_hours=d.get("der_next_update_hours", 168),
        publish_on_change=d.get("publish_on_change", True),
    )


# ---------------------------------------------------------------------------
# Reputation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReputationSettings:
    """Approval policy driven by the requester's reputation percentile."""

    policy: str
    approve_percentile: float
    reject_percentile: float


def _build_reputation(data: dict | None) -> ReputationSettings:
    d = data or {}
    return ReputationSettings(
        policy=d.get("policy", "informational"),
        approve_percentile=d.get("approve_percentile", 25),
        reject_percentile=d.get("reject_percentile", 75),
    )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WebhookSettings:
    """Flask webhook receiver bind address and HMAC secret."""

    secret: str | None
    bind: str
    port: int


def _build_webhook(data: dict | None) -> WebhookSettings:
    d = data or {}
    return WebhookSettings(
        secret=d.get("secret") or None,
        bind=d.get("bind", "127.0.0.1"),
        port=d.get("port", 8080),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditLogSettings:
    enabled: bool
    file: str | None
    max_file_size_bytes: int
    backup_count: int


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str
    audit: AuditLogSettings


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    a = d.get("audit") or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        audit=AuditLogSettings(
            enabled=a.get("enabled", False),
            file=a.get("file"),
            max_file_size_bytes=a.get("max_file_size_bytes", 10485760),
            backup_count=a.get("backup_count", 5),
        ),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyringSettings:
    ledger: LedgerSettings
    authority: AuthoritySettings
    privilege: PrivilegeSettings
    crl: CrlSettings
    reputation: ReputationSettings
    webhook: WebhookSettings
    logging: LoggingSettings


def build_settings(data: dict[str, Any]) -> KeyringSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`KeyringConfig` initialization after
    schema validation and environment-variable resolution.
    """
    ledger = _build_ledger(data.get("ledger"))
    return KeyringSettings(
        ledger=ledger,
        authority=_build_authority(data.get("authority")),
        privilege=_build_privilege(data.get("privilege"), ledger.owner),
        crl=_build_crl(data.get("crl")),
        reputation=_build_reputation(data.get("reputation")),
        webhook=_build_webhook(data.get("webhook")),
        logging=_build_logging(data.get("logging")),
    )
