"""Root conftest for the devkeyring test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from devkeyring.ca.authority import AuthorityMaterial  # noqa: E402
from devkeyring.config.settings import build_settings  # noqa: E402
from devkeyring.core.clock import format_timestamp  # noqa: E402
from devkeyring.core.errors import LedgerUnavailable  # noqa: E402
from devkeyring.ledger.base import Ledger, PrivilegedRoleCheck  # noqa: E402
from devkeyring.ledger.events import (  # noqa: E402
    CERTIFICATE_ISSUED,
    CERTIFICATE_REVOKED,
    render_event,
)
from devkeyring.models.ledger import LedgerComment, LedgerEntry  # noqa: E402

T0 = datetime(2025, 1, 1, tzinfo=UTC)
BOT = "github-actions[bot]"
LEDGER_OWNER = "KernelSU-Modules-Repo"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a dict containing the minimum required config fields."""
    return {"ledger": {"owner": LEDGER_OWNER, "repo": "developers"}}


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings(tmp_path: Path):
    """Full settings tree with the CRL written under *tmp_path*."""
    return build_settings(
        {
            "ledger": {"owner": LEDGER_OWNER, "repo": "developers", "token": "t"},
            "crl": {"output_path": str(tmp_path / "crl.json")},
            "webhook": {"secret": "s3cret"},
        },
    )


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the KeyringConfig singleton before and after every test."""
    from devkeyring.config.keyring_config import KeyringConfig

    KeyringConfig.reset()
    yield
    KeyringConfig.reset()


@pytest.fixture(autouse=True)
def restore_loggers():
    """Undo ``configure_logging`` so caplog keeps seeing devkeyring records."""
    import logging

    saved = {}
    for name in ("devkeyring", "devkeyring.security"):
        logger = logging.getLogger(name)
        saved[name] = (logger.level, logger.propagate, list(logger.handlers))
    yield
    for name, (level, propagate, handlers) in saved.items():
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers[:] = handlers


# ---------------------------------------------------------------------------
# Crypto material
# ---------------------------------------------------------------------------


def _ca_cert(subject_cn, key, issuer_cert=None, issuer_key=None) -> x509.Certificate:
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Keyring"),
            x509.NameAttribute(NameOID.COMMON_NAME, subject_cn),
        ],
    )
    issuer = issuer_cert.subject if issuer_cert is not None else subject
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .sign(issuer_key or key, hashes.SHA384())
    )


def _pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _key_pem(key) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def ca_material() -> SimpleNamespace:
    """EC P-384 root and EC P-256 intermediate, generated once per session."""
    root_key = ec.generate_private_key(ec.SECP384R1())
    root_cert = _ca_cert("Test Root CA", root_key)
    key = ec.generate_private_key(ec.SECP256R1())
    cert = _ca_cert("Test Middle CA", key, root_cert, root_key)
    chain_pem = _pem(cert) + _pem(root_cert)
    return SimpleNamespace(
        root_key=root_key,
        root_cert=root_cert,
        key=key,
        cert=cert,
        cert_pem=_pem(cert),
        root_pem=_pem(root_cert),
        chain_pem=chain_pem,
        key_pem=_key_pem(key),
        authority=AuthorityMaterial(intermediate_chain=(cert, root_cert), intermediate_key=key),
    )


@pytest.fixture()
def make_csr():
    """Factory: PEM CSR for an EC key (P-256 by default)."""

    def _make(cn: str = "alice", key=None) -> str:
        key = key or ec.generate_private_key(ec.SECP256R1())
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)]))
            .sign(key, hashes.SHA256())
        )
        return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")

    return _make


@pytest.fixture()
def make_public_key_pem():
    """Factory: PEM SubjectPublicKeyInfo for a key (EC P-256 by default)."""

    def _make(key=None) -> str:
        key = key or ec.generate_private_key(ec.SECP256R1())
        return (
            key.public_key()
            .public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            .decode("ascii")
        )

    return _make


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class FakeLedger(Ledger):
    """In-memory ledger recording every write."""

    def __init__(self, entries=()) -> None:
        self.entries: dict[int, LedgerEntry] = {e.number: e for e in entries}
        self.comments: list[tuple[int, str]] = []
        self.labels_added: list[tuple[int, str]] = []
        self.labels_set: list[tuple[int, list[str]]] = []
        self.labels_removed: list[tuple[int, str]] = []
        self.closed: list[tuple[int, bool, bool]] = []
        self.locked: list[tuple[int, str]] = []
        self.blocked: list[str] = []
        self.fail_reads = False
        self.list_calls: list[tuple[str, str | None]] = []

    def add(self, entry: LedgerEntry) -> None:
        self.entries[entry.number] = entry

    def list_closed_entries(self, *, label, author=None):
        self.list_calls.append((label, author))
        if self.fail_reads:
            msg = "GitHub returned HTTP 502"
            raise LedgerUnavailable(msg, retryable=True, status=502)
        return [
            e
            for e in self.entries.values()
            if e.closed_at is not None
            and label in e.labels
            and (author is None or e.author.casefold() == author.casefold())
        ]

    def get_entry(self, number):
        return self.entries[number]

    def post_comment(self, number, body):
        self.comments.append((number, body))

    def add_label(self, number, label):
        self.labels_added.append((number, label))

    def set_labels(self, number, labels):
        self.labels_set.append((number, list(labels)))

    def remove_label(self, number, label):
        self.labels_removed.append((number, label))

    def close_entry(self, number, *, completed, lock=True):
        self.closed.append((number, completed, lock))

    def lock_entry(self, number, reason):
        self.locked.append((number, reason))

    def block_identity(self, identity):
        self.blocked.append(identity)

    def comments_on(self, number: int) -> list[str]:
        return [body for n, body in self.comments if n == number]


class FakeRoleCheck(PrivilegedRoleCheck):
    def __init__(self, privileged=()) -> None:
        self.privileged = {p.casefold() for p in privileged}

    def is_privileged(self, identity):
        return identity.casefold() in self.privileged


@pytest.fixture()
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def role_check() -> FakeRoleCheck:
    return FakeRoleCheck(privileged=["orgadmin"])


@pytest.fixture()
def make_issuance_entry():
    """Factory: closed ``[keyring]`` entry with an issuance confirmation."""

    def _make(
        number: int,
        author: str,
        serial: str,
        *,
        issued_at: datetime = T0,
        fingerprint: str | None = "AA:BB:CC",
        legacy: bool = False,
        commenter: str = BOT,
        labels: tuple[str, ...] = ("approved",),
    ) -> LedgerEntry:
        if legacy:
            body = (
                "✅ Certificate successfully issued!\n\n"
                f"- **Serial Number**: `{serial}`\n"
                + (f"- **Fingerprint (SHA-256)**: `{fingerprint}`\n" if fingerprint else "")
            )
        else:
            body = "✅ Certificate successfully issued!\n\n" + render_event(
                CERTIFICATE_ISSUED,
                serial_number=serial,
                fingerprint=fingerprint,
                issued_at=format_timestamp(issued_at),
            )
        return LedgerEntry(
            number=number,
            title=f"[keyring] {author}",
            body="-----BEGIN PUBLIC KEY-----\n...\n-----END PUBLIC KEY-----",
            author=author,
            created_at=issued_at - timedelta(minutes=5),
            closed_at=issued_at,
            labels=labels,
            comments=(LedgerComment(author=commenter, body=body, created_at=issued_at),),
        )

    return _make


@pytest.fixture()
def make_revocation_entry():
    """Factory: closed ``[revoke]`` entry with a revocation confirmation."""

    def _make(
        number: int,
        requester: str,
        serial: str,
        *,
        revoked_at: datetime = T0 + timedelta(days=10),
        reason: str = "compromised",
        confirmed: bool = True,
        legacy: bool = False,
    ) -> LedgerEntry:
        comments = ()
        if confirmed:
            if legacy:
                confirmation = f"✅ **Certificate Revoked Successfully**\n\nSerial Number: `{serial}`"
            else:
                confirmation = "✅ **Certificate Revoked Successfully**\n\n" + render_event(
                    CERTIFICATE_REVOKED,
                    serial_number=serial,
                    reason="keyCompromise" if reason == "compromised" else "unspecified",
                    revoked_at=format_timestamp(revoked_at),
                )
            comments = (LedgerComment(author=BOT, body=confirmation, created_at=revoked_at),)
        return LedgerEntry(
            number=number,
            title=f"[revoke] {serial}",
            body=f"- **Serial Number**: `{serial}`\n- Reason: {reason}\n",
            author=requester,
            created_at=revoked_at - timedelta(minutes=1),
            closed_at=revoked_at,
            labels=("revoked",),
            comments=comments,
        )

    return _make
