"""CRL Builder and publisher.

The CRL is derived from the full ledger on every build and is never
patched in place.  Two builds over an unchanged ledger produce the same
artifact apart from ``generatedAt``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devkeyring.ca.crl import build_x509_crl
from devkeyring.core.clock import Clock, utc_now
from devkeyring.models.crl import CRL, CRLEntry
from devkeyring.services.authorizer import index_issuance, index_revocations

if TYPE_CHECKING:
    from devkeyring.ca.authority import AuthorityMaterial
    from devkeyring.config.settings import CrlSettings
    from devkeyring.ledger.reader import LedgerReader

log = logging.getLogger(__name__)


def render_crl_json(crl: CRL) -> str:
    """Serialize *crl* in the published wire format."""
    return json.dumps(crl.to_dict(), indent=2, ensure_ascii=False) + "\n"


class CRLBuilder:
    """Build the revocation list from a full ledger scan."""

    def __init__(
        self,
        reader: LedgerReader,
        settings: CrlSettings,
        clock: Clock | None = None,
    ) -> None:
        self._reader = reader
        self._settings = settings
        self._clock = clock or utc_now

    def build(self) -> CRL:
        """Return a freshly built CRL.

        Raises
        ------
        LedgerUnavailable
            When the ledger cannot be read; no partial CRL is produced.

        """
        snapshot = self._reader.snapshot()
        issued = index_issuance(self._reader.issuance_records(snapshot.issuance))
        revocations = index_revocations(self._reader.revocation_records(snapshot.revocation))

        entries = []
        for serial, revocation in revocations.items():
            cert = issued.get(serial)
            if cert is None:
                log.info(
                    "Revoked serial %s (entry #%d) was not issued by this keyring",
                    serial,
                    revocation.source_record_id,
                )
            entries.append(
                CRLEntry(
                    serial_number=serial,
                    fingerprint=cert.fingerprint if cert else None,
                    owner=cert.owner if cert else revocation.requested_by,
                    revoked_at=revocation.revoked_at,
                    reason=revocation.reason,
                    revocation_record_id=revocation.source_record_id,
                    origin_record_id=cert.source_record_id if cert else None,
                ),
            )

        # Newest revocation first; serial breaks ties so rebuilds are byte-identical
        entries.sort(key=lambda e: e.serial_number)
        entries.sort(key=lambda e: e.revoked_at, reverse=True)

        crl = CRL(
            version=self._settings.version,
            generated_at=self._clock(),
            issuer=self._settings.issuer,
            total_issued=len(issued),
            revoked_certificates=tuple(entries),
        )
        log.info(
            "CRL built: %d issued, %d revoked",
            crl.total_issued,
            crl.total_revoked,
        )
        return crl


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


def _comparable(document: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in document.items() if k != "generatedAt"}


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        Path(tmp).replace(path)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise


class CRLPublisher:
    """Write the CRL artifact(s) to disk.

    Parameters
    ----------
    settings:
        The ``crl`` settings section.
    authority:
        Intermediate CA material; required only for the signed DER
        rendition (``crl.der_output_path``).

    """

    def __init__(
        self,
        settings: CrlSettings,
        authority: AuthorityMaterial | None = None,
    ) -> None:
        self._settings = settings
        self._authority = authority

    def has_changed(self, crl: CRL, path: Path) -> bool:
        """Return True when *path* differs from *crl* in anything but ``generatedAt``."""
        try:
            existing = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return True
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("Existing CRL at %s is unreadable, replacing it: %s", path, exc)
            return True
        return _comparable(existing) != _comparable(crl.to_dict())

    def publish(self, crl: CRL, output_path: str | Path | None = None) -> bool:
        """Write *crl*; return True when the published content changed.

        When ``crl.publish_on_change`` is set and nothing but
        ``generatedAt`` would change, the files are left untouched.
        """
        target = output_path or self._settings.output_path
        if not target:
            msg = "No CRL output path configured (crl.output_path)"
            raise ValueError(msg)
        path = Path(target)

        changed = self.has_changed(crl, path)
        if not changed and self._settings.publish_on_change:
            log.info("CRL unchanged; leaving %s as is", path)
            return False

        _atomic_write(path, render_crl_json(crl).encode("utf-8"))
        log.info("CRL written to %s (%d revoked)", path, crl.total_revoked)

        if self._settings.der_output_path:
            if self._authority is None:
                log.warning(
                    "crl.der_output_path is set but no authority material is loaded; "
                    "skipping the signed CRL",
                )
            else:
                der = build_x509_crl(
                    crl,
                    self._authority,
                    next_update_hours=self._settings.der_next_update_hours,
                )
                _atomic_write(Path(self._settings.der_output_path), der)
                log.info("Signed CRL written to %s", self._settings.der_output_path)
        return changed
