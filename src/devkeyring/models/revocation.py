"""Revocation entity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from devkeyring.core.types import RevocationReason


@dataclass(frozen=True)
class RevocationRecord:
    serial_number: str
    requested_by: str
    reason: RevocationReason
    revoked_at: datetime
    source_record_id: int
