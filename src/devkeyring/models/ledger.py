"""Ledger entities: closed issues and their comment threads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class LedgerComment:
    author: str | None
    body: str
    created_at: datetime


@dataclass(frozen=True)
class LedgerEntry:
    """One closed ledger entry (an issue) with its full comment thread.

    ``number`` is the entry's stable identifier and is what records
    refer to as their ``source_record_id``.
    """

    number: int
    title: str
    body: str
    author: str
    created_at: datetime
    closed_at: datetime | None = None
    labels: tuple[str, ...] = ()
    comments: tuple[LedgerComment, ...] = ()

    def has_tag(self, tag: str) -> bool:
        """Return True when the title carries ``[tag]`` (case-insensitive)."""
        return f"[{tag.lower()}]" in self.title.lower()


@dataclass(frozen=True)
class LedgerSnapshot:
    """Issuance and revocation entries fetched together, newest first."""

    issuance: tuple[LedgerEntry, ...] = field(default_factory=tuple)
    revocation: tuple[LedgerEntry, ...] = field(default_factory=tuple)
