"""Narrow interfaces the lifecycle engine consumes from the ledger service.

The engine only needs to *list* closed entries and to perform a handful
of write operations on the thread that triggered it.  Implementations
raise :class:`~devkeyring.core.errors.LedgerUnavailable` on any
transport failure; they never return an empty result in place of an
error.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devkeyring.models.ledger import LedgerEntry


class Ledger(abc.ABC):
    """Base class for ledger service implementations."""

    @abc.abstractmethod
    def list_closed_entries(
        self,
        *,
        label: str,
        author: str | None = None,
    ) -> list[LedgerEntry]:
        """Return closed entries carrying *label*, with comment threads.

        Parameters
        ----------
        label:
            Approval label the entries must carry.
        author:
            Restrict to entries opened by this identity; ``None`` for a
            global scan.

        Raises
        ------
        LedgerUnavailable
            When the service cannot be read.

        """

    @abc.abstractmethod
    def get_entry(self, number: int) -> LedgerEntry:
        """Return entry *number* (open or closed) with its comment thread."""

    @abc.abstractmethod
    def post_comment(self, number: int, body: str) -> None:
        """Append a comment to entry *number*."""

    @abc.abstractmethod
    def add_label(self, number: int, label: str) -> None:
        """Add *label* to entry *number*."""

    @abc.abstractmethod
    def set_labels(self, number: int, labels: list[str]) -> None:
        """Replace all labels on entry *number*."""

    @abc.abstractmethod
    def remove_label(self, number: int, label: str) -> None:
        """Remove *label* from entry *number*; absent labels are ignored."""

    @abc.abstractmethod
    def close_entry(
        self,
        number: int,
        *,
        completed: bool,
        lock: bool = True,
    ) -> None:
        """Close entry *number* and, by default, lock it as resolved."""

    @abc.abstractmethod
    def lock_entry(self, number: int, reason: str) -> None:
        """Lock the conversation on entry *number*."""

    @abc.abstractmethod
    def block_identity(self, identity: str) -> None:
        """Block *identity* from the owning organization."""


class PrivilegedRoleCheck(abc.ABC):
    """Answers "is identity X a privileged operator of the organization"."""

    @abc.abstractmethod
    def is_privileged(self, identity: str) -> bool:
        """Return True when *identity* holds the privileged role."""
