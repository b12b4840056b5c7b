"""Ledger access: the issue tracker treated as an append-only event log.

Exports the service interfaces, the GitHub implementation and the
reader that normalizes entries into certificate history.
"""

from devkeyring.ledger.base import Ledger, PrivilegedRoleCheck
from devkeyring.ledger.github import GitHubClient, GitHubLedger, GitHubOrgRoleCheck
from devkeyring.ledger.reader import LedgerReader

__all__ = [
    "GitHubClient",
    "GitHubLedger",
    "GitHubOrgRoleCheck",
    "Ledger",
    "LedgerReader",
    "PrivilegedRoleCheck",
]
