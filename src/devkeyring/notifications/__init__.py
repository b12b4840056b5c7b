"""Ledger comment rendering."""

from devkeyring.notifications.renderer import MessageRenderer

__all__ = ["MessageRenderer"]
