"""devkeyring -- certificate lifecycle engine for a developer keyring.

Issues, tracks and revokes developer code-signing certificates using an
issue tracker as the append-only ledger.
"""

__version__ = "1.0.0"
