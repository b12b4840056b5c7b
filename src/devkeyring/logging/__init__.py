"""Logging subsystem for devkeyring.

Public API::

    from devkeyring.logging import configure_logging

    configure_logging(settings.logging)
"""

from devkeyring.logging.setup import configure_logging

__all__ = ["configure_logging"]
