"""Flask application package for the webhook receiver.

Public API::

    from devkeyring.app import create_app
"""

from devkeyring.app.factory import create_app

__all__ = ["create_app"]
