"""Configuration subsystem for devkeyring.

Public API::

    from devkeyring.config import get_config, KeyringConfig

    # At startup (CLI only):
    KeyringConfig(config_file="config.yaml")

    # Everywhere else:
    cfg  = get_config()
    repo = cfg.settings.ledger.repository
"""

from devkeyring.config.keyring_config import (
    ConfigValidationError,
    KeyringConfig,
    get_config,
)
from devkeyring.config.settings import (
    AuditLogSettings,
    AuthoritySettings,
    CrlSettings,
    KeyringSettings,
    LedgerSettings,
    LoggingSettings,
    PrivilegeSettings,
    ReputationSettings,
    WebhookSettings,
    build_settings,
)

__all__ = [
    "AuditLogSettings",
    "AuthoritySettings",
    "ConfigValidationError",
    "CrlSettings",
    "KeyringConfig",
    "KeyringSettings",
    "LedgerSettings",
    "LoggingSettings",
    "PrivilegeSettings",
    "ReputationSettings",
    "WebhookSettings",
    "build_settings",
    "get_config",
]
