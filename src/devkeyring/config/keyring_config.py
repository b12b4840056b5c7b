"""devkeyring configuration loader built on PyYAML and jsonschema.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    KeyringConfig(config_file="/etc/devkeyring/config.yaml")

    # 2. Any module retrieves it afterwards
    from devkeyring.config import get_config
    cfg = get_config()
    cfg.settings.ledger.repo  # typed access

    # 3. Dynamic access
    cfg.get("crl.output_path", default="crl.json")
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from devkeyring.config.settings import KeyringSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_SUPPORTED_CURVES = frozenset({"secp256r1", "secp384r1"})

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: KeyringConfig | None = None


def get_config() -> KeyringConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`KeyringConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "KeyringConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def _read_file(path: Path) -> dict[str, Any]:
    """Parse a YAML or JSON config file into a dict."""
    try:
        with path.open(encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except FileNotFoundError as exc:
        msg = f"Config file not found: {path}"
        raise ConfigValidationError([msg]) from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"Config file {path} is not valid: {exc}"
        raise ConfigValidationError([msg]) from exc
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping at the top level"
        raise ConfigValidationError([msg])
    return data


def _schema_errors(data: dict[str, Any]) -> list[str]:
    with _SCHEMA_PATH.open(encoding="utf-8") as f:
        schema = json.load(f)
    validator = jsonschema.Draft202012Validator(schema)
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = ".".join(str(p) for p in err.absolute_path) or "<root>"
        errors.append(f"{location}: {err.message}")
    return errors


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class KeyringConfig:
    """Central configuration for devkeyring.

    The JSON schema is bundled at ``config/schema.json``; callers
    supply only ``config_file`` (or, in tests, a raw ``data`` mapping).

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(
        self,
        *,
        config_file: str | Path | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        global _instance  # noqa: PLW0603

        if (config_file is None) == (data is None):
            msg = "Exactly one of config_file or data must be given"
            raise ValueError(msg)

        if config_file is not None:
            raw = _read_file(Path(config_file))
            raw["_source"] = str(config_file)
        else:
            raw = json.loads(json.dumps(data))

        # Resolve env vars before the schema sees the values
        _resolve_env_vars(raw)
        self._data = raw

        schema_input = {k: v for k, v in raw.items() if k != "_source"}
        errors = _schema_errors(schema_input)
        if errors:
            raise ConfigValidationError(errors)
        self.additional_checks()

        self._settings: KeyringSettings = build_settings(self._data)
        _instance = self

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> KeyringSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dot-path, e.g. ``"ledger.repo"``."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:  # noqa: C901, PLR0912
        """Semantic & cross-field validation, run after the schema passes."""
        errors: list[str] = []
        warnings: list[str] = []

        ledger = self.data.get("ledger") or {}
        authority = self.data.get("authority") or {}
        reputation = self.data.get("reputation") or {}
        webhook = self.data.get("webhook") or {}
        crl = self.data.get("crl") or {}

        # -- ledger --
        if not ledger.get("token"):
            warnings.append(
                "ledger.token is not set; the ledger API will be called anonymously",
            )
        if ledger.get("trusted_comment_authors") == []:
            warnings.append(
                "ledger.trusted_comment_authors is empty; certificate markers "
                "from any commenter will be trusted",
            )

        # -- authority --
        for kind in ("cert", "key"):
            has_path = bool(authority.get(f"{kind}_path"))
            has_pem = bool(authority.get(f"{kind}_pem"))
            if has_path and has_pem:
                errors.append(
                    f"authority.{kind}_path and authority.{kind}_pem are mutually exclusive",
                )
            if not has_path and not has_pem:
                warnings.append(
                    f"authority.{kind}_path / authority.{kind}_pem not set; "
                    "certificate issuance will fail",
                )

        curves = authority.get("allowed_curves")
        if curves is not None:
            unsupported = sorted(set(curves) - _SUPPORTED_CURVES)
            if unsupported:
                errors.append(
                    "authority.allowed_curves may only narrow the supported set "
                    f"{sorted(_SUPPORTED_CURVES)}; got {unsupported}",
                )
            if not curves:
                errors.append("authority.allowed_curves must not be empty")

        # -- reputation --
        approve = reputation.get("approve_percentile", 25)
        reject = reputation.get("reject_percentile", 75)
        if approve > reject:
            errors.append(
                f"reputation.approve_percentile ({approve}) must not exceed "
                f"reputation.reject_percentile ({reject})",
            )

        # -- webhook --
        if not webhook.get("secret"):
            warnings.append(
                "webhook.secret is not set; the webhook endpoint will reject every delivery",
            )

        # -- crl --
        if crl.get("der_output_path") and not (
            authority.get("key_path") or authority.get("key_pem")
        ):
            errors.append(
                "crl.der_output_path requires authority key material to sign the CRL",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        source = self.data.get("_source", "?")
        return f"<KeyringConfig config_file={source}>"
