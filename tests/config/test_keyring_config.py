"""Tests for devkeyring.config.keyring_config."""

from __future__ import annotations

import json
import logging

import pytest
import yaml

from devkeyring.config import ConfigValidationError, KeyringConfig, get_config
from devkeyring.config.keyring_config import _resolve_env_vars


def _write_yaml(tmp_path, data, name="config.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoading:
    def test_minimal_yaml(self, tmp_config_file):
        cfg = KeyringConfig(config_file=tmp_config_file)
        assert cfg.settings.ledger.repository == "KernelSU-Modules-Repo/developers"
        assert cfg.data["_source"] == str(tmp_config_file)

    def test_json_file(self, tmp_path, minimal_config_data):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(minimal_config_data), encoding="utf-8")
        assert KeyringConfig(config_file=path).settings.ledger.repo == "developers"

    def test_data_mapping(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        assert cfg.settings.ledger.owner == "KernelSU-Modules-Repo"

    def test_data_is_copied(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        minimal_config_data["ledger"]["repo"] = "changed"
        assert cfg.data["ledger"]["repo"] == "developers"

    def test_exactly_one_source(self, tmp_config_file, minimal_config_data):
        with pytest.raises(ValueError, match="Exactly one"):
            KeyringConfig()
        with pytest.raises(ValueError, match="Exactly one"):
            KeyringConfig(config_file=tmp_config_file, data=minimal_config_data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            KeyringConfig(config_file=tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("ledger: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="is not valid"):
            KeyringConfig(config_file=path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            KeyringConfig(config_file=path)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_ledger_required(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            KeyringConfig(data={})
        assert any("'ledger' is a required property" in e for e in exc_info.value.errors)

    def test_repo_required(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            KeyringConfig(data={"ledger": {"owner": "o"}})
        assert exc_info.value.errors == ["ledger: 'repo' is a required property"]

    def test_unknown_section_rejected(self, minimal_config_data):
        minimal_config_data["database"] = {}
        with pytest.raises(ConfigValidationError, match="Additional properties"):
            KeyringConfig(data=minimal_config_data)

    def test_error_location_reported(self, minimal_config_data):
        minimal_config_data["webhook"] = {"port": 0}
        with pytest.raises(ConfigValidationError) as exc_info:
            KeyringConfig(data=minimal_config_data)
        assert exc_info.value.errors[0].startswith("webhook.port:")

    def test_unknown_policy_rejected(self, minimal_config_data):
        minimal_config_data["reputation"] = {"policy": "vibes"}
        with pytest.raises(ConfigValidationError, match="reputation.policy"):
            KeyringConfig(data=minimal_config_data)

    def test_message_lists_every_error(self):
        exc = ConfigValidationError(["a: bad", "b: worse"])
        assert str(exc) == "Configuration validation failed:\n  - a: bad\n  - b: worse"


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------


class TestEnvVars:
    def test_substitution(self, minimal_config_data, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_secret")
        minimal_config_data["ledger"]["token"] = "${GITHUB_TOKEN}"
        assert KeyringConfig(data=minimal_config_data).settings.ledger.token == "ghp_secret"

    def test_default_used_when_unset(self, minimal_config_data, monkeypatch):
        monkeypatch.delenv("CRL_PATH", raising=False)
        minimal_config_data["crl"] = {"output_path": "${CRL_PATH:-public/crl.json}"}
        assert KeyringConfig(data=minimal_config_data).settings.crl.output_path == "public/crl.json"

    def test_unset_without_default(self, minimal_config_data, monkeypatch):
        monkeypatch.delenv("MIDDLE_CA_KEY", raising=False)
        minimal_config_data["authority"] = {"key_pem": "${MIDDLE_CA_KEY}"}
        with pytest.raises(ConfigValidationError, match="authority.key_pem"):
            KeyringConfig(data=minimal_config_data)

    def test_multiline_pem_value(self, monkeypatch):
        pem = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"
        monkeypatch.setenv("MIDDLE_CA_CERT", pem)
        data = {"authority": {"cert_pem": "${MIDDLE_CA_CERT}"}}
        _resolve_env_vars(data)
        assert data["authority"]["cert_pem"] == pem

    def test_lists_walked(self, monkeypatch):
        monkeypatch.setenv("BOT_NAME", "keyring-bot")
        data = {"ledger": {"trusted_comment_authors": ["${BOT_NAME}", "literal"]}}
        _resolve_env_vars(data)
        assert data["ledger"]["trusted_comment_authors"] == ["keyring-bot", "literal"]

    def test_partial_reference_left_alone(self):
        data = {"ledger": {"owner": "prefix-${NOT_WHOLE}"}}
        _resolve_env_vars(data)
        assert data["ledger"]["owner"] == "prefix-${NOT_WHOLE}"


# ---------------------------------------------------------------------------
# Cross-field checks
# ---------------------------------------------------------------------------


class TestAdditionalChecks:
    def test_path_and_pem_exclusive(self, minimal_config_data):
        minimal_config_data["authority"] = {"cert_path": "/ca.crt", "cert_pem": "PEM", "key_path": "/ca.key"}
        with pytest.raises(ConfigValidationError, match="mutually exclusive"):
            KeyringConfig(data=minimal_config_data)

    def test_curves_only_narrow(self, minimal_config_data):
        minimal_config_data["authority"] = {"allowed_curves": ["secp256r1", "secp521r1"]}
        with pytest.raises(ConfigValidationError, match="secp521r1"):
            KeyringConfig(data=minimal_config_data)

    def test_curves_not_empty(self, minimal_config_data):
        minimal_config_data["authority"] = {"allowed_curves": []}
        with pytest.raises(ConfigValidationError, match="must not be empty"):
            KeyringConfig(data=minimal_config_data)

    def test_percentile_order(self, minimal_config_data):
        minimal_config_data["reputation"] = {"approve_percentile": 80, "reject_percentile": 50}
        with pytest.raises(ConfigValidationError, match="must not exceed"):
            KeyringConfig(data=minimal_config_data)

    def test_signed_crl_needs_key(self, minimal_config_data):
        minimal_config_data["crl"] = {"der_output_path": "crl.der"}
        with pytest.raises(ConfigValidationError, match="der_output_path requires"):
            KeyringConfig(data=minimal_config_data)

    def test_warnings_logged(self, minimal_config_data, caplog):
        with caplog.at_level(logging.WARNING, logger="devkeyring.config.keyring_config"):
            KeyringConfig(data=minimal_config_data)
        assert "ledger.token is not set" in caplog.text
        assert "certificate issuance will fail" in caplog.text
        assert "webhook.secret is not set" in caplog.text

    def test_empty_trusted_authors_warns(self, minimal_config_data, caplog):
        minimal_config_data["ledger"]["trusted_comment_authors"] = []
        with caplog.at_level(logging.WARNING, logger="devkeyring.config.keyring_config"):
            KeyringConfig(data=minimal_config_data)
        assert "from any commenter will be trusted" in caplog.text

    def test_all_errors_reported_together(self, minimal_config_data):
        minimal_config_data["authority"] = {"allowed_curves": []}
        minimal_config_data["reputation"] = {"approve_percentile": 90, "reject_percentile": 10}
        with pytest.raises(ConfigValidationError) as exc_info:
            KeyringConfig(data=minimal_config_data)
        assert len(exc_info.value.errors) == 2


# ---------------------------------------------------------------------------
# Singleton and access
# ---------------------------------------------------------------------------


class TestSingleton:
    def test_get_config_before_init(self):
        with pytest.raises(RuntimeError, match="not initialised"):
            get_config()

    def test_get_config_returns_latest(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        assert get_config() is cfg

    def test_reset(self, minimal_config_data):
        KeyringConfig(data=minimal_config_data)
        KeyringConfig.reset()
        with pytest.raises(RuntimeError):
            get_config()

    def test_failed_load_does_not_replace(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        with pytest.raises(ConfigValidationError):
            KeyringConfig(data={})
        assert get_config() is cfg


class TestGet:
    def test_dotted_lookup(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        assert cfg.get("ledger.repo") == "developers"

    def test_missing_returns_default(self, minimal_config_data):
        cfg = KeyringConfig(data=minimal_config_data)
        assert cfg.get("crl.output_path", default="crl.json") == "crl.json"
        assert cfg.get("ledger.repo.deeper") is None

    def test_repr(self, tmp_config_file):
        assert repr(KeyringConfig(config_file=tmp_config_file)) == f"<KeyringConfig config_file={tmp_config_file}>"


def test_full_example_file_loads(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "t")
    monkeypatch.setenv("WEBHOOK_SECRET", "s")
    data = {
        "ledger": {
            "owner": "KernelSU-Modules-Repo",
            "repo": "developers",
            "token": "${GITHUB_TOKEN}",
            "page_size": 100,
        },
        "authority": {"cert_path": "/etc/keyring/middle.crt", "key_path": "/etc/keyring/middle.key"},
        "privilege": {"role": "admin"},
        "crl": {"output_path": "public/crl.json", "der_output_path": "public/crl.der"},
        "reputation": {"policy": "gated"},
        "webhook": {"secret": "${WEBHOOK_SECRET}", "port": 9000},
        "logging": {"level": "DEBUG", "format": "json", "audit": {"enabled": True, "file": "audit.log"}},
    }
    cfg = KeyringConfig(config_file=_write_yaml(tmp_path, data))
    s = cfg.settings
    assert s.ledger.page_size == 100
    assert s.privilege.organization == "KernelSU-Modules-Repo"
    assert s.crl.der_output_path == "public/crl.der"
    assert s.reputation.policy == "gated"
    assert s.webhook.port == 9000
    assert s.logging.audit.file == "audit.log"
