"""Tests for devkeyring.ca.authority.AuthorityMaterial."""

from __future__ import annotations

import logging
import os
from dataclasses import replace

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from devkeyring.ca.authority import AuthorityMaterial, check_key_permissions
from devkeyring.ca.issuer import CertificateIssuer
from devkeyring.core.errors import AuthorityUnavailable


@pytest.fixture()
def pem_files(tmp_path, ca_material):
    cert_path = tmp_path / "middle.crt"
    key_path = tmp_path / "middle.key"
    cert_path.write_text(ca_material.chain_pem, encoding="ascii")
    key_path.write_text(ca_material.key_pem, encoding="ascii")
    key_path.chmod(0o600)
    return cert_path, key_path


class TestConstruction:
    def test_signer_is_first_certificate(self, ca_material):
        assert ca_material.authority.signer is ca_material.cert
        assert ca_material.authority.chain_pem == ca_material.chain_pem

    def test_empty_chain(self, ca_material):
        with pytest.raises(AuthorityUnavailable, match="chain is empty"):
            AuthorityMaterial(intermediate_chain=(), intermediate_key=ca_material.key)

    def test_key_must_match_signer(self, ca_material):
        with pytest.raises(AuthorityUnavailable, match="does not match"):
            AuthorityMaterial(
                intermediate_chain=(ca_material.cert,),
                intermediate_key=ec.generate_private_key(ec.SECP256R1()),
            )

    def test_signer_must_be_ca(self, ca_material, settings, make_public_key_pem):
        leaf_key = ec.generate_private_key(ec.SECP256R1())
        issued = CertificateIssuer(ca_material.authority, settings.authority).issue(
            make_public_key_pem(leaf_key),
            "alice",
        )
        with pytest.raises(AuthorityUnavailable, match="is not a CA certificate"):
            AuthorityMaterial.from_pem(issued.pem, _key_pem(leaf_key))


def _key_pem(key, password=None) -> str:
    encryption = (
        serialization.BestAvailableEncryption(password.encode("utf-8"))
        if password
        else serialization.NoEncryption()
    )
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        encryption,
    ).decode("ascii")


class TestFromPem:
    def test_loads_full_chain(self, ca_material):
        material = AuthorityMaterial.from_pem(ca_material.chain_pem, ca_material.key_pem)
        assert [c.subject for c in material.intermediate_chain] == [
            ca_material.cert.subject,
            ca_material.root_cert.subject,
        ]

    def test_encrypted_key(self, ca_material):
        material = AuthorityMaterial.from_pem(
            ca_material.cert_pem,
            _key_pem(ca_material.key, "hunter2"),
            password="hunter2",
        )
        assert len(material.intermediate_chain) == 1

    def test_wrong_password(self, ca_material):
        with pytest.raises(AuthorityUnavailable, match="private key"):
            AuthorityMaterial.from_pem(
                ca_material.cert_pem,
                _key_pem(ca_material.key, "hunter2"),
                password="wrong",
            )

    def test_bad_certificate(self, ca_material):
        with pytest.raises(AuthorityUnavailable, match="certificate"):
            AuthorityMaterial.from_pem("garbage", ca_material.key_pem)

    def test_bad_key(self, ca_material):
        with pytest.raises(AuthorityUnavailable, match="private key"):
            AuthorityMaterial.from_pem(ca_material.cert_pem, "garbage")


class TestFromSettings:
    def test_inline_pem(self, settings, ca_material):
        authority = replace(
            settings.authority,
            cert_pem=ca_material.chain_pem,
            key_pem=ca_material.key_pem,
        )
        assert AuthorityMaterial.from_settings(authority).signer.subject == ca_material.cert.subject

    def test_files(self, settings, pem_files, ca_material):
        cert_path, key_path = pem_files
        authority = replace(settings.authority, cert_path=str(cert_path), key_path=str(key_path))
        material = AuthorityMaterial.from_settings(authority)
        assert len(material.intermediate_chain) == 2

    def test_inline_pem_wins_over_path(self, settings, ca_material, tmp_path):
        authority = replace(
            settings.authority,
            cert_pem=ca_material.cert_pem,
            key_pem=ca_material.key_pem,
            cert_path=str(tmp_path / "missing.crt"),
        )
        assert len(AuthorityMaterial.from_settings(authority).intermediate_chain) == 1

    def test_nothing_configured(self, settings):
        with pytest.raises(AuthorityUnavailable, match="certificate not configured"):
            AuthorityMaterial.from_settings(settings.authority)

    def test_key_not_configured(self, settings, ca_material):
        authority = replace(settings.authority, cert_pem=ca_material.cert_pem)
        with pytest.raises(AuthorityUnavailable, match="private key not configured"):
            AuthorityMaterial.from_settings(authority)

    def test_missing_file(self, settings, tmp_path, ca_material):
        authority = replace(
            settings.authority,
            cert_path=str(tmp_path / "nope.crt"),
            key_pem=ca_material.key_pem,
        )
        with pytest.raises(AuthorityUnavailable, match="not found"):
            AuthorityMaterial.from_settings(authority)


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
class TestKeyPermissions:
    def test_world_readable_key_warns(self, pem_files, caplog):
        _, key_path = pem_files
        key_path.chmod(0o644)
        with caplog.at_level(logging.WARNING, logger="devkeyring.ca.authority"):
            check_key_permissions(str(key_path))
        assert "overly permissive" in caplog.text

    def test_private_key_quiet(self, pem_files, caplog):
        _, key_path = pem_files
        with caplog.at_level(logging.WARNING, logger="devkeyring.ca.authority"):
            check_key_permissions(str(key_path))
        assert caplog.text == ""

    def test_missing_path_ignored(self, tmp_path):
        check_key_permissions(str(tmp_path / "absent.key"))
        check_key_permissions(None)
