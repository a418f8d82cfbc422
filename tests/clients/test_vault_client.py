"""Tests for VaultClient - AppRole auth and provisioning/ scoped secret reads."""

from unittest.mock import Mock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import VaultClient


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """Patched hvac.Client that authenticates and serves a small secret tree."""
    secrets = {
        "provisioning/database": {"url": "postgresql://ledger@db/provisioning"},
        "provisioning/registrar": {"base_url": "https://api.registrar.test", "api_key": "k", "api_secret": "s"},
    }

    def read_secret_version(path, raise_on_deleted_version=True):
        if path not in secrets:
            raise InvalidPath()
        return {"data": {"data": secrets[path]}}

    client = Mock()
    client.auth.approle.login.return_value = {"auth": {"client_token": "tok"}}
    client.is_authenticated.return_value = True
    client.secrets.kv.v2.read_secret_version.side_effect = read_secret_version

    with patch("clients.vault_client.hvac.Client", return_value=client):
        yield client


@pytest.fixture
def fresh_cache(monkeypatch):
    monkeypatch.setattr(vault_module, "_vault_client_instance", None)
    monkeypatch.setattr(vault_module, "_secret_cache", {})


class TestVaultClientInit:
    """Fail fast on missing configuration."""

    def test_missing_vault_addr_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)
        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_SECRET_ID")
        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_failed_login_raises_permission_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("bad role")
        with pytest.raises(PermissionError, match="authentication"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()
        assert client.client.token == "tok"
        hvac_client.auth.approle.login.assert_called_once_with(role_id="role", secret_id="secret")


class TestGetSecret:
    """Paths are scoped to provisioning/."""

    def test_returns_field_value(self, hvac_client):
        assert VaultClient().get_secret("database", "url") == "postgresql://ledger@db/provisioning"

    def test_missing_path_raises(self, hvac_client):
        with pytest.raises(PermissionError, match="provisioning/nonexistent"):
            VaultClient().get_secret("nonexistent", "field")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "password")

    def test_access_denied_raises(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden("denied")
        with pytest.raises(PermissionError, match="Access denied"):
            VaultClient().get_secret("database", "url")


class TestConvenienceFunctions:

    def test_get_database_url(self, hvac_client, fresh_cache):
        assert vault_module.get_database_url().startswith("postgresql://")

    def test_registrar_config_fields(self, hvac_client, fresh_cache):
        config = vault_module.get_registrar_config()
        assert config == {"base_url": "https://api.registrar.test", "api_key": "k", "api_secret": "s"}

    def test_values_are_cached(self, hvac_client, fresh_cache):
        vault_module.get_database_url()
        vault_module.get_database_url()
        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1
