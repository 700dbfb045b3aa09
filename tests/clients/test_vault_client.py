"""Tests for VaultClient - HashiCorp Vault secrets management."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import VaultClient, get_database_url, get_valkey_url


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """Patched hvac.Client that authenticates and serves two secrets."""
    secrets = {
        "invoicing/database": {"url": "postgresql://invoicing@db/invoicing"},
        "invoicing/valkey": {"url": "redis://cache:6379/0"},
    }

    def read_secret_version(path, raise_on_deleted_version=True):
        if path not in secrets:
            raise InvalidPath()
        return {"data": {"data": secrets[path]}}

    client = MagicMock()
    client.auth.approle.login.return_value = {"auth": {"client_token": "token"}}
    client.is_authenticated.return_value = True
    client.secrets.kv.v2.read_secret_version.side_effect = read_secret_version

    with patch("clients.vault_client.hvac.Client", return_value=client) as factory:
        client.factory = factory
        yield client


@pytest.fixture(autouse=True)
def _reset_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, monkeypatch):
        """VAULT_ADDR required."""
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        """VAULT_ROLE_ID and VAULT_SECRET_ID required."""
        monkeypatch.delenv("VAULT_SECRET_ID")

        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()

        hvac_client.auth.approle.login.assert_called_once_with(role_id="role", secret_id="secret")
        assert client.client.token == "token"

    def test_namespace_passed_through(self, hvac_client, monkeypatch):
        monkeypatch.setenv("VAULT_NAMESPACE", "billing")
        VaultClient()

        hvac_client.factory.assert_called_once_with(url="https://vault.test:8200", namespace="billing")

    def test_failed_login_raises_permission_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Exception("invalid role")

        with pytest.raises(PermissionError, match="authentication"):
            VaultClient()

    def test_unauthenticated_raises_permission_error(self, hvac_client):
        hvac_client.is_authenticated.return_value = False

        with pytest.raises(PermissionError):
            VaultClient()


class TestGetSecret:
    """Secret retrieval - paths automatically scoped to invoicing/."""

    def test_returns_field_value(self, hvac_client):
        assert VaultClient().get_secret("database", "url") == "postgresql://invoicing@db/invoicing"

    def test_missing_path_raises(self, hvac_client):
        with pytest.raises(PermissionError, match="invoicing/nonexistent"):
            VaultClient().get_secret("nonexistent", "field")

    def test_forbidden_raises(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden()

        with pytest.raises(PermissionError, match="Access denied"):
            VaultClient().get_secret("database", "url")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "nonexistent_field")


class TestConvenienceFunctions:
    """Module-level helpers share one client and cache."""

    def test_get_database_url(self, hvac_client):
        assert get_database_url() == "postgresql://invoicing@db/invoicing"

    def test_get_valkey_url(self, hvac_client):
        assert get_valkey_url() == "redis://cache:6379/0"

    def test_secrets_cached(self, hvac_client):
        get_valkey_url()
        get_valkey_url()

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1
        assert hvac_client.factory.call_count == 1
