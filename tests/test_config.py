"""Tests for VaultConfig."""
import logging

import pytest
from pydantic import ValidationError

from shadow_vault.vault.config import DEFAULT_SIGNING_MESSAGE, VaultConfig

from conftest import CHAIN_ID, CONTRACT_ADDRESS


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_CONTRACT_ADDRESS", CONTRACT_ADDRESS.upper().replace("0X", "0x"))
    monkeypatch.setenv("VAULT_CHAIN_ID", str(CHAIN_ID))
    for name in ("VAULT_ALLOW_KEY_EXPORT", "VAULT_PROOF_TIMEOUT", "VAULT_WALRUS_EPOCHS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults():
    config = VaultConfig(contract_address=CONTRACT_ADDRESS, chain_id=CHAIN_ID)
    assert config.signing_message == DEFAULT_SIGNING_MESSAGE
    assert config.allow_key_export is False
    assert config.proof_max_attempts == 3
    assert config.walrus_epochs == 5


def test_from_env(vault_env):
    vault_env.setenv("VAULT_PROOF_TIMEOUT", "12.5")
    vault_env.setenv("VAULT_WALRUS_EPOCHS", "9")
    vault_env.setenv("VAULT_WALRUS_PUBLISHER_URL", "http://localhost:31415/")
    config = VaultConfig.from_env()
    assert config.contract_address == CONTRACT_ADDRESS
    assert config.chain_id == CHAIN_ID
    assert config.proof_timeout == 12.5
    assert config.walrus_epochs == 9
    assert config.walrus_publisher_url == "http://localhost:31415"


@pytest.mark.parametrize("name", ["VAULT_CONTRACT_ADDRESS", "VAULT_CHAIN_ID"])
def test_missing_env(vault_env, name):
    vault_env.delenv(name)
    with pytest.raises(RuntimeError):
        VaultConfig.from_env()


@pytest.mark.parametrize("value, expected", [("1", True), ("YES", True), ("0", False), ("", False)])
def test_key_export_flag(vault_env, value, expected):
    vault_env.setenv("VAULT_ALLOW_KEY_EXPORT", value)
    assert VaultConfig.from_env().allow_key_export is expected


def test_key_export_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="shadow_vault"):
        VaultConfig(contract_address=CONTRACT_ADDRESS, chain_id=CHAIN_ID, allow_key_export=True)
    assert "development only" in caplog.text


@pytest.mark.parametrize("address", ["0x1234", "5c" * 20, "0x" + "zz" * 20])
def test_invalid_contract_address(address):
    with pytest.raises(ValidationError):
        VaultConfig(contract_address=address, chain_id=CHAIN_ID)


def test_invalid_chain_id():
    with pytest.raises(ValidationError):
        VaultConfig(contract_address=CONTRACT_ADDRESS, chain_id=0)
