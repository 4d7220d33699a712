"""
Tests for coordinator configuration loading.
"""

import json

import pytest
from pydantic import ValidationError

from common.config import CoordinatorConfig, ONE_ETHER_WEI, load_network_config

CONFIG_ENV = [
    "LEDGER_URL", "APP_CONTRACT_ADDRESS", "ORACLE_ADDRESSES", "ORACLE_OFFSET",
    "ORACLE_COUNT", "ORACLE_STAKE_WEI", "MAX_CONCURRENT_RECORDS", "LOG_LEVEL",
    "LEDGER_CONFIG_FILE", "LEDGER_NETWORK", "STATUS_CODE_SEED", "STATUS_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)


def test_defaults():
    config = CoordinatorConfig()

    assert config.ledger_url == "http://localhost:8545"
    assert config.oracle_offset == 20
    assert config.oracle_count == 20
    assert config.oracle_stake_wei == ONE_ETHER_WEI
    assert config.gas_limit == 9999999
    assert config.from_block == 0


def test_from_env(monkeypatch):
    monkeypatch.setenv("LEDGER_URL", "http://ganache:8545")
    monkeypatch.setenv("APP_CONTRACT_ADDRESS", "0x1234")
    monkeypatch.setenv("ORACLE_COUNT", "5")
    monkeypatch.setenv("MAX_CONCURRENT_RECORDS", "8")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("STATUS_CODE_SEED", "99")

    config = CoordinatorConfig.from_env()

    assert config.ledger_url == "http://ganache:8545"
    assert config.app_contract_address == "0x1234"
    assert config.oracle_count == 5
    assert config.max_concurrent_records == 8
    assert config.log_level == "DEBUG"
    assert config.status_code_seed == 99


def test_oracle_addresses_split(monkeypatch):
    monkeypatch.setenv("ORACLE_ADDRESSES", "0xaaa, 0xbbb,,0xccc ")

    config = CoordinatorConfig.from_env()

    assert config.oracle_addresses == ["0xaaa", "0xbbb", "0xccc"]


def test_invalid_value_rejected(monkeypatch):
    monkeypatch.setenv("MAX_CONCURRENT_RECORDS", "0")

    with pytest.raises(ValidationError):
        CoordinatorConfig.from_env()


def test_env_file(tmp_path):
    env_file = tmp_path / "coordinator.env"
    env_file.write_text("STATUS_PORT=4100\n")

    config = CoordinatorConfig.from_env(str(env_file))

    assert config.status_port == 4100


def test_truffle_config_file(monkeypatch, tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({
        "localhost": {
            "url": "http://localhost:7545",
            "appAddress": "0xF2e246BB76DF876Cef8b38ae84130F4F55De395b",
            "dataAddress": "0xd9145CCE52D386f254917e481eB44e9943F39138",
        }
    }))
    monkeypatch.setenv("LEDGER_CONFIG_FILE", str(config_file))

    config = CoordinatorConfig.from_env()

    assert config.ledger_url == "http://localhost:7545"
    assert config.app_contract_address == "0xF2e246BB76DF876Cef8b38ae84130F4F55De395b"


def test_environment_wins_over_config_file(monkeypatch, tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"localhost": {"url": "http://localhost:7545", "appAddress": "0x1"}}))
    monkeypatch.setenv("LEDGER_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("LEDGER_URL", "http://node:8545")

    config = CoordinatorConfig.from_env()

    assert config.ledger_url == "http://node:8545"
    assert config.app_contract_address == "0x1"


def test_missing_network(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"localhost": {}}))

    with pytest.raises(ValueError):
        load_network_config(str(config_file), "rinkeby")
