"""
Coordinator Configuration

Settings are read from the environment (and a .env file when present).
Ledger URL and contract address may also come from a truffle-style
config.json keyed by network name.
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

ONE_ETHER_WEI = 10 ** 18


class CoordinatorConfig(BaseModel):
    """Runtime settings for the oracle coordinator"""

    # Ledger
    ledger_url: str = "http://localhost:8545"
    app_contract_address: Optional[str] = None
    app_contract_abi_path: Optional[str] = None
    gas_limit: int = Field(default=9999999, ge=21000)
    from_block: int = Field(default=0, ge=0)
    poll_interval: float = Field(default=2.0, gt=0)

    # Identity pool
    oracle_addresses: List[str] = []
    oracle_offset: int = Field(default=20, ge=0)
    oracle_count: int = Field(default=20, ge=0)
    oracle_stake_wei: int = Field(default=ONE_ETHER_WEI, ge=0)

    # Dispatch
    max_concurrent_records: int = Field(default=4, ge=1)
    submission_timeout: float = Field(default=30.0, gt=0)
    registration_timeout: float = Field(default=60.0, gt=0)
    status_code_seed: Optional[int] = None

    # Connection handling
    connect_max_retries: int = Field(default=5, ge=1)
    connect_retry_delay: float = Field(default=5.0, ge=0)
    reconnect_delay: float = Field(default=1.0, ge=0)
    reconnect_max_delay: float = Field(default=30.0, ge=0)
    reconnect_max_attempts: int = Field(default=10, ge=1)

    # Status endpoint
    status_host: str = "0.0.0.0"
    status_port: int = Field(default=3000, ge=0, le=65535)

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./output"

    @field_validator("oracle_addresses", mode="before")
    @classmethod
    def _split_addresses(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "CoordinatorConfig":
        """
        Build configuration from environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to a .env found from the working directory up)

        Returns:
            Validated CoordinatorConfig
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        env_names = {
            "ledger_url": "LEDGER_URL",
            "app_contract_address": "APP_CONTRACT_ADDRESS",
            "app_contract_abi_path": "APP_CONTRACT_ABI_PATH",
            "gas_limit": "GAS_LIMIT",
            "from_block": "FROM_BLOCK",
            "poll_interval": "POLL_INTERVAL",
            "oracle_addresses": "ORACLE_ADDRESSES",
            "oracle_offset": "ORACLE_OFFSET",
            "oracle_count": "ORACLE_COUNT",
            "oracle_stake_wei": "ORACLE_STAKE_WEI",
            "max_concurrent_records": "MAX_CONCURRENT_RECORDS",
            "submission_timeout": "SUBMISSION_TIMEOUT",
            "registration_timeout": "REGISTRATION_TIMEOUT",
            "status_code_seed": "STATUS_CODE_SEED",
            "connect_max_retries": "CONNECT_MAX_RETRIES",
            "connect_retry_delay": "CONNECT_RETRY_DELAY",
            "reconnect_delay": "RECONNECT_DELAY",
            "reconnect_max_delay": "RECONNECT_MAX_DELAY",
            "reconnect_max_attempts": "RECONNECT_MAX_ATTEMPTS",
            "status_host": "STATUS_HOST",
            "status_port": "STATUS_PORT",
            "log_level": "LOG_LEVEL",
            "log_dir": "LOG_DIR",
        }

        values = {}
        for field_name, env_name in env_names.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw

        # A truffle-style config file fills in whatever the environment left unset
        config_file = os.getenv("LEDGER_CONFIG_FILE")
        if config_file:
            network = os.getenv("LEDGER_NETWORK", "localhost")
            for key, value in load_network_config(config_file, network).items():
                values.setdefault(key, value)

        return cls(**values)


def load_network_config(path: str, network: str = "localhost") -> dict:
    """
    Read ledger settings for one network from a config.json file.

    The file maps network names to {"url": ..., "appAddress": ...}.

    Args:
        path: Path to the JSON file
        network: Network key to read

    Returns:
        Dict of CoordinatorConfig field values

    Raises:
        ValueError: If the network is missing from the file
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if network not in data:
        raise ValueError(f"Network '{network}' not found in {path}")

    entry = data[network]
    values = {}
    if entry.get("url"):
        values["ledger_url"] = entry["url"]
    if entry.get("appAddress"):
        values["app_contract_address"] = entry["appAddress"]
    return values
