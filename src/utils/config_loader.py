"""
Configuration loader for the wallet orchestration client
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, Field, ValidationError
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

load_dotenv()

CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


class ChainBindingEntry(BaseModel):
    """Addresses deployed on one chain"""

    registry_address: str
    token_address: str
    insurance_gateway_address: str


class ChainBindingTable(BaseModel):
    """Chain id -> contract address set"""

    chains: Dict[int, ChainBindingEntry] = Field(default_factory=dict)


class WalletConfig(BaseModel):
    """Runtime settings for sessions and transactions"""

    receipt_timeout_seconds: float = Field(default=20.0, gt=0)
    connect_timeout_seconds: float = Field(default=120.0, gt=0)
    token_decimals: int = Field(default=18, ge=0, le=36)
    policy_artifact_path: Optional[str] = None
    wallet_bridge_url: str = ""
    wallet_bridge_api_key: str = ""
    rpc_urls: Dict[int, str] = Field(default_factory=dict)
    use_mock_ledger: bool = True
    supports_filtered_policy_lists: bool = False


def _env_overrides(data: Dict) -> Dict:
    overrides = dict(data)
    if os.getenv("WALLET_BRIDGE_URL"):
        overrides["wallet_bridge_url"] = os.environ["WALLET_BRIDGE_URL"]
    if os.getenv("WALLET_BRIDGE_API_KEY"):
        overrides["wallet_bridge_api_key"] = os.environ["WALLET_BRIDGE_API_KEY"]
    if os.getenv("POLICY_ARTIFACT_PATH"):
        overrides["policy_artifact_path"] = os.environ["POLICY_ARTIFACT_PATH"]
    if os.getenv("USE_MOCK_LEDGER"):
        overrides["use_mock_ledger"] = os.environ["USE_MOCK_LEDGER"].lower() in ("1", "true", "yes")

    rpc_urls = {int(k): v for k, v in (overrides.get("rpc_urls") or {}).items()}
    for key, value in os.environ.items():
        if key.startswith("CHAIN_RPC_URL_") and value:
            try:
                rpc_urls[int(key[len("CHAIN_RPC_URL_"):])] = value
            except ValueError:
                logger.warning(f"Ignoring {key}: chain id suffix is not a number")
    overrides["rpc_urls"] = rpc_urls
    return overrides


def load_wallet_config(config_path: Optional[Path] = None) -> WalletConfig:
    """
    Load and validate wallet configuration from YAML, then apply env overrides

    Args:
        config_path: Path to config file. Defaults to config/wallet_config.yml

    Returns:
        Validated WalletConfig object (defaults when the file is absent)

    Raises:
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = CONFIG_DIR / "wallet_config.yml"

    data: Dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.info(f"Wallet config not found at {config_path}; using defaults")

    try:
        config = WalletConfig(**_env_overrides(data))
        logger.info(f"Successfully loaded wallet config from {config_path}")
        return config
    except ValidationError as e:
        logger.error(f"Wallet config validation failed: {e}")
        raise


def load_chain_binding_table(config_path: Optional[Path] = None) -> Optional[ChainBindingTable]:
    """
    Load the chain binding table from YAML

    Returns None when the file does not exist so callers fall back to the
    built-in table. Zero addresses are kept as-is; they mean "not deployed".
    """
    if config_path is None:
        config_path = CONFIG_DIR / "chain_bindings.yml"

    if not config_path.exists():
        return None

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    try:
        table = ChainBindingTable(**data)
        logger.info(f"Loaded {len(table.chains)} chain bindings from {config_path}")
        return table
    except ValidationError as e:
        logger.error(f"Chain binding table validation failed: {e}")
        raise
