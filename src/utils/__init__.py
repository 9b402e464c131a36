"""
Utility modules for the wallet orchestration client
"""
from .config_loader import load_wallet_config, load_chain_binding_table, WalletConfig

__all__ = [
    'load_wallet_config',
    'load_chain_binding_table',
    'WalletConfig',
]
