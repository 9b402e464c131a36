"""
Chain binding resolver.

Pure lookup from the connected chain id to the contract address set. No
network calls: an unknown chain or a placeholder (all-zero) address fails
closed and the session must not proceed.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from src.integrations.contracts.errors import IncompleteBinding, UnsupportedNetwork
from src.integrations.contracts.interfaces import ChainBinding, is_zero_address
from src.utils.config_loader import ChainBindingTable

DEFAULT_BINDINGS: Dict[int, ChainBinding] = {
    11155111: ChainBinding(
        chain_id=11155111,
        registry_address="0x68e2Fb82Aee7EA0Fb895a7f603fDeAcae4Dd50c3",
        token_address="0x0Ceed6c27616CD4670b1c56f534aC30BC87370bD",
        insurance_gateway_address="0xfb663f4fc2624366B527c0d97271405D14503121",
    ),
    # Hardhat default deployment order: token first, registry second.
    31337: ChainBinding(
        chain_id=31337,
        registry_address="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
        token_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        insurance_gateway_address="0xfb663f4fc2624366B527c0d97271405D14503121",
    ),
}

_REQUIRED_FIELDS = ("registry_address", "token_address", "insurance_gateway_address")


class ChainBindingResolver:
    def __init__(self, bindings: Optional[Mapping[int, ChainBinding]] = None) -> None:
        self._bindings: Dict[int, ChainBinding] = dict(DEFAULT_BINDINGS if bindings is None else bindings)

    @classmethod
    def from_table(cls, table: Optional[ChainBindingTable]) -> "ChainBindingResolver":
        if table is None:
            return cls()
        return cls(
            {
                chain_id: ChainBinding(
                    chain_id=chain_id,
                    registry_address=entry.registry_address,
                    token_address=entry.token_address,
                    insurance_gateway_address=entry.insurance_gateway_address,
                )
                for chain_id, entry in table.chains.items()
            }
        )

    @property
    def supported_chain_ids(self) -> list[int]:
        return sorted(self._bindings)

    def resolve(self, chain_id: Optional[int]) -> ChainBinding:
        binding = self._bindings.get(chain_id) if chain_id is not None else None
        if binding is None:
            raise UnsupportedNetwork(chain_id)

        missing = [name for name in _REQUIRED_FIELDS if is_zero_address(getattr(binding, name))]
        if missing:
            raise IncompleteBinding(binding.chain_id, missing)
        return binding
