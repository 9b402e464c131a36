import pytest

from src.integrations.contracts.errors import IncompleteBinding, UnsupportedNetwork
from src.integrations.contracts.interfaces import ChainBinding
from src.integrations.policy.chain_bindings import ChainBindingResolver
from src.utils.config_loader import load_chain_binding_table

ZERO = "0x0000000000000000000000000000000000000000"


def test_resolves_local_development_chain():
    binding = ChainBindingResolver().resolve(31337)
    assert binding.chain_id == 31337
    assert binding.registry_address == "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
    assert binding.token_address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def test_resolves_sepolia():
    binding = ChainBindingResolver().resolve(11155111)
    assert binding.registry_address == "0x68e2Fb82Aee7EA0Fb895a7f603fDeAcae4Dd50c3"


@pytest.mark.parametrize("chain_id", [1, 137, None])
def test_unknown_chain_fails_closed(chain_id):
    with pytest.raises(UnsupportedNetwork) as exc:
        ChainBindingResolver().resolve(chain_id)
    assert exc.value.chain_id == chain_id


def test_placeholder_address_makes_binding_incomplete():
    resolver = ChainBindingResolver(
        {
            5: ChainBinding(
                chain_id=5,
                registry_address="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
                token_address=ZERO,
                insurance_gateway_address=ZERO,
            )
        }
    )
    with pytest.raises(IncompleteBinding) as exc:
        resolver.resolve(5)
    assert exc.value.missing == ["token_address", "insurance_gateway_address"]
    assert exc.value.code == "incomplete_binding"


def test_binding_table_loaded_from_yaml(tmp_path):
    path = tmp_path / "chain_bindings.yml"
    path.write_text(
        "chains:\n"
        "  42:\n"
        "    registry_address: '0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512'\n"
        "    token_address: '0x5FbDB2315678afecb367f032d93F642f64180aa3'\n"
        f"    insurance_gateway_address: '{ZERO}'\n",
        encoding="utf-8",
    )
    resolver = ChainBindingResolver.from_table(load_chain_binding_table(path))

    assert resolver.supported_chain_ids == [42]
    with pytest.raises(IncompleteBinding):
        resolver.resolve(42)
    with pytest.raises(UnsupportedNetwork):
        resolver.resolve(31337)


def test_missing_table_falls_back_to_defaults(tmp_path):
    table = load_chain_binding_table(tmp_path / "absent.yml")
    assert table is None
    assert ChainBindingResolver.from_table(table).supported_chain_ids == [31337, 11155111]
