"""Tests for config loading and validation."""

import json

import pytest
from eth_utils import to_checksum_address

from chainseed.errors import ConfigError, EncodingError
from chainseed.kernel.config import (
    DEFAULT_DEPLOYER,
    ChainSettings,
    DeploymentMode,
    iter_references,
    load_config,
    load_configs,
    merge_configs,
    parse_config,
)

ADDR = "0x00000000000000000000000000000000000000aa"

TOML = """
[chain]
port = 9545

[[contracts]]
name = "Token"
contract_json_path = "out/Counter.json"
constructor_args = [
    { type = "string", value = "Test" },
    { type = "uint256", value = "1e21" },
]

[[contracts]]
name = "Registry"
address = "0x00000000000000000000000000000000000000aa"
bytecode = "0x602a60005260206000f3"
storage = { "0x0" = "#Token", "0x1" = 42 }

[[transactions]]
name = "approve"
target = "#Token"
function_signature = "approve(address,uint256)"
args = [
    { type = "address", value = "#Registry" },
    { type = "uint256", value = 1000 },
]

[[verifications]]
name = "supply"
target = "#Token"
function_signature = "totalSupply()"
returns = { type = "uint256", value = "1e21" }
"""


def write(tmp_path, text, name="Contracts.toml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_toml(tmp_path, foundry_artifact):
    config = load_config(write(tmp_path, TOML))
    assert config.chain.port == 9545
    assert config.chain.endpoint == "http://localhost:9545"
    assert config.get_contract_names() == ["Token", "Registry"]

    token = config.get_contract("Token")
    assert token.mode is DeploymentMode.ARTIFACT
    assert not token.is_fixed_address
    # relative artifact paths are anchored at the config file
    assert token.contract_json_path.resolve() == foundry_artifact.resolve()

    registry = config.get_contract("Registry")
    assert registry.mode is DeploymentMode.BYTECODE
    assert registry.address == to_checksum_address(ADDR)
    assert [t.name for t in config.transactions] == ["approve"]
    assert config.verifications[0].returns.value == "1e21"


def test_load_json(tmp_path):
    path = tmp_path / "contracts.json"
    path.write_text(json.dumps({
        "contracts": [{"name": "A", "address": ADDR, "bytecode": "0x00"}],
    }))
    config = load_config(path)
    assert config.contracts[0].mode is DeploymentMode.BYTECODE


def test_defaults():
    settings = ChainSettings()
    assert settings.endpoint == "http://localhost:8545"
    assert settings.deployer == DEFAULT_DEPLOYER
    assert settings.gas == 0x500000
    assert settings.rerun_transactions is False


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "Contracts.toml")


def test_unsupported_extension(tmp_path):
    with pytest.raises(ConfigError, match="Unsupported config format"):
        load_config(write(tmp_path, "contracts: []", name="contracts.yaml"))


def test_malformed_toml(tmp_path):
    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(write(tmp_path, "[[contracts]\nname = "))


def test_no_deployment_mode():
    with pytest.raises(ConfigError, match="exactly one of") as exc_info:
        parse_config({"contracts": [{"name": "Ghost"}]})
    assert exc_info.value.entry == "Ghost"
    assert "found: none" in exc_info.value.message


def test_two_deployment_modes():
    with pytest.raises(ConfigError, match="found: bytecode, deployed_bytecode_path"):
        parse_config({"contracts": [{
            "name": "Both", "address": ADDR, "bytecode": "0x00", "deployed_bytecode_path": "x.hex",
        }]})


def test_bytecode_requires_address():
    with pytest.raises(ConfigError, match="requires an explicit address"):
        parse_config({"contracts": [{"name": "A", "bytecode": "0x00"}]})


def test_constructor_args_with_fixed_address():
    with pytest.raises(ConfigError, match="cannot be combined with a fixed address"):
        parse_config({"contracts": [{
            "name": "A",
            "address": ADDR,
            "contract_json_path": "A.json",
            "constructor_args": [{"type": "uint256", "value": 1}],
        }]})


def test_storage_requires_address():
    with pytest.raises(ConfigError, match="storage requires an explicit address"):
        parse_config({"contracts": [{"name": "A", "contract_json_path": "A.json", "storage": {"0x0": 1}}]})


def test_unknown_field_is_rejected():
    with pytest.raises(ConfigError) as exc_info:
        parse_config({"contracts": [{"name": "A", "adress": ADDR, "bytecode": "0x00"}]})
    assert exc_info.value.field == "contracts[0].adress"
    assert exc_info.value.entry == "A"


def test_unsupported_type_tag_is_encoding_error():
    with pytest.raises(EncodingError, match="int256") as exc_info:
        parse_config({"contracts": [{
            "name": "A", "contract_json_path": "A.json",
            "constructor_args": [{"type": "int256", "value": 1}],
        }]})
    assert exc_info.value.field == "contracts[0].constructor_args[0].type"
    assert exc_info.value.entry == "A"


def test_reference_only_for_address():
    with pytest.raises(EncodingError, match="only allowed for address"):
        parse_config({"contracts": [{
            "name": "A", "contract_json_path": "A.json",
            "constructor_args": [{"type": "uint256", "value": "#B"}],
        }]})


def test_oversize_storage_key():
    key = "0x" + "ab" * 33
    with pytest.raises(EncodingError, match="exceeds 32") as exc_info:
        parse_config({"contracts": [{"name": "A", "address": ADDR, "bytecode": "0x00", "storage": {key: 1}}]})
    assert exc_info.value.field == f"contracts[0].storage[{key}]"


def test_storage_keys_naming_same_slot():
    with pytest.raises(EncodingError, match="same slot"):
        parse_config({"contracts": [{
            "name": "A", "address": ADDR, "bytecode": "0x00", "storage": {"0x1": 1, "1": 2},
        }]})


def test_duplicate_contract_names():
    entry = {"name": "A", "address": ADDR, "bytecode": "0x00"}
    with pytest.raises(ConfigError, match="Duplicate contract name 'A'"):
        parse_config({"contracts": [entry, entry]})


def test_transaction_needs_exactly_one_payload():
    with pytest.raises(ConfigError, match="exactly one of function_signature or data"):
        parse_config({"transactions": [{
            "name": "t", "target": ADDR, "function_signature": "poke()", "data": "0x00",
        }]})
    with pytest.raises(ConfigError, match="exactly one of function_signature or data"):
        parse_config({"transactions": [{"name": "t", "target": ADDR}]})


def test_transaction_with_raw_data():
    config = parse_config({"transactions": [{"name": "t", "target": ADDR, "data": "0xd09de08a"}]})
    assert config.transactions[0].data == "0xd09de08a"


def test_bad_target():
    with pytest.raises(EncodingError, match="#name reference"):
        parse_config({"transactions": [{"name": "t", "target": "Token", "data": "0x"}]})


def test_merge_configs_later_chain_wins(tmp_path):
    first = write(tmp_path, '[chain]\nport = 1111\n[[contracts]]\nname = "A"\naddress = "%s"\nbytecode = "0x00"\n' % ADDR, "a.toml")
    second = write(tmp_path, '[chain]\nport = 2222\n[[transactions]]\nname = "t"\ntarget = "#A"\ndata = "0x"\n', "b.toml")
    merged = load_configs([first, second])
    assert merged.chain.port == 2222
    assert merged.get_contract_names() == ["A"]
    assert [t.name for t in merged.transactions] == ["t"]


def test_merge_keeps_chain_when_later_file_has_none():
    first = parse_config({"chain": {"port": 1111}})
    second = parse_config({"contracts": [{"name": "A", "address": ADDR, "bytecode": "0x00"}]})
    assert merge_configs([first, second]).chain.port == 1111


def test_merge_rejects_duplicates_across_files():
    entry = {"contracts": [{"name": "A", "address": ADDR, "bytecode": "0x00"}]}
    with pytest.raises(ConfigError, match="Duplicate"):
        merge_configs([parse_config(entry), parse_config(entry)])


def test_iter_references(tmp_path, foundry_artifact):
    config = load_config(write(tmp_path, TOML))
    refs = list(iter_references(config))
    assert refs == [
        ("contracts", 1, "Registry", "storage[0x0]", "Token"),
        ("transactions", 0, "approve", "target", "Token"),
        ("transactions", 0, "approve", "args[0].value", "Registry"),
        ("verifications", 0, "supply", "target", "Token"),
    ]


def test_storage_subtable_syntax(tmp_path):
    text = """
[[contracts]]
name = "registry"
address = "0x000000000000000000000000000000000000aaaa"
bytecode = "0x6080"
[contracts.storage]
"0x0" = "#token"
"0x1" = 42
"""
    config = load_config(write(tmp_path, text))
    assert config.contracts[0].storage == {"0x0": "#token", "0x1": 42}
