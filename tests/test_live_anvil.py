"""End-to-end runs against a real anvil node (gated; pass --run-live)."""

import pytest

from chainseed import ContractState, provision
from chainseed._internal.rpc import ChainClient

pytestmark = pytest.mark.live

FIXED = "0x00000000000000000000000000000000000c0de1"


@pytest.fixture
def client():
    client = ChainClient.connect("http://localhost:8545")
    client.wait_until_ready(attempts=4)
    return client


def test_inject_then_skip(client, foundry_artifact, runtime_hex):
    config = {
        "contracts": [
            {"name": "Answer", "address": FIXED, "bytecode": runtime_hex, "storage": {"0x1": 42}},
            {"name": "Counter", "contract_json_path": str(foundry_artifact)},
        ],
        "verifications": [{
            "name": "answer",
            "target": "#Counter",
            "function_signature": "anything()",
            "returns": {"type": "uint256", "value": 42},
        }],
    }
    first = provision(config, client=client)
    assert first.ok, first.error
    assert first.verified == 1
    assert client.get_storage_at(FIXED, (1).to_bytes(32, "big")) == (42).to_bytes(32, "big")

    second = provision(config, client=client)
    assert second.ok
    assert second.contracts[0].state is ContractState.SKIPPED
    # deploying-mode contracts are redeployed to a fresh address
    assert second.contracts[1].address != first.contracts[1].address
