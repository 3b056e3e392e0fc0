"""Pytest configuration for tests.

No sys.path hacks - tests should import from installed chainseed package.
Chain access is replaced by FakeChain, an in-memory stand-in for
ChainClient; tests marked `live` talk to a real node and are gated.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
from eth_utils import keccak, to_checksum_address

from chainseed.errors import ChainError, RpcError

# Minimal runtime code: PUSH1 0x2a PUSH1 0x00 MSTORE PUSH1 0x20 PUSH1 0x00 RETURN (returns 42)
RUNTIME_HEX = "0x602a60005260206000f3"
# Init code that copies the runtime above into memory and returns it
CREATION_HEX = "0x600a600c600039600a6000f3" + RUNTIME_HEX[2:]


def pytest_addoption(parser):
    """Add gated live-chain test option."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests against a real anvil node on localhost:8545 (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip live-marked tests unless --run-live is set."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="live tests gated; pass --run-live")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeChain:
    """In-memory chain implementing the ChainClient surface.

    Every call is appended to `calls` as (method, args) so tests can assert
    exactly which RPCs a run issued.
    """

    signs_locally = False
    account = None
    endpoint = "http://fake-chain"

    def __init__(self) -> None:
        self.code: Dict[str, bytes] = {}
        self.storage: Dict[Tuple[str, bytes], bytes] = {}
        self.nonces: Dict[str, int] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, tuple]] = []
        self.responses: Dict[Tuple[str, bytes], bytes] = {}
        self.reverting: set = set()  # checksum targets whose calls revert
        self.failures: Dict[str, Exception] = {}  # method name -> exception to raise
        self.impersonating: set = set()
        self.block = 0

    def _log(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if method in self.failures:
            raise self.failures[method]

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]

    # readiness
    def block_number(self) -> int:
        self._log("block_number")
        return self.block

    def wait_until_ready(self, attempts: int = 16, interval: float = 0.25) -> int:
        self._log("wait_until_ready", attempts)
        return self.block

    # state reads
    def get_code(self, address: str) -> bytes:
        self._log("get_code", address)
        return self.code.get(to_checksum_address(address), b"")

    def get_storage_at(self, address: str, slot: bytes) -> bytes:
        self._log("get_storage_at", address, slot)
        return self.storage.get((to_checksum_address(address), slot), b"\x00" * 32)

    def call(self, target: str, data: bytes) -> bytes:
        self._log("call", target, data)
        target = to_checksum_address(target)
        if target in self.reverting:
            raise ChainError("eth_call rejected: execution reverted")
        if target not in self.code:
            return b""
        return self.responses.get((target, data[:4]), b"")

    def get_transaction_count(self, address: str) -> int:
        self._log("get_transaction_count", address)
        return self.nonces.get(to_checksum_address(address), 0)

    # privileged injection
    def set_code(self, address: str, code: bytes) -> None:
        self._log("set_code", address, code)
        self.code[to_checksum_address(address)] = code

    def set_storage_at(self, address: str, slot: bytes, value: bytes) -> None:
        self._log("set_storage_at", address, slot, value)
        self.storage[(to_checksum_address(address), slot)] = value

    def unlock(self, address: str) -> None:
        self._log("unlock", address)
        self.impersonating.add(to_checksum_address(address))

    def lock(self, address: str) -> None:
        self._log("lock", address)
        self.impersonating.discard(to_checksum_address(address))

    # transactions
    def send_transaction(self, sender: str, to: Optional[str], data: bytes, *, nonce: int, gas: int) -> str:
        self._log("send_transaction", sender, to, data)
        sender = to_checksum_address(sender)
        expected = self.nonces.get(sender, 0)
        if nonce != expected:
            raise ChainError(f"eth_sendTransaction rejected: nonce {nonce} does not match {expected}")
        self.nonces[sender] = expected + 1
        self.block += 1
        tx_hash = "0x" + keccak(text=f"{sender}:{nonce}").hex()
        receipt: Dict[str, Any] = {
            "transactionHash": tx_hash,
            "blockNumber": self.block,
            "status": 1,
            "contractAddress": None,
        }
        if to is None:
            address = to_checksum_address(keccak(text=f"create:{sender}:{nonce}")[-20:])
            self.code[address] = data
            receipt["contractAddress"] = address
        elif to_checksum_address(to) in self.reverting:
            receipt["status"] = 0
        self.sent.append({"from": sender, "to": to, "data": data, "nonce": nonce, "gas": gas})
        self.receipts[tx_hash] = receipt
        return tx_hash

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        self._log("wait_for_receipt", tx_hash)
        if tx_hash not in self.receipts:
            raise ChainError(f"Transaction {tx_hash} not mined within 120s (dropped or stuck)")
        return dict(self.receipts[tx_hash])


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def runtime_hex():
    return RUNTIME_HEX


@pytest.fixture
def creation_hex():
    return CREATION_HEX


@pytest.fixture
def foundry_artifact(tmp_path):
    """Write a Foundry-style artifact and return its path."""
    path = tmp_path / "out" / "Counter.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({
        "abi": [],
        "bytecode": {"object": CREATION_HEX},
        "deployedBytecode": {"object": RUNTIME_HEX},
    }), encoding="utf-8")
    return path


@pytest.fixture
def transport_error():
    return RpcError("eth_getCode failed: Connection refused")
