"""Transaction submission from the single deployer account.

The executor owns the deployer nonce for the whole run. It is read from the
chain once, at the first submission, and from then on only advanced locally
after the node accepts a transaction. Nothing else may submit from the
deployer while a run is in progress.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from chainseed.errors import ChainError, RpcError
from chainseed.kernel.abi import encode_function_call, parse_hex_bytes
from chainseed.kernel.config import TransactionSpec
from chainseed.kernel.registry import ResolvedRegistry, resolve
from chainseed.results import TransactionOutcome

logger = logging.getLogger(__name__)


class TransactionExecutor:
    """Signs, submits and confirms transactions in strict order."""

    def __init__(self, client, deployer: str, *, gas: int):
        self.client = client
        self.deployer = deployer
        self.gas = gas
        self._nonce: Optional[int] = None
        self._unlocked = False

    @property
    def nonce(self) -> Optional[int]:
        """Next nonce to use, or None before the first submission."""
        return self._nonce

    def _prepare(self) -> int:
        if not self._unlocked:
            self.client.unlock(self.deployer)
            self._unlocked = True
        if self._nonce is None:
            self._nonce = self.client.get_transaction_count(self.deployer)
            logger.debug("Deployer %s starts at nonce %d", self.deployer, self._nonce)
        return self._nonce

    def submit(self, to: Optional[str], data: bytes, *, label: str) -> Dict[str, Any]:
        """Submit one transaction and block until it is confirmed.

        Returns:
            The receipt as a dict

        Raises:
            ChainError: Reverted, dropped or timed-out transaction
            RpcError: Transport failure
        """
        nonce = self._prepare()
        try:
            tx_hash = self.client.send_transaction(self.deployer, to, data, nonce=nonce, gas=self.gas)
        except (ChainError, RpcError) as e:
            raise type(e)(e.message, entry=label) from e
        self._nonce = nonce + 1
        logger.info("Transaction '%s' sent: %s (nonce %d)", label, tx_hash, nonce)

        try:
            receipt = self.client.wait_for_receipt(tx_hash)
        except (ChainError, RpcError) as e:
            raise type(e)(e.message, entry=label) from e
        receipt.setdefault("transactionHash", tx_hash)
        if receipt.get("status") != 1:
            raise ChainError(f"Transaction {tx_hash} reverted (status {receipt.get('status')})", entry=label)
        return receipt

    def close(self) -> None:
        """Stop impersonating the deployer if this executor started it."""
        if self._unlocked:
            self._unlocked = False
            self.client.lock(self.deployer)

    def build_calldata(self, spec: TransactionSpec, registry: ResolvedRegistry) -> bytes:
        if spec.data is not None:
            return parse_hex_bytes(spec.data)
        return encode_function_call(spec.function_signature, spec.args, registry, entry=spec.name)

    def execute(self, spec: TransactionSpec, registry: ResolvedRegistry) -> TransactionOutcome:
        """Resolve, encode, submit and confirm one configured transaction.

        References are resolved before any RPC for the transaction.
        """
        target = resolve(spec.target, registry, entry=spec.name, field="target")
        data = self.build_calldata(spec, registry)
        outcome = TransactionOutcome(name=spec.name, target=target)

        logger.info("Executing transaction '%s' to %s", spec.name, target)
        receipt = self.submit(target, data, label=spec.name)
        outcome.status = "confirmed"
        outcome.tx_hash = hex_str(receipt.get("transactionHash"))
        outcome.block_number = receipt.get("blockNumber")
        return outcome

    def run(
        self,
        specs: Sequence[TransactionSpec],
        registry: ResolvedRegistry,
        outcomes: Optional[List[TransactionOutcome]] = None,
    ) -> List[TransactionOutcome]:
        """Execute transactions in order, stopping at the first failure.

        Outcomes are appended to `outcomes` as they complete, so a caller
        still sees progress when an exception aborts the run.
        """
        outcomes = [] if outcomes is None else outcomes
        for spec in specs:
            placeholder = TransactionOutcome(name=spec.name)
            outcomes.append(placeholder)
            try:
                outcomes[-1] = self.execute(spec, registry)
            except Exception:
                placeholder.status = "failed"
                raise
        return outcomes


def hex_str(value: Any) -> Optional[str]:
    """Render a transaction hash (bytes or str) as 0x-prefixed hex."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)
