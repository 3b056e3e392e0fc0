"""Deployment engine: walks contracts in file order and drives each one
through its state machine.

    pending -> probing -> skipped
    pending -> probing -> injecting -> injected
    pending -> deploying -> deployed
    (any) -> failed

Fixed-address contracts are probed first; existing code means the contract
is already provisioned and nothing else is sent or loaded for it. Otherwise
code is loaded and, with storage, written directly with the node's privileged anvil_* methods.
Contracts without an address are created by a regular transaction from the
deployer and become referenceable once their receipt names the address.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from chainseed.codes import ContractState
from chainseed.errors import ChainError, ProvisionError
from chainseed.executor import TransactionExecutor, hex_str
from chainseed.kernel.abi import encode_constructor_args, storage_slot, storage_word
from chainseed.kernel.artifacts import load_creation_bytecode, load_deployed_bytecode, to_bytes
from chainseed.kernel.config import ContractSpec, DeploymentMode
from chainseed.kernel.registry import ResolvedRegistry
from chainseed.prober import has_code
from chainseed.results import ContractOutcome

logger = logging.getLogger(__name__)


@dataclass
class InjectionPlan:
    """Storage writes for a fixed-address contract, resolved before the probe.

    Code is loaded separately, once the probe finds the address empty.
    """
    address: str
    storage: List[Tuple[str, bytes, bytes]]  # (config key, 32-byte slot, 32-byte value)


def runtime_code(spec: ContractSpec) -> bytes:
    """Runtime bytecode for a fixed-address contract."""
    if spec.mode is DeploymentMode.BYTECODE:
        return to_bytes(spec.bytecode, entry=spec.name, field="bytecode")
    if spec.mode is DeploymentMode.DEPLOYED_BYTECODE:
        return load_deployed_bytecode(spec.deployed_bytecode_path, entry=spec.name)
    return load_deployed_bytecode(spec.contract_json_path, entry=spec.name)


def plan_injection(spec: ContractSpec, registry: ResolvedRegistry) -> InjectionPlan:
    """Resolve every storage key and value before touching the chain."""
    storage = []
    for key, value in spec.storage.items():
        field = f"storage[{key}]"
        slot = storage_slot(key, field=field)
        word = storage_word(value, registry, entry=spec.name, field=field)
        storage.append((key, slot, word))
    return InjectionPlan(address=spec.address, storage=storage)


def creation_payload(spec: ContractSpec, registry: ResolvedRegistry) -> bytes:
    """Creation bytecode followed by the ABI-encoded constructor arguments."""
    code = load_creation_bytecode(spec.contract_json_path, entry=spec.name)
    return code + encode_constructor_args(spec.constructor_args, registry, entry=spec.name)


class DeploymentEngine:
    """Processes contract specs strictly in order, one RPC at a time."""

    def __init__(self, client, executor: TransactionExecutor):
        self.client = client
        self.executor = executor

    def process(self, spec: ContractSpec, registry: ResolvedRegistry, outcome: ContractOutcome) -> ContractOutcome:
        """Drive one contract to a terminal state, recording its address.

        Raises:
            ProvisionError: Any failure; outcome is left in the failed state
        """
        try:
            if spec.is_fixed_address:
                self._provision_fixed(spec, registry, outcome)
            else:
                self._deploy(spec, registry, outcome)
        except ProvisionError as e:
            outcome.transition(ContractState.FAILED)
            if e.entry is None:
                e.entry = spec.name
            logger.error("Contract '%s' failed: %s", spec.name, e.message)
            raise
        return outcome

    def _provision_fixed(self, spec: ContractSpec, registry: ResolvedRegistry, outcome: ContractOutcome) -> None:
        plan = plan_injection(spec, registry)

        outcome.transition(ContractState.PROBING)
        if has_code(self.client, plan.address):
            outcome.address = registry.record(spec.name, plan.address)
            outcome.transition(ContractState.SKIPPED)
            logger.info("Contract '%s' already has code at %s, skipping", spec.name, outcome.address)
            return

        code = runtime_code(spec)
        outcome.transition(ContractState.INJECTING)
        self.client.set_code(plan.address, code)
        logger.info("Set %d bytes of code for contract '%s' at %s", len(code), spec.name, plan.address)
        for key, slot, word in plan.storage:
            self.client.set_storage_at(plan.address, slot, word)
            logger.debug("Set storage slot %s for %s to 0x%s", key, plan.address, word.hex())
        outcome.address = registry.record(spec.name, plan.address)
        outcome.transition(ContractState.INJECTED)

    def _deploy(self, spec: ContractSpec, registry: ResolvedRegistry, outcome: ContractOutcome) -> None:
        payload = creation_payload(spec, registry)

        outcome.transition(ContractState.DEPLOYING)
        logger.info("Deploying contract '%s' with %d bytes of init code", spec.name, len(payload))
        receipt = self.executor.submit(None, payload, label=spec.name)
        outcome.tx_hash = hex_str(receipt.get("transactionHash"))

        address = receipt.get("contractAddress")
        if not address:
            raise ChainError(f"Receipt for {outcome.tx_hash} has no contractAddress", entry=spec.name)
        outcome.address = registry.record(spec.name, address)
        outcome.transition(ContractState.DEPLOYED)
        logger.info("Contract '%s' deployed at %s", spec.name, outcome.address)

    def run(
        self,
        specs: Sequence[ContractSpec],
        registry: ResolvedRegistry,
        outcomes: Optional[List[ContractOutcome]] = None,
    ) -> List[ContractOutcome]:
        """Process all contracts in order; the first failure aborts the rest."""
        outcomes = [] if outcomes is None else outcomes
        for spec in specs:
            outcome = ContractOutcome(name=spec.name, mode=spec.mode.value)
            outcomes.append(outcome)
            self.process(spec, registry, outcome)
        return outcomes

