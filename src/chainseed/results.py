"""Public result models for provisioning and config checks."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from chainseed.codes import ContractState


class ContractOutcome(BaseModel):
    """Where one contract ended up, and how it got there."""
    name: str
    mode: str  # "artifact" | "bytecode" | "deployed_bytecode"
    state: ContractState = ContractState.PENDING
    address: Optional[str] = None
    tx_hash: Optional[str] = None  # creation transaction, deploying mode only
    transitions: List[ContractState] = Field(default_factory=lambda: [ContractState.PENDING])

    def transition(self, state: ContractState) -> None:
        self.state = state
        self.transitions.append(state)


class TransactionOutcome(BaseModel):
    """Result of one configured transaction."""
    name: str
    target: Optional[str] = None
    status: str = "pending"  # "pending" | "confirmed" | "skipped" | "failed"
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None


class VerificationIssue(BaseModel):
    """A failed post-provisioning check (never blocking)."""
    code: str
    name: str
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class ProvisionResult(BaseModel):
    """Stable result model for one provisioning run."""
    ok: bool
    endpoint: str
    contracts: List[ContractOutcome] = Field(default_factory=list)
    transactions: List[TransactionOutcome] = Field(default_factory=list)
    warnings: List[VerificationIssue] = Field(default_factory=list)
    verified: int = 0  # number of verifications that passed
    registry: Dict[str, str] = Field(default_factory=dict)  # name -> address, recording order
    error: Optional[str] = None
    error_type: Optional[str] = None  # exception class name of the aborting failure
    failed_entry: Optional[str] = None


class ValidationIssue(BaseModel):
    """A single config issue (error or warning)."""
    code: str
    message: str
    entry: Optional[str] = None
    field: Optional[str] = None
    reference: Optional[str] = None  # For reference issues: the '#name' without '#'


class ValidationResult(BaseModel):
    """Result of a static config check (no RPC)."""
    ok: bool  # True if no errors (warnings don't block)
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]
