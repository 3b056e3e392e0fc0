"""Code constants for chainseed results.

These constants prevent stringly-typed states and issue codes in
ProvisionResult, ValidationResult and verification warnings.
"""

from enum import Enum


class ContractState(str, Enum):
    """Per-contract deployment states."""

    PENDING = "pending"
    PROBING = "probing"
    SKIPPED = "skipped"
    DEPLOYING = "deploying"
    INJECTING = "injecting"

    # Terminal
    DEPLOYED = "deployed"
    INJECTED = "injected"
    FAILED = "failed"


class IssueCode(str, Enum):
    """Issue codes for config checks and verification."""

    # Errors (blocking)
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_ENCODING = "INVALID_ENCODING"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
    FORWARD_REFERENCE = "FORWARD_REFERENCE"

    # Warnings (non-blocking)
    VERIFY_MISMATCH = "VERIFY_MISMATCH"
    VERIFY_CALL_FAILED = "VERIFY_CALL_FAILED"
    VERIFY_EMPTY_RESULT = "VERIFY_EMPTY_RESULT"
    VERIFY_UNRESOLVED = "VERIFY_UNRESOLVED"
