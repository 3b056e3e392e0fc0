"""chainseed: declarative provisioning for local Ethereum dev chains."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("chainseed")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from chainseed.api import provision, validate
from chainseed.codes import ContractState, IssueCode
from chainseed.errors import (
    ChainError,
    ConfigError,
    EncodingError,
    ProvisionError,
    RpcError,
    UnresolvedReferenceError,
)
from chainseed.results import ProvisionResult, ValidationResult

__all__ = [
    "__version__",
    "provision",
    "validate",
    "ProvisionResult",
    "ValidationResult",
    "ContractState",
    "IssueCode",
    "ProvisionError",
    "ConfigError",
    "EncodingError",
    "UnresolvedReferenceError",
    "RpcError",
    "ChainError",
]
