"""Pydantic models for provisioning config files with strict validation.

A config file holds three ordered sections (contracts, transactions,
verifications) plus an optional [chain] table. Models are frozen: specs
never change after parse, only the run registry grows.
"""

import copy
import json
import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from eth_utils import is_hex_address, to_checksum_address
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
    model_validator,
)

from chainseed.errors import ConfigError, EncodingError
from chainseed.kernel.abi import (
    canonical_type,
    check_signature_args,
    check_storage_value,
    coerce_literal,
    parse_hex_bytes,
    storage_slot,
)
from chainseed.kernel.registry import is_reference, reference_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("Contracts.toml")
DEFAULT_PORT = 8545
# First account of a stock anvil node
DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEFAULT_GAS = 0x500000

_PATH_FIELDS = ("contract_json_path", "deployed_bytecode_path")


def _check_target(v: str) -> str:
    if is_reference(v):
        return v
    if not v.startswith("0x") or not is_hex_address(v):
        raise EncodingError(f"Target '{v}' must be a 0x-prefixed address or a #name reference")
    return to_checksum_address(v)


class ArgValue(BaseModel):
    """A typed argument: {type, value}, value is a literal or '#name'."""
    type: str
    value: Union[StrictBool, StrictInt, StrictFloat, StrictStr]

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Reject tags outside the closed set before any encoding attempt."""
        canonical_type(v)
        return v

    @model_validator(mode="after")
    def validate_value(self) -> "ArgValue":
        if is_reference(self.value):
            if canonical_type(self.type) != "address":
                raise EncodingError(
                    f"Reference '{self.value}' is only allowed for address arguments, not '{self.type}'"
                )
            return self
        coerce_literal(self.type, self.value)
        return self

    @property
    def reference(self) -> Optional[str]:
        """Referenced contract name, or None for literals."""
        return reference_name(self.value) if is_reference(self.value) else None


class DeploymentMode(str, Enum):
    ARTIFACT = "artifact"  # contract_json_path
    BYTECODE = "bytecode"  # address + literal bytecode
    DEPLOYED_BYTECODE = "deployed_bytecode"  # address + deployed_bytecode_path


StorageValue = Union[StrictInt, StrictStr]


class ContractSpec(BaseModel):
    """A contract entry.

    Exactly one deployment source:
    - contract_json_path (+ constructor_args): created by transaction, or
      injected from the artifact's runtime bytecode when address is given
    - address + bytecode: literal runtime bytecode injected at address
    - address + deployed_bytecode_path: runtime bytecode file injected at address
    """
    name: str
    address: Optional[str] = None
    contract_json_path: Optional[Path] = None
    constructor_args: Tuple[ArgValue, ...] = ()
    bytecode: Optional[str] = None
    deployed_bytecode_path: Optional[Path] = None
    storage: Dict[str, StorageValue] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or v.startswith("#") or v != v.strip():
            raise ValueError(f"Invalid contract name '{v}' (non-empty, no leading '#', no surrounding spaces)")
        return v

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith("0x") or not is_hex_address(v):
            raise EncodingError(f"Invalid address '{v}'")
        return to_checksum_address(v)

    @field_validator("bytecode")
    @classmethod
    def validate_bytecode(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not parse_hex_bytes(v if v.startswith("0x") else "0x" + v):
            raise EncodingError("Bytecode is empty")
        return v

    @field_validator("storage")
    @classmethod
    def validate_storage(cls, v: Dict[str, StorageValue]) -> Dict[str, StorageValue]:
        """Keys must fit in 32 bytes and be unique once normalized."""
        seen: Dict[bytes, str] = {}
        for key, value in v.items():
            slot = storage_slot(key, field=f"[{key}]")
            if slot in seen:
                raise EncodingError(f"Storage keys '{seen[slot]}' and '{key}' name the same slot")
            seen[slot] = key
            check_storage_value(value, field=f"[{key}]")
        return v

    @model_validator(mode="after")
    def validate_mode(self) -> "ContractSpec":
        sources = [
            f for f in ("contract_json_path", "bytecode", "deployed_bytecode_path")
            if getattr(self, f) is not None
        ]
        if len(sources) != 1:
            found = ", ".join(sources) if sources else "none"
            raise ConfigError(
                "Contract must have exactly one of contract_json_path, bytecode, "
                f"deployed_bytecode_path (found: {found})"
            )
        if self.contract_json_path is None and self.address is None:
            raise ConfigError(f"'{sources[0]}' requires an explicit address")
        if self.constructor_args and self.contract_json_path is None:
            raise ConfigError("constructor_args are only valid with contract_json_path")
        if self.constructor_args and self.address is not None:
            raise ConfigError(
                "constructor_args cannot be combined with a fixed address "
                "(fixed-address contracts are injected, no constructor runs)"
            )
        if self.storage and self.address is None:
            raise ConfigError("storage requires an explicit address")
        return self

    @property
    def mode(self) -> DeploymentMode:
        if self.contract_json_path is not None:
            return DeploymentMode.ARTIFACT
        if self.bytecode is not None:
            return DeploymentMode.BYTECODE
        return DeploymentMode.DEPLOYED_BYTECODE

    @property
    def is_fixed_address(self) -> bool:
        return self.address is not None


class TransactionSpec(BaseModel):
    """A post-deployment call: signature + args, or raw data."""
    name: str
    target: str
    function_signature: Optional[str] = None
    args: Tuple[ArgValue, ...] = ()
    data: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        return _check_target(v)

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_hex_bytes(v)
        return v

    @model_validator(mode="after")
    def validate_payload(self) -> "TransactionSpec":
        if (self.function_signature is None) == (self.data is None):
            raise ConfigError("Transaction must have exactly one of function_signature or data")
        if self.data is not None and self.args:
            raise ConfigError("args are only valid with function_signature")
        if self.function_signature is not None:
            check_signature_args(self.function_signature, [a.type for a in self.args])
        return self


class VerificationSpec(BaseModel):
    """A read-only call checked after provisioning. Failures are warnings."""
    name: str
    target: str
    function_signature: str
    args: Tuple[ArgValue, ...] = ()
    returns: Optional[ArgValue] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        return _check_target(v)

    @model_validator(mode="after")
    def validate_signature(self) -> "VerificationSpec":
        check_signature_args(self.function_signature, [a.type for a in self.args])
        if self.returns is not None and self.returns.reference is not None:
            raise ConfigError("returns must be a literal, not a reference")
        return self


class ChainSettings(BaseModel):
    """Connection and submission settings ([chain] table)."""
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    rpc_url: Optional[str] = None
    deployer: str = DEFAULT_DEPLOYER
    gas: int = Field(DEFAULT_GAS, gt=0)
    receipt_timeout: float = Field(120.0, gt=0)
    poll_interval: float = Field(0.1, gt=0)
    rerun_transactions: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("deployer")
    @classmethod
    def validate_deployer(cls, v: str) -> str:
        if not is_hex_address(v):
            raise EncodingError(f"Invalid deployer address '{v}'")
        return to_checksum_address(v)

    @property
    def endpoint(self) -> str:
        return self.rpc_url or f"http://localhost:{self.port}"


class ChainConfig(BaseModel):
    """A whole provisioning config."""
    chain: ChainSettings = Field(default_factory=ChainSettings)
    contracts: Tuple[ContractSpec, ...] = ()
    transactions: Tuple[TransactionSpec, ...] = ()
    verifications: Tuple[VerificationSpec, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def validate_unique_names(self) -> "ChainConfig":
        seen = set()
        for contract in self.contracts:
            if contract.name in seen:
                raise ConfigError(f"Duplicate contract name '{contract.name}'")
            seen.add(contract.name)
        return self

    def get_contract(self, name: str) -> Optional[ContractSpec]:
        for contract in self.contracts:
            if contract.name == name:
                return contract
        return None

    def get_contract_names(self) -> List[str]:
        return [c.name for c in self.contracts]


def iter_references(config: ChainConfig) -> Iterator[Tuple[str, int, str, str, str]]:
    """Yield (section, index, entry_name, field_path, referenced_name) in processing order.

    Contracts come first in file order, then transactions, then
    verifications, matching the order the engine resolves them.
    """
    for index, contract in enumerate(config.contracts):
        for i, arg in enumerate(contract.constructor_args):
            if arg.reference:
                yield "contracts", index, contract.name, f"constructor_args[{i}].value", arg.reference
        for key, value in contract.storage.items():
            if is_reference(value):
                yield "contracts", index, contract.name, f"storage[{key}]", reference_name(value)
    for section, specs in (("transactions", config.transactions), ("verifications", config.verifications)):
        for index, spec in enumerate(specs):
            if is_reference(spec.target):
                yield section, index, spec.name, "target", reference_name(spec.target)
            for i, arg in enumerate(spec.args):
                if arg.reference:
                    yield section, index, spec.name, f"args[{i}].value", arg.reference


def _format_loc(loc: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif part in ("str", "int", "bool", "float") and path:
            # pydantic tags union branches with the member type name
            continue
        else:
            path += f".{part}" if path else str(part)
    return path


def _entry_name(data: Any, loc: Sequence[Union[str, int]]) -> Optional[str]:
    if len(loc) < 2 or not isinstance(loc[1], int):
        return None
    section = data.get(loc[0]) if isinstance(data, dict) else getattr(data, str(loc[0]), None)
    try:
        entry = section[loc[1]]
    except (TypeError, IndexError, KeyError):
        return None
    name = entry.get("name") if isinstance(entry, dict) else getattr(entry, "name", None)
    return name if isinstance(name, str) else None


def _convert_validation_error(exc: ValidationError, data: Any) -> ConfigError:
    """Turn a pydantic ValidationError into a ConfigError/EncodingError naming the field."""
    errors = exc.errors()
    first = errors[0]
    loc = first.get("loc", ())
    field = _format_loc(loc)
    entry = _entry_name(data, loc)
    cause = (first.get("ctx") or {}).get("error")

    if isinstance(cause, ConfigError):
        error_cls = type(cause)
        message = cause.message
        if cause.field:
            sep = "" if cause.field.startswith("[") else "."
            field = f"{field}{sep}{cause.field}" if field else cause.field
    else:
        error_cls = ConfigError
        message = first.get("msg", str(exc))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]

    if len(errors) > 1:
        message = f"{message} (+{len(errors) - 1} more error(s))"
    return error_cls(message, entry=entry, field=field or None)


def parse_config(data: Dict[str, Any]) -> ChainConfig:
    """Validate a raw config mapping.

    Raises:
        ConfigError: Structural problems (modes, unknown fields, duplicates)
        EncodingError: Unsupported tags, malformed literals, bad storage keys
    """
    try:
        return ChainConfig.model_validate(data)
    except ValidationError as e:
        raise _convert_validation_error(e, data) from None


def _read_raw(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        if suffix == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ConfigError(f"Config {path} must be a JSON object")
            return data
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}")
    raise ConfigError(f"Unsupported config format '{suffix}' for {path} (expected .toml or .json)")


def _resolve_paths(data: Dict[str, Any], base_dir: Path) -> Dict[str, Any]:
    """Make artifact paths relative to the config file's directory."""
    data = copy.deepcopy(data)
    contracts = data.get("contracts")
    if isinstance(contracts, list):
        for entry in contracts:
            if not isinstance(entry, dict):
                continue
            for key in _PATH_FIELDS:
                if isinstance(entry.get(key), str):
                    entry[key] = str(base_dir / entry[key])
    return data


def load_config(path: Union[str, Path]) -> ChainConfig:
    """Load and validate a single TOML or JSON config file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    raw = _resolve_paths(_read_raw(config_path), config_path.resolve().parent)
    config = parse_config(raw)
    logger.info(
        "Loaded config from %s (%d contracts, %d transactions, %d verifications)",
        config_path,
        len(config.contracts),
        len(config.transactions),
        len(config.verifications),
    )
    return config


def merge_configs(configs: Sequence[ChainConfig]) -> ChainConfig:
    """Concatenate configs in order. A later [chain] table overrides an earlier one."""
    if not configs:
        raise ConfigError("No config to merge")
    chain = configs[0].chain
    for config in configs[1:]:
        if "chain" in config.model_fields_set:
            chain = config.chain
    data = {
        "chain": chain,
        "contracts": [c for config in configs for c in config.contracts],
        "transactions": [t for config in configs for t in config.transactions],
        "verifications": [v for config in configs for v in config.verifications],
    }
    try:
        return ChainConfig.model_validate(data)
    except ValidationError as e:
        raise _convert_validation_error(e, data) from None


def load_configs(paths: Sequence[Union[str, Path]]) -> ChainConfig:
    """Load several config files and merge them in the given order."""
    return merge_configs([load_config(p) for p in paths])
