"""Bytecode extraction from contract build artifacts.

Supported layouts:
- Foundry/Hardhat: {"bytecode": {"object": "0x..."}, "deployedBytecode": {"object": "0x..."}}
- Brownie / flat Hardhat: {"bytecode": "0x...", "deployedBytecode": "0x..."}
- A plain text file holding the hex itself
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from chainseed.errors import ConfigError, EncodingError
from chainseed.kernel.abi import parse_hex_bytes

logger = logging.getLogger(__name__)


def _read(path: Path, entry: Optional[str]) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read bytecode file {path}: {e}", entry=entry)


def _from_json(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, dict):
        obj = value.get("object")
        return obj if isinstance(obj, str) else None
    if isinstance(value, str):
        return value
    return None


def _extract(path: Path, key: str, entry: Optional[str]) -> str:
    content = _read(path, entry)
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict):
        bytecode = _from_json(data, key)
        if bytecode is None:
            raise ConfigError(f"No '{key}' found in artifact {path}", entry=entry)
    else:
        bytecode = content.strip()

    if not bytecode:
        raise ConfigError(f"Could not find {key} in {path}", entry=entry)
    return bytecode


def to_bytes(bytecode: str, *, entry: Optional[str] = None, field: Optional[str] = None) -> bytes:
    """Decode hex bytecode, accepting it with or without the 0x prefix."""
    text = bytecode.strip()
    if not text.startswith("0x"):
        text = "0x" + text
    if "__$" in text:
        raise EncodingError("Bytecode has unlinked library placeholders", entry=entry, field=field)
    try:
        return parse_hex_bytes(text, field=field)
    except EncodingError as e:
        raise EncodingError(e.message, entry=entry, field=field) from e


def load_creation_bytecode(path: Path, *, entry: Optional[str] = None) -> bytes:
    """Load creation (init) bytecode for a contract-creation transaction."""
    code = to_bytes(_extract(path, "bytecode", entry), entry=entry, field="contract_json_path")
    if not code:
        raise ConfigError(f"Creation bytecode in {path} is empty", entry=entry)
    logger.debug("Loaded %d bytes of creation bytecode from %s", len(code), path)
    return code


def load_deployed_bytecode(path: Path, *, entry: Optional[str] = None) -> bytes:
    """Load runtime bytecode for direct code injection."""
    code = to_bytes(_extract(path, "deployedBytecode", entry), entry=entry, field="deployed_bytecode_path")
    if not code:
        raise ConfigError(f"Runtime bytecode in {path} is empty", entry=entry)
    logger.debug("Loaded %d bytes of runtime bytecode from %s", len(code), path)
    return code
