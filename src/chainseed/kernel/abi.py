"""ABI encoding for the closed set of config argument types.

Supported tags: address, uint256 (alias uint), uint32, uint8, string,
bytes, bool. Everything else is rejected with an EncodingError rather than
coerced.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence, Tuple

from eth_abi import encode as abi_encode
from eth_utils import is_hex_address, keccak, to_checksum_address

from chainseed.errors import EncodingError
from chainseed.kernel.registry import ResolvedRegistry, is_reference, resolve

SUPPORTED_TYPES = ("address", "uint256", "uint", "uint32", "uint8", "string", "bytes", "bool")

_ALIASES = {"uint": "uint256"}
_UINT_BITS = {"uint256": 256, "uint32": 32, "uint8": 8}
_SIGNATURE_RE = re.compile(r"^([A-Za-z_$][A-Za-z0-9_$]*)\((.*)\)$")
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

WORD_SIZE = 32


def canonical_type(type_tag: str, *, field: Optional[str] = None) -> str:
    """Map a config type tag to its canonical ABI type name."""
    if type_tag not in SUPPORTED_TYPES:
        raise EncodingError(
            f"Unsupported type tag '{type_tag}' (expected one of: {', '.join(SUPPORTED_TYPES)})",
            field=field,
        )
    return _ALIASES.get(type_tag, type_tag)


def parse_uint(value: Any, bits: int = 256, *, field: Optional[str] = None) -> int:
    """Parse an unsigned integer literal.

    Accepts ints, decimal strings, 0x-prefixed hex strings and integral
    scientific notation such as "1e21".
    """
    if isinstance(value, bool):
        raise EncodingError(f"Expected unsigned integer, got boolean {value!r}", field=field)
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        number = _parse_scientific(repr(value), field=field)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                number = int(text, 16)
            else:
                number = int(text, 10)
        except ValueError:
            number = _parse_scientific(text, field=field)
    else:
        raise EncodingError(f"Expected unsigned integer, got {type(value).__name__}", field=field)

    if number < 0 or number >= 2 ** bits:
        raise EncodingError(f"Value {number} out of range for uint{bits}", field=field)
    return number


def _parse_scientific(text: str, *, field: Optional[str]) -> int:
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise EncodingError(f"Malformed integer literal '{text}'", field=field)
    if not number.is_finite() or number != number.to_integral_value():
        raise EncodingError(f"Integer literal '{text}' is not a whole number", field=field)
    return int(number)


def parse_bool(value: Any, *, field: Optional[str] = None) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value in ("true", "false"):
        return value == "true"
    raise EncodingError(f"Malformed bool literal {value!r} (expected true or false)", field=field)


def parse_hex_bytes(value: Any, *, field: Optional[str] = None) -> bytes:
    if not isinstance(value, str) or not _HEX_RE.match(value):
        raise EncodingError(f"Malformed hex literal {value!r} (expected 0x-prefixed hex)", field=field)
    digits = value[2:]
    if len(digits) % 2:
        raise EncodingError(f"Hex literal '{value}' has an odd number of digits", field=field)
    return bytes.fromhex(digits)


def coerce_literal(type_tag: str, value: Any, *, field: Optional[str] = None) -> Any:
    """Convert a config literal into the Python value eth-abi expects for its type."""
    abi_type = canonical_type(type_tag, field=field)
    if abi_type == "address":
        if not isinstance(value, str) or not value.startswith("0x") or not is_hex_address(value):
            raise EncodingError(f"Invalid address {value!r}", field=field)
        return to_checksum_address(value)
    if abi_type in _UINT_BITS:
        return parse_uint(value, _UINT_BITS[abi_type], field=field)
    if abi_type == "bool":
        return parse_bool(value, field=field)
    if abi_type == "bytes":
        return parse_hex_bytes(value, field=field)
    if not isinstance(value, str):
        raise EncodingError(f"Expected string literal, got {type(value).__name__}", field=field)
    return value


def encode(type_tag: str, value: Any) -> bytes:
    """ABI-encode a single literal value."""
    abi_type = canonical_type(type_tag)
    return abi_encode([abi_type], [coerce_literal(type_tag, value)])


def resolve_arg(
    arg: Any,
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
    field: Optional[str] = None,
) -> Any:
    """Resolve an ArgValue to a Python value, substituting '#name' references."""
    if arg.type == "address" and is_reference(arg.value):
        return resolve(arg.value, registry, entry=entry, field=field)
    try:
        return coerce_literal(arg.type, arg.value, field=field)
    except EncodingError as e:
        raise EncodingError(e.message, entry=entry, field=field) from e


def encode_args(
    args: Sequence[Any],
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
    field: str = "args",
) -> bytes:
    """ABI-encode an ordered argument tuple (head/tail layout for dynamic types)."""
    if not args:
        return b""
    types: List[str] = []
    values: List[Any] = []
    for i, arg in enumerate(args):
        arg_field = f"{field}[{i}]"
        types.append(canonical_type(arg.type, field=f"{arg_field}.type"))
        values.append(resolve_arg(arg, registry, entry=entry, field=f"{arg_field}.value"))
    return abi_encode(types, values)


def encode_constructor_args(
    args: Sequence[Any],
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
) -> bytes:
    return encode_args(args, registry, entry=entry, field="constructor_args")


def parse_signature(signature: str, *, field: Optional[str] = None) -> Tuple[str, Tuple[str, ...]]:
    """Split 'name(type,type)' into its name and canonical parameter types."""
    match = _SIGNATURE_RE.match(signature.strip())
    if not match:
        raise EncodingError(f"Malformed function signature '{signature}'", field=field)
    name, params = match.group(1), match.group(2).strip()
    if not params:
        return name, ()
    types = tuple(canonical_type(p.strip(), field=field) for p in params.split(","))
    return name, types


def canonical_signature(signature: str, *, field: Optional[str] = None) -> str:
    """Rebuild 'name(t1,t2)' with canonical types and no whitespace."""
    name, types = parse_signature(signature, field=field)
    return f"{name}({','.join(types)})"


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak-256 over the canonical signature.

    'transfer(address, uint)' hashes as 'transfer(address,uint256)'.
    """
    return keccak(text=canonical_signature(signature))[:4]


def encode_function_call(
    signature: str,
    args: Sequence[Any],
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
) -> bytes:
    """Build calldata: selector followed by the encoded argument tuple."""
    return function_selector(signature) + encode_args(args, registry, entry=entry)


def check_signature_args(signature: str, arg_types: Sequence[str], *, field: Optional[str] = None) -> None:
    """Ensure the signature's parameter list matches the declared argument tags."""
    _, params = parse_signature(signature, field=field)
    declared = tuple(_ALIASES.get(t, t) for t in arg_types)
    if params != declared:
        raise EncodingError(
            f"Signature '{signature}' expects ({','.join(params)}) but args declare ({','.join(declared)})",
            field=field,
        )


def storage_slot(key: Any, *, field: Optional[str] = None) -> bytes:
    """Normalize a storage key to exactly 32 bytes (hex or decimal)."""
    if isinstance(key, int) and not isinstance(key, bool):
        return _int_word(key, field=field)
    if isinstance(key, str):
        if _HEX_RE.match(key) and len(key) > 2:
            return _hex_word(key, field=field)
        if key.isdigit():
            return _int_word(int(key), field=field)
    raise EncodingError(f"Malformed storage key {key!r}", field=field)


def storage_word(
    value: Any,
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
    field: Optional[str] = None,
) -> bytes:
    """Normalize a storage value to a 32-byte word.

    Numbers are big-endian, references resolve to an address and hex
    literals are used as given; all are left-padded with zeros.
    """
    if is_reference(value):
        address = resolve(value, registry, entry=entry, field=field)
        return bytes.fromhex(address[2:]).rjust(WORD_SIZE, b"\x00")
    try:
        return _literal_word(value, field=field)
    except EncodingError as e:
        raise EncodingError(e.message, entry=entry, field=field) from e


def check_storage_value(value: Any, *, field: Optional[str] = None) -> None:
    """Validate a storage value literal without resolving references."""
    if is_reference(value):
        return
    _literal_word(value, field=field)


def _literal_word(value: Any, *, field: Optional[str]) -> bytes:
    if isinstance(value, int) and not isinstance(value, bool):
        return _int_word(value, field=field)
    if isinstance(value, str):
        if _HEX_RE.match(value) and len(value) > 2:
            return _hex_word(value, field=field)
        if value.isdigit():
            return _int_word(int(value), field=field)
    raise EncodingError(
        f"Malformed storage value {value!r} (expected hex literal, non-negative integer or #name)",
        field=field,
    )


def _int_word(number: int, *, field: Optional[str]) -> bytes:
    if number < 0 or number >= 2 ** 256:
        raise EncodingError(f"Value {number} does not fit in a 32-byte word", field=field)
    return number.to_bytes(WORD_SIZE, "big")


def _hex_word(text: str, *, field: Optional[str]) -> bytes:
    digits = text[2:]
    if len(digits) > WORD_SIZE * 2:
        raise EncodingError(
            f"Hex value '{text}' is {(len(digits) + 1) // 2} bytes, exceeds 32",
            field=field,
        )
    return bytes.fromhex(digits.rjust(WORD_SIZE * 2, "0"))
