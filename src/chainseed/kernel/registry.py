"""Run-scoped name -> address registry and reference resolution."""

from typing import Dict, Iterator, Optional, Tuple

from eth_utils import is_hex_address, to_checksum_address

from chainseed.errors import EncodingError, UnresolvedReferenceError

REFERENCE_PREFIX = "#"


def is_reference(token: object) -> bool:
    """True if token is a '#name' reference marker."""
    return isinstance(token, str) and token.startswith(REFERENCE_PREFIX) and len(token) > 1


def reference_name(token: str) -> str:
    """Strip the '#' marker from a reference token."""
    return token[len(REFERENCE_PREFIX):]


class ResolvedRegistry:
    """Append-only mapping of contract name to on-chain address.

    One registry lives for one provisioning run. It is never persisted;
    reattaching to a running chain rebuilds it by probing fixed addresses.
    """

    def __init__(self) -> None:
        self._addresses: Dict[str, str] = {}

    def record(self, name: str, address: str) -> str:
        """Record a contract's address. Names can only be recorded once."""
        checksummed = to_checksum_address(address)
        existing = self._addresses.get(name)
        if existing is not None and existing != checksummed:
            raise ValueError(
                f"Contract '{name}' already recorded at {existing}, refusing to rebind to {checksummed}"
            )
        self._addresses[name] = checksummed
        return checksummed

    def get(self, name: str) -> Optional[str]:
        return self._addresses.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._addresses

    def __len__(self) -> int:
        return len(self._addresses)

    def __iter__(self) -> Iterator[str]:
        return iter(self._addresses)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._addresses.items())

    def as_dict(self) -> Dict[str, str]:
        """Snapshot of the registry in recording order."""
        return dict(self._addresses)


def resolve(
    token: str,
    registry: ResolvedRegistry,
    *,
    entry: Optional[str] = None,
    field: Optional[str] = None,
) -> str:
    """Resolve a literal hex address or '#name' reference to a checksum address.

    Resolution is forward-only: a name must already be in the registry at
    the point of use.

    Raises:
        UnresolvedReferenceError: If '#name' is not in the registry
        EncodingError: If a literal is not a 20-byte hex address
    """
    if is_reference(token):
        name = reference_name(token)
        address = registry.get(name)
        if address is None:
            raise UnresolvedReferenceError(name, entry=entry, field=field)
        return address
    if not isinstance(token, str) or not is_hex_address(token):
        raise EncodingError(f"Invalid address '{token}'", entry=entry, field=field)
    return to_checksum_address(token)
