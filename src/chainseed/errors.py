"""Exception taxonomy for provisioning runs.

Every hard failure raised by chainseed derives from ProvisionError and
carries the name of the declarative entry being processed, so the CLI can
report which contract or transaction stopped the run.
"""

from typing import Optional


class ProvisionError(Exception):
    """Base class for failures that abort a provisioning run."""

    def __init__(self, message: str, *, entry: Optional[str] = None):
        self.entry = entry
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self._format()

    def _format(self) -> str:
        if self.entry:
            return f"[{self.entry}] {self.message}"
        return self.message


class ConfigError(ProvisionError, ValueError):
    """Malformed config file or wrong number of deployment/payload modes."""

    def __init__(self, message: str, *, entry: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message, entry=entry)

    def _format(self) -> str:
        text = self.message
        if self.field:
            text = f"{self.field}: {text}"
        if self.entry:
            text = f"[{self.entry}] {text}"
        return text


class EncodingError(ConfigError):
    """Unsupported type tag, malformed literal or oversize storage key."""


class UnresolvedReferenceError(ProvisionError, LookupError):
    """A '#name' reference that is not (yet) in the run registry."""

    def __init__(self, name: str, *, entry: Optional[str] = None, field: Optional[str] = None):
        self.name = name
        self.field = field
        where = f" in {field}" if field else ""
        super().__init__(
            f"reference to unknown contract '#{name}'{where} "
            f"(references must name a contract declared earlier in the config)",
            entry=entry,
        )


class RpcError(ProvisionError):
    """Transport failure talking to the chain (unreachable, bad response)."""


class ChainError(ProvisionError):
    """The chain rejected or failed an operation (revert, timeout, refused injection)."""
