"""Idempotency probe: detect fixed-address contracts that already have code."""

import logging

logger = logging.getLogger(__name__)


def has_code(client, address: str) -> bool:
    """True if the chain holds non-empty code at address.

    Only fixed-address contracts are probed. Transaction-created contracts
    are not, since their address depends on the deployer nonce at the time
    of creation.
    """
    code = client.get_code(address)
    present = len(code) > 0
    logger.debug("Probe %s: %s", address, f"{len(code)} bytes of code" if present else "empty")
    return present
