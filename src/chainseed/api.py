"""Public API for chainseed.

High-level functions that return complete, structured results. The CLI is
a thin wrapper over provision() and validate().
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from chainseed.codes import ContractState, IssueCode
from chainseed.engine import DeploymentEngine
from chainseed.errors import ConfigError, EncodingError, ProvisionError
from chainseed.executor import TransactionExecutor
from chainseed.kernel.config import (
    ChainConfig,
    ChainSettings,
    iter_references,
    load_configs,
    parse_config,
)
from chainseed.kernel.registry import ResolvedRegistry
from chainseed.results import (
    ContractOutcome,
    ProvisionResult,
    TransactionOutcome,
    ValidationIssue,
    ValidationResult,
)
from chainseed.verify import run_verifications
from chainseed._internal.rpc import ChainClient

logger = logging.getLogger(__name__)

ConfigInput = Union[str, os.PathLike, Path, Dict[str, Any], ChainConfig, Sequence[Union[str, os.PathLike, Path]]]


def _load(config: ConfigInput) -> ChainConfig:
    """Accept a ChainConfig, a raw dict, one path or a list of paths."""
    if isinstance(config, ChainConfig):
        return config
    if isinstance(config, dict):
        return parse_config(config)
    if isinstance(config, (str, os.PathLike)):
        return load_configs([config])
    return load_configs(list(config))


def apply_overrides(config: ChainConfig, **overrides: Any) -> ChainConfig:
    """Return a copy of config whose [chain] settings are updated.

    None values are ignored, so CLI flags that were not given leave the
    file's settings alone.
    """
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    try:
        settings = ChainSettings.model_validate({**config.chain.model_dump(exclude_unset=True), **updates})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigError(f"Invalid override: {first.get('msg')}", field=f"chain.{field}") from None
    return config.model_copy(update={"chain": settings})


def _already_provisioned(outcomes: List[ContractOutcome]) -> bool:
    return bool(outcomes) and all(o.state is ContractState.SKIPPED for o in outcomes)


def provision(
    config: ConfigInput,
    *,
    client: Optional[ChainClient] = None,
    private_key: Optional[str] = None,
    wait_attempts: int = 0,
) -> ProvisionResult:
    """Provision a chain from a config.

    Contracts are processed in file order, then transactions, then
    verifications. The first hard failure stops the run; the returned
    result has ok=False and names the failing entry. Effects already
    committed to the chain are not rolled back.

    Args:
        config: ChainConfig, raw dict, config path or list of paths (merged)
        client: Chain client to use; built from [chain] settings if omitted
        private_key: Sign locally with this key instead of impersonating
        wait_attempts: If > 0, wait for the node to answer before starting

    Raises:
        ConfigError: If the config itself cannot be loaded
    """
    chain_config = _load(config)
    settings = chain_config.chain
    if client is None:
        client = ChainClient.connect(
            settings.endpoint,
            private_key=private_key,
            receipt_timeout=settings.receipt_timeout,
            poll_interval=settings.poll_interval,
        )

    deployer = settings.deployer
    if getattr(client, "signs_locally", False) and "deployer" not in settings.model_fields_set:
        # Signing key wins over the stock anvil account unless a deployer was configured
        deployer = client.account.address

    result = ProvisionResult(ok=True, endpoint=settings.endpoint)
    registry = ResolvedRegistry()
    executor = TransactionExecutor(client, deployer, gas=settings.gas)
    engine = DeploymentEngine(client, executor)

    try:
        if wait_attempts > 0:
            client.wait_until_ready(wait_attempts)
        engine.run(chain_config.contracts, registry, result.contracts)

        if _already_provisioned(result.contracts) and not settings.rerun_transactions:
            if chain_config.transactions:
                logger.warning(
                    "All contracts already present; not submitting transactions: %s "
                    "(if an earlier run failed partway, rerun with --rerun-transactions)",
                    ", ".join(t.name for t in chain_config.transactions),
                )
            result.transactions = [
                TransactionOutcome(name=t.name, status="skipped") for t in chain_config.transactions
            ]
        else:
            executor.run(chain_config.transactions, registry, result.transactions)
    except ProvisionError as e:
        logger.error("Provisioning aborted: %s", e)
        result.ok = False
        result.error = str(e)
        result.error_type = type(e).__name__
        result.failed_entry = e.entry
    finally:
        try:
            executor.close()
        except ProvisionError as e:
            logger.warning("Could not stop impersonating %s: %s", deployer, e)
        result.registry = registry.as_dict()

    if result.ok and chain_config.verifications:
        result.verified, result.warnings = run_verifications(chain_config.verifications, client, registry)

    return result


def validate(config: ConfigInput) -> ValidationResult:
    """Check a config without touching the chain.

    Reports load errors (structure, encoding) and references that could not
    resolve at run time: names never declared, and names declared later
    than the contract using them.
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    try:
        chain_config = _load(config)
    except EncodingError as e:
        errors.append(ValidationIssue(
            code=IssueCode.INVALID_ENCODING.value, message=e.message, entry=e.entry, field=e.field,
        ))
        return ValidationResult(ok=False, errors=errors, warnings=warnings)
    except ConfigError as e:
        errors.append(ValidationIssue(
            code=IssueCode.INVALID_CONFIG.value, message=e.message, entry=e.entry, field=e.field,
        ))
        return ValidationResult(ok=False, errors=errors, warnings=warnings)

    names = chain_config.get_contract_names()
    for section, index, entry, field, name in iter_references(chain_config):
        if name not in names:
            errors.append(ValidationIssue(
                code=IssueCode.UNRESOLVED_REFERENCE.value,
                message=f"'#{name}' does not name any contract in the config",
                entry=entry,
                field=field,
                reference=name,
            ))
        elif section == "contracts" and name not in names[:index]:
            errors.append(ValidationIssue(
                code=IssueCode.FORWARD_REFERENCE.value,
                message=f"'#{name}' is used before it is declared (move it above '{entry}')",
                entry=entry,
                field=field,
                reference=name,
            ))

    return ValidationResult(ok=len(errors) == 0, errors=errors, warnings=warnings)
