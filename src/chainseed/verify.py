"""Post-provisioning read-only checks.

Verification is diagnostic only: every problem becomes a VerificationIssue
and the run outcome is unaffected.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from chainseed.codes import IssueCode
from chainseed.errors import ProvisionError, UnresolvedReferenceError
from chainseed.kernel.abi import encode, encode_function_call
from chainseed.kernel.config import VerificationSpec
from chainseed.kernel.registry import ResolvedRegistry, resolve
from chainseed.results import VerificationIssue

logger = logging.getLogger(__name__)


def check(spec: VerificationSpec, client, registry: ResolvedRegistry) -> Optional[VerificationIssue]:
    """Run one verification. Returns an issue, or None when it passes."""
    try:
        target = resolve(spec.target, registry, entry=spec.name, field="target")
        data = encode_function_call(spec.function_signature, spec.args, registry, entry=spec.name)
    except UnresolvedReferenceError as e:
        return VerificationIssue(code=IssueCode.VERIFY_UNRESOLVED.value, name=spec.name, message=e.message)

    try:
        result = client.call(target, data)
    except ProvisionError as e:
        return VerificationIssue(
            code=IssueCode.VERIFY_CALL_FAILED.value,
            name=spec.name,
            message=f"{spec.function_signature} on {target} failed: {e.message}",
        )

    if spec.returns is None:
        if not result:
            return VerificationIssue(
                code=IssueCode.VERIFY_EMPTY_RESULT.value,
                name=spec.name,
                message=f"{spec.function_signature} on {target} returned no data (no code at target?)",
            )
        return None

    expected = encode(spec.returns.type, spec.returns.value)
    if result != expected:
        return VerificationIssue(
            code=IssueCode.VERIFY_MISMATCH.value,
            name=spec.name,
            message=f"{spec.function_signature} on {target} returned unexpected data",
            expected="0x" + expected.hex(),
            actual="0x" + result.hex(),
        )
    return None


def run_verifications(
    specs: Sequence[VerificationSpec],
    client,
    registry: ResolvedRegistry,
) -> Tuple[int, List[VerificationIssue]]:
    """Run all verifications in order.

    Returns:
        (number passed, list of issues)
    """
    passed = 0
    issues: List[VerificationIssue] = []
    for spec in specs:
        issue = check(spec, client, registry)
        if issue is None:
            passed += 1
            logger.info("Verification '%s' passed", spec.name)
        else:
            issues.append(issue)
            logger.warning("Verification '%s' failed: %s", spec.name, issue.message)
    return passed, issues
