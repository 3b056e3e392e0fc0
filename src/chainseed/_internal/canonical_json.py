"""Canonical JSON serialization for provisioning reports.

Reports from two runs against the same chain state should diff cleanly, so
every report write goes through canonical_dumps.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Serialize obj with sorted keys and compact separators.

    Lists keep their order: contracts and transactions appear in the order
    they were processed.

    Args:
        obj: JSON-compatible Python object (e.g. a model_dump(mode="json"))

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )
