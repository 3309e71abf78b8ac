"""Secret pruning.

The executor fails when a pipeline declares secrets that no step
consumes, and some executors also reject an empty secret block, so the
global secret declarations are cut down to exactly what the retained
steps reference.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from monoci.contracts.pipeline import SecretBlock, Step
from monoci.core.logging import get_logger

logger = get_logger(__name__)


def used_secret_names(steps: Iterable[Step]) -> frozenset[str]:
    """Every secret name referenced by any step's secret list."""
    return frozenset(name for step in steps for name in step.secret_env)


def prune_secrets(blocks: Sequence[SecretBlock], steps: Sequence[Step]) -> tuple[SecretBlock, ...]:
    """Drop unreferenced secrets; drop blocks left empty.

    Returns:
        The pruned blocks. An empty tuple means the secret block must be
        omitted from the pipeline entirely.
    """
    used = used_secret_names(steps)
    pruned = [block.restricted_to(used) for block in blocks]
    removed = sorted(name for block in blocks for name in block.secret_env if name not in used)
    kept = tuple(block for block in pruned if not block.is_empty())

    declared = {name for block in blocks for name in block.secret_env}
    undeclared = sorted(used - declared)
    if undeclared:
        logger.warning("undeclared_secrets", names=undeclared)

    logger.debug(
        "secrets_pruned",
        kept=sorted(name for block in kept for name in block.secret_env),
        removed=removed,
    )
    return kept
