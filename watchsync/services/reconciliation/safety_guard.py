# watchsync/services/reconciliation/safety_guard.py
"""
Refuses ChangeSets that look like an upstream failure rather than real
inventory movement: too many ends in one cycle, or a remote active count
that has drifted far from what the mirror expects.
"""

import logging
from typing import Optional

from watchsync.services.reconciliation.types import ChangeSet, GuardDecision

logger = logging.getLogger(__name__)


class SafetyGuard:

    def __init__(self, max_destructive_per_cycle: int, max_divergence: Optional[int] = None):
        self.max_destructive_per_cycle = max_destructive_per_cycle
        self.max_divergence = max_divergence

    def check(
        self,
        change_set: ChangeSet,
        previous_active_count: int,
        remote_active_count: Optional[int] = None,
    ) -> GuardDecision:
        return check(
            change_set,
            previous_active_count,
            self.max_destructive_per_cycle,
            remote_active_count=remote_active_count,
            max_divergence=self.max_divergence,
        )


def check(
    change_set: ChangeSet,
    previous_active_count: int,
    max_destructive_per_cycle: int,
    remote_active_count: Optional[int] = None,
    max_divergence: Optional[int] = None,
) -> GuardDecision:
    destructive = sorted(change_set.to_deactivate)
    if len(destructive) > max_destructive_per_cycle:
        sku_lines = "\n".join(f"Sku: {sku}" for sku in destructive)
        reason = (
            f"More than {max_destructive_per_cycle} items to remove/delist detected "
            f"({len(destructive)}). Cycle skipped. If this is intentional, raise "
            f"MAX_DESTRUCTIVE_PER_CYCLE.\n{sku_lines}"
        )
        logger.error(f"Safety guard tripped: {len(destructive)} deactivations > {max_destructive_per_cycle}")
        return GuardDecision.abort(reason, destructive)

    if remote_active_count is not None:
        threshold = max_destructive_per_cycle if max_divergence is None else max_divergence
        divergence = abs(remote_active_count - previous_active_count)
        if divergence > threshold:
            reason = (
                f"Remote active count {remote_active_count} differs from tracked count "
                f"{previous_active_count} by {divergence} (limit {threshold}). "
                f"Channel read may have failed; cycle skipped."
            )
            logger.error(f"Safety guard tripped on divergence: {divergence} > {threshold}")
            return GuardDecision.abort(reason, destructive)

    return GuardDecision.allow()
