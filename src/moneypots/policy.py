"""Auto-approval thresholds for child claims."""

from __future__ import annotations

import math
from typing import Dict, Optional

from .models import AutoApprovalRules, ClaimType

# goal-completion shares the reward ceiling; there is no separate goal threshold.
RULE_FOR_CLAIM: Dict[ClaimType, str] = {
    ClaimType.CHORE: "chore_claim_max",
    ClaimType.REWARD: "reward_claim_max",
    ClaimType.POINTS_MOVE: "point_move_max",
    ClaimType.GOAL_COMPLETION: "reward_claim_max",
}


def threshold_for(claim_type: ClaimType | str, rules: AutoApprovalRules) -> Optional[float]:
    """Return the configured ceiling for ``claim_type`` or ``None`` when there is none."""

    attribute = RULE_FOR_CLAIM.get(ClaimType.parse(claim_type))
    if attribute is None:
        return None
    return getattr(rules, attribute)


def evaluate(claim_type: ClaimType | str, amount: int, rules: AutoApprovalRules) -> bool:
    """True when a claim of ``amount`` may be fulfilled without parent review."""

    limit = threshold_for(claim_type, rules)
    if limit is None or isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return False
    if not math.isfinite(limit) or limit < 0:
        return False
    return amount <= limit


__all__ = ["RULE_FOR_CLAIM", "evaluate", "threshold_for"]
