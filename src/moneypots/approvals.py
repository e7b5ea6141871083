"""Approval request state machine and claim fulfilment.

A claim is fulfilled the same way whether a parent approved it or the
auto-approval policy waved it through; :class:`ClaimFulfiller` is that one
path. Denials run the compensating action for reserved rewards and goals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .config import FALLBACK_SPLIT
from .exceptions import InvalidJarError, InvalidTransitionError, NotFoundError
from .ledger import LedgerBook
from .models import ClaimType, GoalStatus, Jar, RequestStatus, TransactionKind, TransactionMeta, utcnow
from .persistence import Account, ApprovalRequest, Chore, Goal, Reward, Transaction
from .splits import SplitConfig


@dataclass(slots=True)
class Claim:
    """Everything needed to fulfil a claim, with or without a stored request."""

    claim_type: ClaimType
    amount: int
    from_jar: Optional[Jar] = None
    to_jar: Optional[Jar] = None
    chore_id: Optional[int] = None
    goal_id: Optional[int] = None
    reward_id: Optional[int] = None
    name: Optional[str] = None
    request_id: Optional[int] = None

    @classmethod
    def from_request(cls, request: ApprovalRequest) -> "Claim":
        return cls(
            claim_type=ClaimType.parse(request.claim_type),
            amount=request.amount,
            from_jar=Jar.parse(request.from_jar) if request.from_jar else None,
            to_jar=Jar.parse(request.to_jar) if request.to_jar else None,
            chore_id=request.chore_id,
            goal_id=request.goal_id,
            reward_id=request.reward_id,
            name=request.name,
            request_id=request.id,
        )

    @property
    def reference(self) -> Optional[str]:
        if self.chore_id is not None:
            return f"chore:{self.chore_id}"
        if self.goal_id is not None:
            return f"goal:{self.goal_id}"
        if self.reward_id is not None:
            return f"reward:{self.reward_id}"
        if self.request_id is not None:
            return f"request:{self.request_id}"
        return None


def ensure_pending(request: ApprovalRequest) -> None:
    if RequestStatus(request.status).is_terminal:
        raise InvalidTransitionError(f"Request {request.id} was already {request.status.lower()}.")


def resolve_split(chore: Optional[Chore], child: Account) -> SplitConfig:
    """Pick the chore's own split, else the family default, else everything to current."""

    if chore is not None and not chore.use_default_split:
        custom = chore.custom_split()
        if custom is not None:
            return custom
    default = child.default_split()
    if default.total > 0:
        return default
    return SplitConfig.from_mapping(FALLBACK_SPLIT)


class ClaimFulfiller:
    """Apply the ledger and entity effects of an approved claim inside one book."""

    def __init__(self, book: LedgerBook) -> None:
        self._book = book

    @property
    def session(self):
        return self._book.session

    def fulfil(self, claim: Claim, child: Account) -> List[Transaction]:
        handlers = {
            ClaimType.POINTS_MOVE: self._fulfil_points_move,
            ClaimType.POINTS: self._fulfil_points,
            ClaimType.REWARD: self._fulfil_reward,
            ClaimType.CHORE: self._fulfil_chore,
            ClaimType.GOAL_COMPLETION: self._fulfil_goal,
        }
        return handlers[claim.claim_type](claim, child)

    def compensate(self, claim: Claim) -> None:
        """Undo the reservation a pending claim placed on its reward or goal."""

        now = utcnow()
        if claim.claim_type is ClaimType.REWARD and claim.reward_id is not None:
            reward = self.session.get(Reward, claim.reward_id)
            if reward is not None:
                reward.available = True
                reward.purchased = False
                reward.updated_at = now
                self.session.add(reward)
        elif claim.claim_type is ClaimType.GOAL_COMPLETION and claim.goal_id is not None:
            goal = self.session.get(Goal, claim.goal_id)
            if goal is not None:
                goal.status = GoalStatus.ACTIVE.value
                goal.updated_at = now
                self.session.add(goal)

    # ------------------------------------------------------------------
    def _fulfil_points_move(self, claim: Claim, child: Account) -> List[Transaction]:
        if claim.from_jar is None or claim.to_jar is None:
            raise InvalidJarError("A points move needs both a source and a destination jar.")
        meta = TransactionMeta(
            TransactionKind.POINTS_MOVE,
            f"Moved {claim.amount} points from {claim.from_jar.value} to {claim.to_jar.value}",
            reference=claim.reference,
        )
        return [self._book.transfer(child, claim.from_jar, claim.to_jar, claim.amount, meta)]

    def _fulfil_points(self, claim: Claim, child: Account) -> List[Transaction]:
        meta = TransactionMeta(
            TransactionKind.POINTS_REQUEST,
            f"Parent approved {claim.amount} points",
            reference=claim.reference,
        )
        return [self._book.credit(child, Jar.CURRENT, claim.amount, meta)]

    def _fulfil_reward(self, claim: Claim, child: Account) -> List[Transaction]:
        reward = self._load(Reward, claim.reward_id, "Reward")
        meta = TransactionMeta(
            TransactionKind.REWARD_PURCHASE,
            f'Reward "{reward.name}" for {claim.amount} points',
            reference=claim.reference,
        )
        transaction = self._book.debit(child, Jar.CURRENT, claim.amount, meta)
        now = utcnow()
        reward.available = False
        reward.purchased = True
        reward.approved_at = now
        reward.purchased_at = now
        reward.updated_at = now
        self.session.add(reward)
        return [transaction]

    def _fulfil_chore(self, claim: Claim, child: Account) -> List[Transaction]:
        chore = self._load(Chore, claim.chore_id, "Chore") if claim.chore_id is not None else None
        label = chore.name if chore is not None else (claim.name or "chore")

        def meta_for(jar: Jar, share: int) -> TransactionMeta:
            return TransactionMeta(
                TransactionKind.CHORE_COMPLETION,
                f'Chore completed: "{label}" - {share} points to {jar.value} jar',
                reference=claim.reference,
            )

        transactions = self._book.split_credit(child, claim.amount, resolve_split(chore, child), meta_for)
        if chore is not None:
            now = utcnow()
            chore.completed = True
            chore.completed_at = chore.completed_at or now
            chore.approved = True
            chore.approved_at = now
            chore.updated_at = now
            self.session.add(chore)
        return transactions

    def _fulfil_goal(self, claim: Claim, child: Account) -> List[Transaction]:
        goal = self._load(Goal, claim.goal_id, "Goal")
        meta = TransactionMeta(
            TransactionKind.GOAL_COMPLETION,
            f'Goal "{goal.name}" completed with {goal.target_amount} points from {goal.jar}',
            reference=claim.reference,
        )
        transaction = self._book.debit(child, goal.jar, goal.target_amount, meta)
        now = utcnow()
        goal.status = GoalStatus.COMPLETED.value
        goal.completed = True
        goal.completed_at = now
        goal.updated_at = now
        self.session.add(goal)
        return [transaction]

    def _load(self, model, entity_id: Optional[int], label: str):
        entity = self.session.get(model, entity_id) if entity_id is not None else None
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} does not exist.")
        return entity


def record_decision(request: ApprovalRequest, decision: RequestStatus, actor: str) -> None:
    now = utcnow()
    request.status = decision.value
    request.acted_by = actor
    request.acted_at = now
    request.updated_at = now


__all__ = ["Claim", "ClaimFulfiller", "ensure_pending", "record_decision", "resolve_split"]
