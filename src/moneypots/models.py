"""Domain values used by the Money Pots package."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Sequence

from .config import CURRENCIES, INTEREST_FREQUENCIES, MAX_CONVERSION_RATE, MIN_CONVERSION_RATE
from .exceptions import InvalidJarError, InvalidSettingError, InvalidTransitionError

if TYPE_CHECKING:
    from .persistence import ApprovalRequest, Transaction
    from .splits import SplitConfig


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for every stored ``datetime`` column."""

    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive caller-supplied datetimes; aware ones are converted."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class Jar(str, Enum):
    """The five sub-balances every account holds."""

    CURRENT = "current"
    SAVE = "save"
    SPEND = "spend"
    DONATE = "donate"
    INVEST = "invest"

    @classmethod
    def parse(cls, value: "Jar | str") -> "Jar":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidJarError(f"Unknown jar: {value!r}") from exc


class TransactionKind(str, Enum):
    """Enumerates the supported types of ledger transactions."""

    CHORE_COMPLETION = "chore-completion"
    GOAL_CONTRIBUTION = "goal-contribution"
    REWARD_PURCHASE = "reward-purchase"
    POINTS_MOVE = "points-move"
    POINTS_REQUEST = "points-request"
    INVESTMENT_GROWTH = "investment-growth"
    WITHDRAWAL = "withdrawal"
    GOAL_COMPLETION = "goal-completion"
    PARENT_ADJUSTMENT = "parent-adjustment"

    @classmethod
    def parse(cls, value: "TransactionKind | str") -> "TransactionKind":
        if isinstance(value, cls):
            return value
        aliases = {"chore-completed": "chore-completion", "parent-points-adjustment": "parent-adjustment"}
        raw = str(value).strip().lower()
        try:
            return cls(aliases.get(raw, raw))
        except ValueError as exc:
            raise InvalidSettingError(f"Unknown transaction kind: {value!r}") from exc


class ClaimType(str, Enum):
    """Kinds of child-initiated claims."""

    CHORE = "chore"
    REWARD = "reward"
    GOAL_COMPLETION = "goal-completion"
    POINTS_MOVE = "points-move"
    POINTS = "points"

    @classmethod
    def parse(cls, value: "ClaimType | str") -> "ClaimType":
        if isinstance(value, cls):
            return value
        raw = str(value).strip().lower()
        if raw == "move-points":
            raw = "points-move"
        try:
            return cls(raw)
        except ValueError as exc:
            raise InvalidSettingError(f"Unknown claim type: {value!r}") from exc


class RequestStatus(str, Enum):
    """Lifecycle of an approval request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING

    @classmethod
    def decision(cls, value: "RequestStatus | str") -> "RequestStatus":
        """Parse a parent decision; only the terminal states are valid targets."""

        if isinstance(value, cls):
            status = value
        else:
            try:
                status = cls(str(value).strip().capitalize())
            except ValueError as exc:
                raise InvalidTransitionError(f"Unknown decision: {value!r}") from exc
        if not status.is_terminal:
            raise InvalidTransitionError("A decision must be Approved or Denied.")
        return status


class Role(str, Enum):
    """Family roles. Elders may read family records but never approve or claim."""

    PARENT = "parent"
    CHILD = "child"
    ELDER = "elder"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidSettingError(f"Unknown role: {value!r}") from exc


class MessageSender(str, Enum):
    CHILD = "child"
    PARENT = "parent"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


def _check_threshold(name: str, value: Any) -> None:
    if value is None:
        return
    if not _finite(value) or value < 0:
        raise InvalidSettingError(f"Invalid value for {name}: must be a finite non-negative number")


@dataclass(frozen=True, slots=True)
class AutoApprovalRules:
    """Per-family ceilings for claims that skip parent review.

    ``None`` disables a category; any non-negative number auto-approves
    claims at or below it.
    """

    chore_claim_max: Optional[float] = None
    reward_claim_max: Optional[float] = None
    point_move_max: Optional[float] = None

    def validate(self) -> "AutoApprovalRules":
        _check_threshold("chore_claim_max", self.chore_claim_max)
        _check_threshold("reward_claim_max", self.reward_claim_max)
        _check_threshold("point_move_max", self.point_move_max)
        return self


@dataclass(frozen=True, slots=True)
class InterestRule:
    """Stored savings-interest configuration. Accrual itself is not scheduled."""

    rate: float = 0
    frequency: str = "monthly"
    jar: Jar = Jar.SAVE

    def validate(self) -> "InterestRule":
        if not _finite(self.rate) or self.rate < 0:
            raise InvalidSettingError("Interest rate must be a finite non-negative number")
        if self.frequency not in INTEREST_FREQUENCIES:
            raise InvalidSettingError(f"Invalid interest frequency: {self.frequency!r}")
        Jar.parse(self.jar)
        return self


@dataclass(frozen=True, slots=True)
class SettingsUpdate:
    """Typed family settings command; ``None`` leaves a field untouched."""

    currency: Optional[str] = None
    conversion_rate: Optional[float] = None
    show_denominations: Optional[bool] = None
    default_split: Optional["SplitConfig"] = None
    interest_rule: Optional[InterestRule] = None
    auto_approval_rules: Optional[AutoApprovalRules] = None

    @property
    def touches_family_policy(self) -> bool:
        """True when the update changes split, interest or approval rules."""

        return any(
            value is not None
            for value in (self.default_split, self.interest_rule, self.auto_approval_rules)
        )

    def validate(self) -> "SettingsUpdate":
        if self.currency is not None and self.currency not in CURRENCIES:
            raise InvalidSettingError("Invalid currency value")
        if self.conversion_rate is not None:
            rate = self.conversion_rate
            if not _finite(rate):
                raise InvalidSettingError("Conversion rate must be a finite number")
            if rate < MIN_CONVERSION_RATE or rate > MAX_CONVERSION_RATE:
                raise InvalidSettingError(
                    f"Conversion rate must be between {MIN_CONVERSION_RATE} and {MAX_CONVERSION_RATE:g}"
                )
        if self.default_split is not None:
            self.default_split.validate()
        if self.interest_rule is not None:
            self.interest_rule.validate()
        if self.auto_approval_rules is not None:
            self.auto_approval_rules.validate()
        return self


@dataclass(frozen=True, slots=True)
class TransactionMeta:
    """Descriptive fields attached to a ledger mutation."""

    kind: TransactionKind
    description: str = ""
    reference: Optional[str] = None
    approved: bool = True


@dataclass(slots=True)
class ClaimResult:
    """Outcome of a claim submission."""

    auto_approved: bool
    request: Optional["ApprovalRequest"] = None
    transactions: Sequence["Transaction"] = field(default_factory=tuple)


__all__ = [
    "AutoApprovalRules",
    "ClaimResult",
    "ClaimType",
    "GoalStatus",
    "InterestRule",
    "Jar",
    "MessageSender",
    "RequestStatus",
    "Role",
    "SettingsUpdate",
    "TransactionKind",
    "TransactionMeta",
    "as_utc",
    "utcnow",
]
