"""Persistence and SQLModel definitions for Money Pots."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .config import DATABASE_URL, DEFAULT_CURRENCY, DEFAULT_INTEREST_JAR, DEFAULT_SPLIT, SQL_ECHO
from .models import AutoApprovalRules, InterestRule, Jar, utcnow
from .splits import SplitConfig


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class Account(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    family_id: str = Field(index=True)
    role: str = "child"  # parent|child|elder
    name: str = ""
    parent_id: Optional[str] = None
    current_points: int = 0
    save_points: int = 0
    spend_points: int = 0
    donate_points: int = 0
    invest_points: int = 0
    currency: str = DEFAULT_CURRENCY  # points|inr
    conversion_rate: float = 1.0
    show_denominations: bool = False
    split_current: int = DEFAULT_SPLIT["current"]
    split_save: int = DEFAULT_SPLIT["save"]
    split_spend: int = DEFAULT_SPLIT["spend"]
    split_donate: int = DEFAULT_SPLIT["donate"]
    split_invest: int = DEFAULT_SPLIT["invest"]
    interest_rate: float = 0.0
    interest_frequency: str = "monthly"
    interest_jar: str = DEFAULT_INTEREST_JAR
    chore_claim_max: Optional[float] = None
    reward_claim_max: Optional[float] = None
    point_move_max: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def balance(self, jar: Jar | str) -> int:
        return getattr(self, f"{Jar.parse(jar).value}_points")

    def set_balance(self, jar: Jar | str, value: int) -> None:
        setattr(self, f"{Jar.parse(jar).value}_points", value)

    def jar_balances(self) -> Dict[Jar, int]:
        return {jar: self.balance(jar) for jar in Jar}

    def total_points(self) -> int:
        return sum(self.jar_balances().values())

    def default_split(self) -> SplitConfig:
        return SplitConfig(
            current=self.split_current,
            save=self.split_save,
            spend=self.split_spend,
            donate=self.split_donate,
            invest=self.split_invest,
        )

    def set_default_split(self, split: SplitConfig) -> None:
        for jar, percentage in split.items():
            setattr(self, f"split_{jar.value}", percentage)

    def auto_approval_rules(self) -> AutoApprovalRules:
        return AutoApprovalRules(
            chore_claim_max=self.chore_claim_max,
            reward_claim_max=self.reward_claim_max,
            point_move_max=self.point_move_max,
        )

    def interest_rule(self) -> InterestRule:
        return InterestRule(rate=self.interest_rate, frequency=self.interest_frequency, jar=Jar.parse(self.interest_jar))


class Transaction(SQLModel, table=True):
    __tablename__ = "ledger_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: str = Field(index=True)
    kind: str
    amount: int
    from_jar: Optional[str] = None
    to_jar: Optional[str] = None
    reference: Optional[str] = None
    description: str = ""
    approved: bool = True
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    def signed_amount(self) -> int:
        """Net effect on the account total: credits add, debits subtract, moves net to zero."""

        if self.from_jar and self.to_jar:
            return 0
        if self.from_jar:
            return -self.amount
        return self.amount


class ApprovalRequest(SQLModel, table=True):
    __tablename__ = "approval_request"

    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    child_id: str = Field(index=True)
    parent_id: str
    claim_type: str  # chore|reward|goal-completion|points-move|points
    name: Optional[str] = None
    amount: int
    from_jar: Optional[str] = None
    to_jar: Optional[str] = None
    from_balance: Optional[int] = None
    to_balance: Optional[int] = None
    reason: Optional[str] = None
    chore_id: Optional[int] = None
    goal_id: Optional[int] = None
    reward_id: Optional[int] = None
    status: str = "Pending"  # Pending|Approved|Denied
    acted_by: Optional[str] = None
    acted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class ApprovalMessage(SQLModel, table=True):
    __tablename__ = "approval_message"

    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: int = Field(index=True)
    sender: str  # child|parent
    author_id: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class Chore(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str
    child_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    points: int
    frequency: str = "once"  # daily|weekly|monthly|once
    deadline: Optional[datetime] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    approved: bool = False
    approved_at: Optional[datetime] = None
    use_default_split: bool = True
    custom_current: int = 0
    custom_save: int = 0
    custom_spend: int = 0
    custom_donate: int = 0
    custom_invest: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def custom_split(self) -> Optional[SplitConfig]:
        split = SplitConfig(
            current=self.custom_current,
            save=self.custom_save,
            spend=self.custom_spend,
            donate=self.custom_donate,
            invest=self.custom_invest,
        )
        return split if split.total > 0 else None

    def set_custom_split(self, split: SplitConfig) -> None:
        for jar, percentage in split.items():
            setattr(self, f"custom_{jar.value}", percentage)


class Goal(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str
    child_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    target_amount: int
    jar: str = "save"
    deadline: Optional[datetime] = None
    status: str = "active"  # active|pending|completed|expired
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Reward(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    child_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    cost: int
    category: str = "experience"  # experience|privilege|item
    available: bool = True
    purchased: bool = False
    approved_at: Optional[datetime] = None
    purchased_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    user_id: str = Field(index=True)
    type: str
    message: str
    reference_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Engine & sessions
# ---------------------------------------------------------------------------
def make_engine(url: str | None = None, *, echo: bool | None = None) -> Engine:
    target = url or DATABASE_URL
    connect_args = {"check_same_thread": False} if target.startswith("sqlite") else {}
    return create_engine(target, echo=SQL_ECHO if echo is None else echo, connect_args=connect_args)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def open_session(engine: Engine) -> Session:
    return Session(engine, expire_on_commit=False)


def find_account(session: Session, user_id: str) -> Optional[Account]:
    return session.exec(select(Account).where(Account.user_id == user_id)).first()


__all__ = [
    "Account",
    "ApprovalMessage",
    "ApprovalRequest",
    "Chore",
    "Goal",
    "Notification",
    "Reward",
    "Transaction",
    "create_db_and_tables",
    "find_account",
    "make_engine",
    "open_session",
]
