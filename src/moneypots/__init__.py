"""Money Pots: a family points ledger with jars, claims and parent approvals."""

from .approvals import Claim, ClaimFulfiller
from .exceptions import (
    DuplicateAccountError,
    DuplicateClaimError,
    EmptyMessageError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidJarError,
    InvalidSettingError,
    InvalidSplitError,
    InvalidTransitionError,
    MoneyPotsError,
    NotFoundError,
)
from .ledger import Ledger, LedgerBook
from .models import (
    AutoApprovalRules,
    ClaimResult,
    ClaimType,
    GoalStatus,
    InterestRule,
    Jar,
    RequestStatus,
    Role,
    SettingsUpdate,
    TransactionKind,
    TransactionMeta,
)
from .notifications import DatabaseNotifier, NotificationCenter, NotificationEvent, NotificationType, Notifier
from .ops import StructuredLogger
from .policy import evaluate
from .service import MoneyPots
from .splits import SplitConfig, allocate, validate_split

__all__ = [
    "AutoApprovalRules",
    "Claim",
    "ClaimFulfiller",
    "ClaimResult",
    "ClaimType",
    "DatabaseNotifier",
    "DuplicateAccountError",
    "DuplicateClaimError",
    "EmptyMessageError",
    "ForbiddenError",
    "GoalStatus",
    "InsufficientFundsError",
    "InterestRule",
    "InvalidAmountError",
    "InvalidJarError",
    "InvalidSettingError",
    "InvalidSplitError",
    "InvalidTransitionError",
    "Jar",
    "Ledger",
    "LedgerBook",
    "MoneyPots",
    "MoneyPotsError",
    "NotFoundError",
    "NotificationCenter",
    "NotificationEvent",
    "NotificationType",
    "Notifier",
    "RequestStatus",
    "Role",
    "SettingsUpdate",
    "SplitConfig",
    "StructuredLogger",
    "TransactionKind",
    "TransactionMeta",
    "allocate",
    "evaluate",
    "validate_split",
]
