"""Custom exception hierarchy for the Money Pots package."""

from __future__ import annotations


class MoneyPotsError(Exception):
    """Base class for all Money Pots specific errors."""


class NotFoundError(MoneyPotsError, LookupError):
    """Raised when an account, claim, chore, goal or reward lookup fails."""


class ForbiddenError(MoneyPotsError, PermissionError):
    """Raised for cross-family access or an action taken in the wrong role."""


class InvalidAmountError(MoneyPotsError, ValueError):
    """Raised when an amount is non-positive, non-integral or malformed."""


class InsufficientFundsError(MoneyPotsError):
    """Raised when a jar balance is below the requested debit."""


class InvalidSplitError(MoneyPotsError, ValueError):
    """Raised when split percentages fall outside 0-100 or do not total 100."""


class InvalidTransitionError(MoneyPotsError):
    """Raised when acting on an approval request that is already resolved."""


class DuplicateClaimError(MoneyPotsError):
    """Raised when a pending request already exists for the same reference."""


class InvalidSettingError(MoneyPotsError, ValueError):
    """Raised when a family setting (currency, rate, rules) is rejected."""


class EmptyMessageError(MoneyPotsError, ValueError):
    """Raised when a request message has no text."""


class InvalidJarError(MoneyPotsError, ValueError):
    """Raised when a jar name is unknown or a required jar is missing."""


class DuplicateAccountError(MoneyPotsError):
    """Raised when attempting to create an account that already exists."""
