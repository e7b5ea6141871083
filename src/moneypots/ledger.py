"""Jar balances and the append-only transaction log.

Every balance change goes through a :class:`LedgerBook`, which is bound to a
single database session. :meth:`Ledger.unit` hands one out while holding the
per-account locks, and commits the balance updates and the log rows together
(or rolls both back).
"""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session, desc, select

from .exceptions import InsufficientFundsError, InvalidAmountError, NotFoundError
from .models import Jar, TransactionKind, TransactionMeta, utcnow
from .money import AmountLike, require_positive, to_points
from .ops import StructuredLogger
from .persistence import Account, Transaction, find_account, open_session
from .splits import SplitLike, allocate

MetaFactory = Callable[[Jar, int], TransactionMeta]


class LedgerBook:
    """Balance primitives bound to one open session.

    Nothing here commits; the owning :meth:`Ledger.unit` does.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.journal: List[Tuple[str, dict]] = []

    def account(self, user_id: str) -> Account:
        account = find_account(self.session, user_id)
        if account is None:
            raise NotFoundError(f"Account '{user_id}' does not exist.")
        return account

    def credit(self, account: Account, jar: Jar | str, amount: AmountLike, meta: TransactionMeta) -> Transaction:
        target = Jar.parse(jar)
        value = require_positive(to_points(amount))
        account.set_balance(target, account.balance(target) + value)
        return self._record(account, value, meta, to_jar=target)

    def debit(self, account: Account, jar: Jar | str, amount: AmountLike, meta: TransactionMeta) -> Transaction:
        source = Jar.parse(jar)
        value = require_positive(to_points(amount))
        self._ensure_sufficient_funds(account, source, value)
        account.set_balance(source, account.balance(source) - value)
        return self._record(account, value, meta, from_jar=source)

    def transfer(
        self,
        account: Account,
        from_jar: Jar | str,
        to_jar: Jar | str,
        amount: AmountLike,
        meta: TransactionMeta,
    ) -> Transaction:
        source = Jar.parse(from_jar)
        target = Jar.parse(to_jar)
        if source is target:
            raise InvalidAmountError("Cannot move points into the same jar.")
        value = require_positive(to_points(amount))
        self._ensure_sufficient_funds(account, source, value)
        account.set_balance(source, account.balance(source) - value)
        account.set_balance(target, account.balance(target) + value)
        return self._record(account, value, meta, from_jar=source, to_jar=target)

    def split_credit(
        self,
        account: Account,
        total_amount: AmountLike,
        split: SplitLike,
        meta_factory: MetaFactory,
    ) -> List[Transaction]:
        total = require_positive(to_points(total_amount))
        return [
            self.credit(account, jar, share, meta_factory(jar, share))
            for jar, share in allocate(total, split).items()
        ]

    def _record(
        self,
        account: Account,
        amount: int,
        meta: TransactionMeta,
        *,
        from_jar: Jar | None = None,
        to_jar: Jar | None = None,
    ) -> Transaction:
        now = utcnow()
        account.updated_at = now
        transaction = Transaction(
            account_id=account.user_id,
            kind=TransactionKind.parse(meta.kind).value,
            amount=amount,
            from_jar=from_jar.value if from_jar else None,
            to_jar=to_jar.value if to_jar else None,
            reference=meta.reference,
            description=meta.description or _default_description(meta.kind, amount, from_jar, to_jar),
            approved=meta.approved,
            approved_at=now if meta.approved else None,
            created_at=now,
        )
        self.session.add(account)
        self.session.add(transaction)
        self.session.flush()
        self.journal.append(
            (
                "ledger_" + ("transfer" if from_jar and to_jar else "debit" if from_jar else "credit"),
                {
                    "account": account.user_id,
                    "kind": transaction.kind,
                    "amount": amount,
                    "from_jar": transaction.from_jar,
                    "to_jar": transaction.to_jar,
                    "transaction_id": transaction.id,
                },
            )
        )
        return transaction

    @staticmethod
    def _ensure_sufficient_funds(account: Account, jar: Jar, amount: int) -> None:
        if account.balance(jar) < amount:
            raise InsufficientFundsError(
                f"Not enough points in {jar.value} jar for '{account.user_id}': "
                f"has {account.balance(jar)}, needs {amount}."
            )


def _default_description(kind: TransactionKind | str, amount: int, from_jar: Jar | None, to_jar: Jar | None) -> str:
    label = TransactionKind.parse(kind).value.replace("-", " ").capitalize()
    if from_jar and to_jar:
        return f"{label}: {amount} points from {from_jar.value} to {to_jar.value}"
    if from_jar:
        return f"{label}: {amount} points from {from_jar.value}"
    return f"{label}: {amount} points to {to_jar.value if to_jar else 'current'}"


class Ledger:
    """Owns jar balances and the transaction log for every account."""

    def __init__(self, engine: Engine, *, logger: StructuredLogger | None = None) -> None:
        self._engine = engine
        self._logger = logger or StructuredLogger()
        self._locks: Dict[str, RLock] = {}
        self._locks_guard = Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def _lock_for(self, account_id: str) -> RLock:
        with self._locks_guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = RLock()
            return lock

    @contextmanager
    def unit(self, *account_ids: str) -> Iterator[LedgerBook]:
        """Serialise on ``account_ids`` and yield a book sharing one commit.

        Locks are taken in sorted order so overlapping multi-account units
        cannot deadlock. Reads that gate a mutation must happen inside the
        unit.
        """

        locks = [self._lock_for(account_id) for account_id in sorted(set(account_ids))]
        for lock in locks:
            lock.acquire()
        try:
            with open_session(self._engine) as session:
                book = LedgerBook(session)
                try:
                    yield book
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
            for event, fields in book.journal:
                self._logger.log(event, **fields)
        finally:
            for lock in reversed(locks):
                lock.release()

    # One-shot primitives, each its own atomic unit -------------------------
    def credit(self, account_id: str, jar: Jar | str, amount: AmountLike, meta: TransactionMeta) -> Transaction:
        with self.unit(account_id) as book:
            return book.credit(book.account(account_id), jar, amount, meta)

    def debit(self, account_id: str, jar: Jar | str, amount: AmountLike, meta: TransactionMeta) -> Transaction:
        with self.unit(account_id) as book:
            return book.debit(book.account(account_id), jar, amount, meta)

    def transfer(
        self,
        account_id: str,
        from_jar: Jar | str,
        to_jar: Jar | str,
        amount: AmountLike,
        meta: TransactionMeta,
    ) -> Transaction:
        with self.unit(account_id) as book:
            return book.transfer(book.account(account_id), from_jar, to_jar, amount, meta)

    def split_credit(
        self,
        account_id: str,
        total_amount: AmountLike,
        split: SplitLike,
        meta_factory: MetaFactory,
    ) -> List[Transaction]:
        with self.unit(account_id) as book:
            return book.split_credit(book.account(account_id), total_amount, split, meta_factory)

    # Queries ---------------------------------------------------------------
    def balances(self, account_id: str) -> Dict[Jar, int]:
        with open_session(self._engine) as session:
            return LedgerBook(session).account(account_id).jar_balances()

    def history(self, account_id: str, *, limit: Optional[int] = None) -> List[Transaction]:
        """Return the account's transactions, most recent first."""

        with open_session(self._engine) as session:
            LedgerBook(session).account(account_id)
            query = (
                select(Transaction)
                .where(Transaction.account_id == account_id)
                .order_by(desc(Transaction.created_at), desc(Transaction.id))
            )
            if limit is not None:
                query = query.limit(limit)
            return list(session.exec(query).all())

    def reconcile(self, account_id: str) -> Dict[Jar, Tuple[int, int]]:
        """Compare stored balances with the log; returns ``{jar: (stored, replayed)}`` for mismatches."""

        with open_session(self._engine) as session:
            account = LedgerBook(session).account(account_id)
            replayed = {jar: 0 for jar in Jar}
            transactions = session.exec(select(Transaction).where(Transaction.account_id == account_id)).all()
            for transaction in transactions:
                if transaction.to_jar:
                    replayed[Jar(transaction.to_jar)] += transaction.amount
                if transaction.from_jar:
                    replayed[Jar(transaction.from_jar)] -= transaction.amount
            return {
                jar: (account.balance(jar), replayed[jar])
                for jar in Jar
                if account.balance(jar) != replayed[jar]
            }


__all__ = ["Ledger", "LedgerBook", "MetaFactory"]
