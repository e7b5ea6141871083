"""High level service coordinating Money Pots families, claims and settings."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session, desc, or_, select

from .approvals import Claim, ClaimFulfiller, ensure_pending, record_decision
from .config import CHORE_FREQUENCIES, LOG_PATH, NOTIFICATION_PAGE_SIZE, REWARD_CATEGORIES
from .exceptions import (
    DuplicateAccountError,
    DuplicateClaimError,
    EmptyMessageError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidJarError,
    InvalidSettingError,
    InvalidTransitionError,
    NotFoundError,
)
from .ledger import Ledger
from .models import (
    ClaimResult,
    ClaimType,
    GoalStatus,
    Jar,
    MessageSender,
    RequestStatus,
    Role,
    SettingsUpdate,
    TransactionKind,
    TransactionMeta,
    as_utc,
    utcnow,
)
from .money import AmountLike, format_points, require_positive, to_points
from .notifications import DatabaseNotifier, NotificationEvent, NotificationType, Notifier
from .ops import StructuredLogger
from .policy import evaluate
from .persistence import (
    Account,
    ApprovalMessage,
    ApprovalRequest,
    Chore,
    Goal,
    Notification,
    Reward,
    Transaction,
    create_db_and_tables,
    find_account,
    make_engine,
    open_session,
)
from .splits import SplitLike, validate_split

# Columns copied onto a new member so the family shares one configuration.
_FAMILY_SETTINGS: Tuple[str, ...] = (
    "currency",
    "conversion_rate",
    "show_denominations",
    "split_current",
    "split_save",
    "split_spend",
    "split_donate",
    "split_invest",
    "interest_rate",
    "interest_frequency",
    "interest_jar",
    "chore_claim_max",
    "reward_claim_max",
    "point_move_max",
)

_FAMILY_READERS = frozenset({Role.PARENT.value, Role.ELDER.value})

_REFERENCES = {
    ClaimType.CHORE: (Chore, "chore_id", "Chore"),
    ClaimType.GOAL_COMPLETION: (Goal, "goal_id", "Goal"),
    ClaimType.REWARD: (Reward, "reward_id", "Reward"),
}


def _require_account(session: Session, user_id: str) -> Account:
    account = find_account(session, user_id)
    if account is None:
        raise NotFoundError(f"Account '{user_id}' does not exist.")
    return account


def _require_parent_of(actor: Account, family_id: str) -> None:
    if actor.role != Role.PARENT.value:
        raise ForbiddenError(f"'{actor.user_id}' is not a parent.")
    if actor.family_id != family_id:
        raise ForbiddenError(f"'{actor.user_id}' belongs to another family.")


def _ensure_can_view(actor: Account, target: Account) -> None:
    if actor.user_id == target.user_id:
        return
    if actor.role in _FAMILY_READERS and actor.family_id == target.family_id:
        return
    raise ForbiddenError(f"'{actor.user_id}' may not view '{target.user_id}'.")


def _apply_settings(account: Account, update: SettingsUpdate) -> None:
    if update.currency is not None:
        account.currency = update.currency
    if update.conversion_rate is not None:
        account.conversion_rate = float(update.conversion_rate)
    if update.show_denominations is not None:
        account.show_denominations = bool(update.show_denominations)
    if update.default_split is not None:
        account.set_default_split(update.default_split)
    if update.interest_rule is not None:
        rule = update.interest_rule
        account.interest_rate = float(rule.rate)
        account.interest_frequency = rule.frequency
        account.interest_jar = Jar.parse(rule.jar).value
    if update.auto_approval_rules is not None:
        rules = update.auto_approval_rules
        account.chore_claim_max = rules.chore_claim_max
        account.reward_claim_max = rules.reward_claim_max
        account.point_move_max = rules.point_move_max
    account.updated_at = utcnow()


def _status_value(status: RequestStatus | str) -> str:
    try:
        return RequestStatus(status if isinstance(status, RequestStatus) else str(status).strip().capitalize()).value
    except ValueError as exc:
        raise InvalidSettingError(f"Unknown request status: {status!r}") from exc


def _snapshot(account: Account, jar: Optional[Jar]) -> Optional[int]:
    return account.balance(jar) if jar is not None else None


class MoneyPots:
    """Manage family accounts, child claims, parent approvals and settings."""

    __slots__ = ("_engine", "_ledger", "_notifier", "_logger")

    def __init__(
        self,
        engine: Engine | None = None,
        *,
        notifier: Notifier | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._engine = engine or make_engine()
        create_db_and_tables(self._engine)
        self._logger = logger or StructuredLogger(path=LOG_PATH)
        self._ledger = Ledger(self._engine, logger=self._logger)
        self._notifier = notifier or DatabaseNotifier(self._engine)

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def create_account(
        self,
        user_id: str,
        *,
        family_id: str,
        role: Role | str = Role.CHILD,
        name: str = "",
        parent_id: Optional[str] = None,
        starting_points: Optional[Mapping[Jar | str, AmountLike]] = None,
    ) -> Account:
        """Register a family member.

        New members inherit the settings of an existing family member so the
        family keeps one split, interest rule and set of approval rules.
        Starting points are credited through the ledger.
        """

        member_role = Role.parse(role)
        opening = {
            Jar.parse(jar): require_positive(to_points(amount), allow_zero=True)
            for jar, amount in (starting_points or {}).items()
        }
        with self._ledger.unit(user_id) as book:
            session = book.session
            if find_account(session, user_id) is not None:
                raise DuplicateAccountError(f"Account '{user_id}' already exists.")
            if parent_id is not None:
                parent = _require_account(session, parent_id)
                _require_parent_of(parent, family_id)
            account = Account(
                user_id=user_id,
                family_id=family_id,
                role=member_role.value,
                name=name or user_id,
                parent_id=parent_id,
            )
            template = session.exec(select(Account).where(Account.family_id == family_id)).first()
            if template is not None:
                for column in _FAMILY_SETTINGS:
                    setattr(account, column, getattr(template, column))
            session.add(account)
            session.flush()
            for jar, amount in opening.items():
                if amount:
                    book.credit(
                        account,
                        jar,
                        amount,
                        TransactionMeta(TransactionKind.PARENT_ADJUSTMENT, "Starting balance", reference="opening"),
                    )
        self._logger.log("account_created", account=user_id, family=family_id, role=member_role.value)
        return account

    def get_account(self, user_id: str) -> Account:
        with open_session(self._engine) as session:
            return _require_account(session, user_id)

    def family_members(self, family_id: str) -> Sequence[Account]:
        with open_session(self._engine) as session:
            members = session.exec(select(Account).where(Account.family_id == family_id).order_by(Account.id)).all()
            return tuple(members)

    def balances(self, user_id: str) -> Dict[Jar, int]:
        return self._ledger.balances(user_id)

    def transactions(
        self,
        user_id: str,
        *,
        acting_user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Sequence[Transaction]:
        if acting_user_id is not None:
            with open_session(self._engine) as session:
                _ensure_can_view(_require_account(session, acting_user_id), _require_account(session, user_id))
        return tuple(self._ledger.history(user_id, limit=limit))

    def reconcile(self, user_id: str) -> Dict[Jar, Tuple[int, int]]:
        mismatches = self._ledger.reconcile(user_id)
        if mismatches:
            self._logger.log(
                "ledger_mismatch",
                account=user_id,
                jars={jar.value: {"stored": stored, "replayed": replayed} for jar, (stored, replayed) in mismatches.items()},
            )
        return mismatches

    def statement(self, user_id: str, *, max_transactions: int = 10) -> str:
        """Create a human-readable summary of the account's jars and recent activity."""

        account = self.get_account(user_id)

        def show(amount: int) -> str:
            return format_points(amount, currency=account.currency, conversion_rate=account.conversion_rate)

        lines = [f"Account holder: {account.name}", "Jar balances:"]
        for jar, amount in account.jar_balances().items():
            lines.append(f"  {jar.value.capitalize()}: {show(amount)}")
        lines.append(f"Total: {show(account.total_points())}")
        interest = account.interest_rule()
        if interest.rate > 0:
            lines.append(f"Interest: {interest.rate:g}% {interest.frequency} on {interest.jar.value}")
        lines.append("")
        lines.append("Recent transactions:")
        recent = self._ledger.history(user_id, limit=max_transactions) if max_transactions > 0 else []
        if not recent:
            lines.append("  (no transactions yet)")
        for transaction in recent:
            lines.append(
                "  "
                f"[{transaction.created_at:%Y-%m-%d}] "
                f"{transaction.kind.replace('-', ' ').title()}: "
                f"{show(transaction.amount)} - {transaction.description}"
            )
        return "\n".join(lines)

    def erase_account(self, user_id: str, *, acting_user_id: str) -> None:
        """Remove a member and everything recorded against them.

        A parent still linked to children cannot be erased until the children are.
        """

        with self._ledger.unit(user_id) as book:
            session = book.session
            account = _require_account(session, user_id)
            actor = _require_account(session, acting_user_id)
            if actor.user_id != account.user_id:
                _require_parent_of(actor, account.family_id)
            children = session.exec(select(Account.user_id).where(Account.parent_id == user_id)).all()
            if children:
                raise ForbiddenError(f"'{user_id}' is still the parent of {', '.join(sorted(children))}.")
            requests = session.exec(select(ApprovalRequest).where(ApprovalRequest.child_id == user_id)).all()
            request_ids = [request.id for request in requests]
            doomed: List[object] = list(requests)
            messages = select(ApprovalMessage).where(ApprovalMessage.author_id == user_id)
            if request_ids:
                messages = select(ApprovalMessage).where(
                    or_(ApprovalMessage.request_id.in_(request_ids), ApprovalMessage.author_id == user_id)
                )
            doomed.extend(session.exec(messages).all())
            doomed.extend(session.exec(select(Transaction).where(Transaction.account_id == user_id)).all())
            doomed.extend(session.exec(select(Chore).where(Chore.child_id == user_id)).all())
            doomed.extend(session.exec(select(Goal).where(Goal.child_id == user_id)).all())
            doomed.extend(session.exec(select(Reward).where(Reward.child_id == user_id)).all())
            doomed.extend(session.exec(select(Notification).where(Notification.user_id == user_id)).all())
            for row in doomed:
                session.delete(row)
            session.delete(account)
        self._logger.log("account_erased", account=user_id, actor=acting_user_id, rows=len(doomed) + 1)

    # ------------------------------------------------------------------
    # Chores, goals and rewards
    # ------------------------------------------------------------------
    def add_chore(
        self,
        parent_id: str,
        child_id: str,
        *,
        name: str,
        points: AmountLike,
        description: Optional[str] = None,
        frequency: str = "once",
        deadline: Optional[datetime] = None,
        use_default_split: Optional[bool] = None,
        custom_split: Optional[SplitLike] = None,
    ) -> Chore:
        value = require_positive(to_points(points))
        if frequency not in CHORE_FREQUENCIES:
            raise InvalidSettingError(f"Invalid chore frequency: {frequency!r}")
        split = validate_split(custom_split) if custom_split is not None else None
        if use_default_split is None:
            use_default_split = split is None
        with open_session(self._engine) as session:
            parent = _require_account(session, parent_id)
            child = _require_account(session, child_id)
            _require_parent_of(parent, child.family_id)
            chore = Chore(
                parent_id=parent_id,
                child_id=child_id,
                name=name,
                description=description,
                points=value,
                frequency=frequency,
                deadline=as_utc(deadline),
                use_default_split=use_default_split,
            )
            if split is not None:
                chore.set_custom_split(split)
            session.add(chore)
            session.commit()
        self._logger.log("chore_added", chore=chore.id, child=child_id, points=value)
        return chore

    def add_goal(
        self,
        parent_id: str,
        child_id: str,
        *,
        name: str,
        target_amount: AmountLike,
        jar: Jar | str = Jar.SAVE,
        description: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> Goal:
        target = require_positive(to_points(target_amount))
        goal_jar = Jar.parse(jar)
        with open_session(self._engine) as session:
            parent = _require_account(session, parent_id)
            child = _require_account(session, child_id)
            _require_parent_of(parent, child.family_id)
            goal = Goal(
                parent_id=parent_id,
                child_id=child_id,
                name=name,
                description=description,
                target_amount=target,
                jar=goal_jar.value,
                deadline=as_utc(deadline),
            )
            session.add(goal)
            session.commit()
        self._logger.log("goal_added", goal=goal.id, child=child_id, target=target)
        return goal

    def add_reward(
        self,
        parent_id: str,
        child_id: str,
        *,
        name: str,
        cost: AmountLike,
        category: str = "experience",
        description: Optional[str] = None,
    ) -> Reward:
        price = require_positive(to_points(cost))
        if category not in REWARD_CATEGORIES:
            raise InvalidSettingError(f"Invalid reward category: {category!r}")
        with open_session(self._engine) as session:
            parent = _require_account(session, parent_id)
            child = _require_account(session, child_id)
            _require_parent_of(parent, child.family_id)
            reward = Reward(
                family_id=child.family_id,
                child_id=child_id,
                name=name,
                description=description,
                cost=price,
                category=category,
            )
            session.add(reward)
            session.commit()
        self._logger.log("reward_added", reward=reward.id, child=child_id, cost=price)
        return reward

    # ------------------------------------------------------------------
    # Claims and approvals
    # ------------------------------------------------------------------
    def submit_claim(
        self,
        child_id: str,
        claim_type: ClaimType | str,
        amount: Optional[AmountLike] = None,
        *,
        from_jar: Jar | str | None = None,
        to_jar: Jar | str | None = None,
        chore_id: Optional[int] = None,
        goal_id: Optional[int] = None,
        reward_id: Optional[int] = None,
        note: Optional[str] = None,
        name: Optional[str] = None,
    ) -> ClaimResult:
        """Submit a child's claim and either fulfil it or queue it for a parent.

        Claims at or below the family's auto-approval ceiling are fulfilled
        straight away and never produce a request. Everything else becomes a
        Pending request addressed to the child's parent, with ``note`` as the
        first message of its thread.
        """

        kind = ClaimType.parse(claim_type)
        value = require_positive(to_points(amount)) if amount is not None else None
        source = Jar.parse(from_jar) if from_jar is not None else None
        target = Jar.parse(to_jar) if to_jar is not None else None
        if kind is ClaimType.POINTS_MOVE:
            if source is None or target is None:
                raise InvalidJarError("A points move needs both a source and a destination jar.")
            if source is target:
                raise InvalidAmountError("Cannot move points into the same jar.")
        text = (note or "").strip() or None

        with self._ledger.unit(child_id) as book:
            session = book.session
            child = book.account(child_id)
            if child.role != Role.CHILD.value:
                raise ForbiddenError(f"Only children can submit claims; '{child_id}' is a {child.role}.")
            if not child.parent_id:
                raise NotFoundError(f"No parent is linked to '{child_id}'.")
            claim = Claim(
                kind,
                value or 0,
                from_jar=source,
                to_jar=target,
                chore_id=chore_id,
                goal_id=goal_id,
                reward_id=reward_id,
                name=name,
            )
            entity = self._check_reference(session, child, claim)
            if claim.amount <= 0:
                raise InvalidAmountError("An amount is required for this claim.")
            if kind is ClaimType.REWARD and child.balance(Jar.CURRENT) < claim.amount:
                raise InsufficientFundsError(
                    f"Not enough points in current jar for '{child_id}': has "
                    f"{child.balance(Jar.CURRENT)}, needs {claim.amount}."
                )

            parent = find_account(session, child.parent_id)
            rules = (parent or child).auto_approval_rules()
            auto = evaluate(kind, claim.amount, rules)
            if auto and kind is ClaimType.POINTS_MOVE and source is not None and child.balance(source) < claim.amount:
                auto = False

            if auto:
                transactions = ClaimFulfiller(book).fulfil(claim, child)
                request = None
            else:
                transactions = []
                request = self._open_request(session, child, claim, text)
                self._reserve(session, entity, kind)
            family_id, parent_id, child_name = child.family_id, child.parent_id, child.name

        self._logger.log(
            "claim_submitted",
            child=child_id,
            claim_type=kind.value,
            amount=claim.amount,
            auto_approved=auto,
            request=request.id if request is not None else None,
        )
        if auto:
            self._notify(
                family_id,
                child_id,
                NotificationType.auto_approved(kind),
                _auto_approval_message(claim),
            )
        else:
            self._notify(
                family_id,
                parent_id,
                NotificationType.REQUEST_SUBMITTED,
                f"New {kind.value} request from {child_name}: {claim.name} ({claim.amount} points).",
                reference_id=request.id,
            )
        return ClaimResult(auto_approved=auto, request=request, transactions=tuple(transactions))

    def resolve_claim(
        self,
        request_id: int,
        acting_parent_id: str,
        decision: RequestStatus | str,
        comment: Optional[str] = None,
    ) -> ApprovalRequest:
        """Approve or deny a pending request.

        Approval fulfils the claim in the same commit as the status change,
        so a failed fulfilment leaves the request Pending.
        """

        status = RequestStatus.decision(decision)
        with open_session(self._engine) as session:
            found = session.get(ApprovalRequest, request_id)
            if found is None:
                raise NotFoundError(f"Request {request_id} does not exist.")
            child_id = found.child_id

        with self._ledger.unit(child_id) as book:
            session = book.session
            request = session.get(ApprovalRequest, request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} does not exist.")
            parent = book.account(acting_parent_id)
            _require_parent_of(parent, request.family_id)
            ensure_pending(request)
            text = (comment or "").strip()
            if text:
                session.add(
                    ApprovalMessage(
                        request_id=request.id,
                        sender=MessageSender.PARENT.value,
                        author_id=acting_parent_id,
                        text=text,
                    )
                )
            claim = Claim.from_request(request)
            fulfiller = ClaimFulfiller(book)
            if status is RequestStatus.APPROVED:
                transactions = fulfiller.fulfil(claim, book.account(request.child_id))
            else:
                fulfiller.compensate(claim)
                transactions = []
            record_decision(request, status, acting_parent_id)
            session.add(request)

        self._logger.log(
            "claim_resolved",
            request=request_id,
            parent=acting_parent_id,
            status=status.value,
            transactions=[transaction.id for transaction in transactions],
        )
        if status is RequestStatus.APPROVED:
            notification_type = NotificationType.REQUEST_APPROVED
            message = f"Your {request.claim_type} request for {request.amount} points was approved."
        else:
            notification_type = NotificationType.REQUEST_DENIED
            message = f"Your {request.claim_type} request for {request.amount} points was denied."
        self._notify(request.family_id, request.child_id, notification_type, message, reference_id=request.id)
        return request

    def post_message(self, request_id: int, acting_user_id: str, text: str) -> ApprovalMessage:
        body = (text or "").strip()
        if not body:
            raise EmptyMessageError("Message text is required.")
        with open_session(self._engine) as session:
            request = session.get(ApprovalRequest, request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} does not exist.")
            author = _require_account(session, acting_user_id)
            if author.family_id != request.family_id:
                raise ForbiddenError(f"'{acting_user_id}' belongs to another family.")
            sender = MessageSender.PARENT if author.role == Role.PARENT.value else MessageSender.CHILD
            message = ApprovalMessage(
                request_id=request.id,
                sender=sender.value,
                author_id=acting_user_id,
                text=body,
            )
            request.updated_at = utcnow()
            session.add(message)
            session.add(request)
            session.commit()
            recipient = request.child_id if sender is MessageSender.PARENT else request.parent_id
            family_id = request.family_id
        self._logger.log("request_message", request=request_id, author=acting_user_id, sender=sender.value)
        self._notify(
            family_id,
            recipient,
            NotificationType.REQUEST_MESSAGE,
            f"New message from {author.name} on request {request_id}.",
            reference_id=request_id,
        )
        return message

    def get_request(self, request_id: int) -> ApprovalRequest:
        with open_session(self._engine) as session:
            request = session.get(ApprovalRequest, request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} does not exist.")
            return request

    def requests_for_child(
        self,
        child_id: str,
        *,
        acting_user_id: Optional[str] = None,
        status: RequestStatus | str | None = None,
    ) -> Sequence[ApprovalRequest]:
        with open_session(self._engine) as session:
            child = _require_account(session, child_id)
            if acting_user_id is not None:
                _ensure_can_view(_require_account(session, acting_user_id), child)
            query = select(ApprovalRequest).where(ApprovalRequest.child_id == child_id)
            if status is not None:
                query = query.where(ApprovalRequest.status == _status_value(status))
            query = query.order_by(desc(ApprovalRequest.created_at), desc(ApprovalRequest.id))
            return tuple(session.exec(query).all())

    def requests_for_family(
        self,
        acting_parent_id: str,
        *,
        status: RequestStatus | str | None = None,
    ) -> Sequence[ApprovalRequest]:
        with open_session(self._engine) as session:
            parent = _require_account(session, acting_parent_id)
            _require_parent_of(parent, parent.family_id)
            query = select(ApprovalRequest).where(ApprovalRequest.family_id == parent.family_id)
            if status is not None:
                query = query.where(ApprovalRequest.status == _status_value(status))
            query = query.order_by(desc(ApprovalRequest.created_at), desc(ApprovalRequest.id))
            return tuple(session.exec(query).all())

    def messages(self, request_id: int, *, acting_user_id: str) -> Sequence[ApprovalMessage]:
        """Return the request's thread, oldest first, to the child or a family parent or elder."""

        with open_session(self._engine) as session:
            request = session.get(ApprovalRequest, request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} does not exist.")
            reader = _require_account(session, acting_user_id)
            if reader.family_id != request.family_id:
                raise ForbiddenError(f"'{acting_user_id}' belongs to another family.")
            _ensure_can_view(reader, _require_account(session, request.child_id))
            query = (
                select(ApprovalMessage)
                .where(ApprovalMessage.request_id == request_id)
                .order_by(ApprovalMessage.timestamp, ApprovalMessage.id)
            )
            return tuple(session.exec(query).all())

    # ------------------------------------------------------------------
    # Parent tools
    # ------------------------------------------------------------------
    def record_manual_transaction(
        self,
        acting_parent_id: str,
        user_id: str,
        kind: TransactionKind | str,
        amount: AmountLike,
        from_jar: Jar | str | None = None,
        to_jar: Jar | str | None = None,
        *,
        description: str = "",
        reference: Optional[str] = None,
    ) -> Transaction:
        """Let a parent credit, debit or move points by hand."""

        transaction_kind = TransactionKind.parse(kind)
        value = require_positive(to_points(amount))
        source = Jar.parse(from_jar) if from_jar is not None else None
        target = Jar.parse(to_jar) if to_jar is not None else None
        if source is None and target is None:
            raise InvalidJarError("A manual transaction needs a source or destination jar.")
        meta = TransactionMeta(transaction_kind, description.strip(), reference=reference)
        with self._ledger.unit(user_id) as book:
            account = book.account(user_id)
            parent = book.account(acting_parent_id)
            _require_parent_of(parent, account.family_id)
            if source is not None and target is not None:
                transaction = book.transfer(account, source, target, value, meta)
            elif source is not None:
                transaction = book.debit(account, source, value, meta)
            else:
                transaction = book.credit(account, target, value, meta)
        self._logger.log(
            "manual_transaction",
            parent=acting_parent_id,
            account=user_id,
            kind=transaction_kind.value,
            amount=value,
            transaction=transaction.id,
        )
        return transaction

    def update_family_settings(
        self,
        user_id: str,
        update: SettingsUpdate,
        *,
        acting_user_id: str,
    ) -> Account:
        """Apply ``update`` to every account in the user's family.

        Children may only change their own display settings; splits,
        interest and approval rules need a parent.
        """

        update.validate()
        with open_session(self._engine) as session:
            target = _require_account(session, user_id)
            actor = _require_account(session, acting_user_id)
            family_id = target.family_id
            if actor.role == Role.PARENT.value:
                _require_parent_of(actor, family_id)
            elif actor.user_id != target.user_id:
                raise ForbiddenError(f"'{acting_user_id}' may not change settings for '{user_id}'.")
            elif update.touches_family_policy:
                raise ForbiddenError("Only a parent can change splits, interest or approval rules.")
            member_ids = [
                member.user_id
                for member in session.exec(select(Account).where(Account.family_id == family_id)).all()
            ]

        with self._ledger.unit(*member_ids) as book:
            members = book.session.exec(select(Account).where(Account.user_id.in_(member_ids))).all()
            for member in members:
                _apply_settings(member, update)
                book.session.add(member)
            updated = next(member for member in members if member.user_id == user_id)
        self._logger.log(
            "settings_updated",
            family=family_id,
            actor=acting_user_id,
            members=len(members),
            split=update.default_split.as_dict() if update.default_split is not None else None,
        )
        return updated

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def notifications(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = NOTIFICATION_PAGE_SIZE,
    ) -> Sequence[Notification]:
        with open_session(self._engine) as session:
            _require_account(session, user_id)
            query = select(Notification).where(Notification.user_id == user_id)
            if unread_only:
                query = query.where(Notification.is_read == False)  # noqa: E712
            query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
            return tuple(session.exec(query).all())

    def mark_notification_read(self, notification_id: int, *, acting_user_id: str) -> Notification:
        with open_session(self._engine) as session:
            notification = session.get(Notification, notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} does not exist.")
            if notification.user_id != acting_user_id:
                raise ForbiddenError("Notifications can only be marked read by their recipient.")
            notification.is_read = True
            session.add(notification)
            session.commit()
            return notification

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _notify(
        self,
        family_id: str,
        recipient_id: str,
        notification_type: NotificationType,
        message: str,
        *,
        reference_id: Optional[int] = None,
    ) -> None:
        event = NotificationEvent(family_id, recipient_id, notification_type, message, reference_id)
        try:
            self._notifier.notify(event)
        except Exception as exc:  # the ledger change is already committed
            self._logger.log(
                "notification_failed",
                recipient=recipient_id,
                type=notification_type.value,
                error=repr(exc),
            )

    @staticmethod
    def _check_reference(session: Session, child: Account, claim: Claim):
        """Load the chore, goal or reward a claim points at and fill in defaults."""

        if claim.claim_type not in _REFERENCES:
            claim.name = claim.name or (
                f"Move {claim.from_jar.value} to {claim.to_jar.value}"
                if claim.claim_type is ClaimType.POINTS_MOVE
                else "Points request"
            )
            return None
        model, column, label = _REFERENCES[claim.claim_type]
        entity_id = getattr(claim, column)
        if entity_id is None:
            if claim.claim_type is ClaimType.CHORE:
                claim.name = claim.name or "Chore"
                return None
            raise NotFoundError(f"A {claim.claim_type.value} claim must reference a {label.lower()}.")
        entity = session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} does not exist.")
        if entity.child_id != child.user_id:
            raise ForbiddenError(f"{label} {entity_id} belongs to another child.")
        duplicate = session.exec(
            select(ApprovalRequest).where(
                getattr(ApprovalRequest, column) == entity_id,
                ApprovalRequest.status == RequestStatus.PENDING.value,
            )
        ).first()
        if duplicate is not None:
            raise DuplicateClaimError(f"{label} {entity_id} already has pending request {duplicate.id}.")

        if isinstance(entity, Reward):
            if entity.purchased or not entity.available:
                raise InvalidTransitionError(f"Reward {entity_id} is not available.")
            claim.amount = entity.cost
        elif isinstance(entity, Chore):
            if entity.approved:
                raise InvalidTransitionError(f"Chore {entity_id} has already been approved.")
            claim.amount = entity.points
        else:
            if entity.status in (GoalStatus.COMPLETED.value, GoalStatus.EXPIRED.value):
                raise InvalidTransitionError(f"Goal {entity_id} is already {entity.status}.")
            claim.amount = entity.target_amount
        claim.name = claim.name or f"{label}: {entity.name}"
        return entity

    @staticmethod
    def _open_request(session: Session, child: Account, claim: Claim, note: Optional[str]) -> ApprovalRequest:
        request = ApprovalRequest(
            family_id=child.family_id,
            child_id=child.user_id,
            parent_id=child.parent_id,
            claim_type=claim.claim_type.value,
            name=claim.name,
            amount=claim.amount,
            from_jar=claim.from_jar.value if claim.from_jar else None,
            to_jar=claim.to_jar.value if claim.to_jar else None,
            from_balance=_snapshot(child, claim.from_jar),
            to_balance=_snapshot(child, claim.to_jar),
            reason=note,
            chore_id=claim.chore_id,
            goal_id=claim.goal_id,
            reward_id=claim.reward_id,
        )
        session.add(request)
        session.flush()
        claim.request_id = request.id
        if note:
            session.add(
                ApprovalMessage(
                    request_id=request.id,
                    sender=MessageSender.CHILD.value,
                    author_id=child.user_id,
                    text=note,
                )
            )
        return request

    @staticmethod
    def _reserve(session: Session, entity, kind: ClaimType) -> None:
        if entity is None:
            return
        now = utcnow()
        if kind is ClaimType.REWARD:
            entity.available = False
        elif kind is ClaimType.GOAL_COMPLETION:
            entity.status = GoalStatus.PENDING.value
        elif kind is ClaimType.CHORE:
            entity.completed = True
            entity.completed_at = now
        entity.updated_at = now
        session.add(entity)


def _auto_approval_message(claim: Claim) -> str:
    if claim.claim_type is ClaimType.POINTS_MOVE:
        return (
            f"Your move of {claim.amount} points from {claim.from_jar.value} "
            f"to {claim.to_jar.value} was auto-approved!"
        )
    if claim.claim_type is ClaimType.REWARD:
        return f'Your reward "{claim.name}" was auto-approved!'
    if claim.claim_type is ClaimType.GOAL_COMPLETION:
        return f'Your goal claim "{claim.name}" was auto-approved!'
    return f"Your chore claim for {claim.amount} points was auto-approved!"


__all__ = ["MoneyPots"]
