import threading
from datetime import datetime

import pytest
from sqlmodel import select

from moneypots.exceptions import (
    DuplicateAccountError,
    DuplicateClaimError,
    EmptyMessageError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidJarError,
    InvalidSettingError,
    InvalidTransitionError,
    NotFoundError,
)
from moneypots.models import (
    AutoApprovalRules,
    ClaimType,
    GoalStatus,
    InterestRule,
    Jar,
    RequestStatus,
    Role,
    SettingsUpdate,
    TransactionKind,
)
from moneypots.notifications import NotificationType, Notifier
from moneypots.ops import StructuredLogger
from moneypots.persistence import ApprovalMessage, Chore, Goal, Reward, Transaction, open_session
from moneypots.service import MoneyPots
from moneypots.splits import SplitConfig


def _reload(engine, model, entity_id):
    with open_session(engine) as session:
        return session.get(model, entity_id)


def _enable_rules(bank: MoneyPots, **limits) -> None:
    update = SettingsUpdate(auto_approval_rules=AutoApprovalRules(**limits))
    bank.update_family_settings("mum", update, acting_user_id="mum")


def test_create_and_lookup_accounts(family) -> None:
    ava = family.get_account("ava")

    assert ava.parent_id == "mum"
    assert family.balances("ava") == {Jar.CURRENT: 100, Jar.SAVE: 50, Jar.SPEND: 0, Jar.DONATE: 0, Jar.INVEST: 0}
    opening = family.transactions("ava")
    assert {item.kind for item in opening} == {TransactionKind.PARENT_ADJUSTMENT.value}
    assert {item.description for item in opening} == {"Starting balance"}

    with pytest.raises(DuplicateAccountError):
        family.create_account("ava", family_id="fam-1")
    with pytest.raises(NotFoundError):
        family.get_account("nobody")


def test_new_members_inherit_family_settings(family) -> None:
    _enable_rules(family, chore_claim_max=15)

    cleo = family.create_account("cleo", family_id="fam-1", parent_id="mum")

    assert cleo.chore_claim_max == 15


def test_child_cannot_be_linked_to_another_familys_parent(family) -> None:
    family.create_account("dad", family_id="fam-2", role=Role.PARENT)

    with pytest.raises(ForbiddenError):
        family.create_account("zoe", family_id="fam-1", parent_id="dad")


def test_chore_claim_waits_for_parent_then_splits_points(family, engine, notifier) -> None:
    chore = family.add_chore("mum", "ava", name="Dishes", points=20)

    result = family.submit_claim("ava", ClaimType.CHORE, chore_id=chore.id, note="All done!")

    assert not result.auto_approved
    request = result.request
    assert request.status == RequestStatus.PENDING.value
    assert request.amount == 20
    assert _reload(engine, Chore, chore.id).completed
    assert [message.text for message in family.messages(request.id, acting_user_id="mum")] == ["All done!"]
    submitted = notifier.pending(notification_type=NotificationType.REQUEST_SUBMITTED, recipient_id="mum")
    assert [event.reference_id for event in submitted] == [request.id]

    resolved = family.resolve_claim(request.id, "mum", "Approved", comment="Great job")

    assert resolved.status == RequestStatus.APPROVED.value
    assert resolved.acted_by == "mum"
    assert family.balances("ava") == {Jar.CURRENT: 108, Jar.SAVE: 56, Jar.SPEND: 3, Jar.DONATE: 2, Jar.INVEST: 1}
    assert _reload(engine, Chore, chore.id).approved
    assert [message.sender for message in family.messages(request.id, acting_user_id="mum")] == ["child", "parent"]
    approved = notifier.pending(notification_type=NotificationType.REQUEST_APPROVED, recipient_id="ava")
    assert len(approved) == 1


def test_chore_with_custom_split(family) -> None:
    chore = family.add_chore("mum", "ava", name="Garden", points=10, custom_split={"donate": 50, "invest": 50})
    request = family.submit_claim("ava", "chore", chore_id=chore.id).request

    family.resolve_claim(request.id, "mum", "Approved")

    balances = family.balances("ava")
    assert balances[Jar.DONATE] == 5
    assert balances[Jar.INVEST] == 5
    assert balances[Jar.CURRENT] == 100


def test_chore_auto_approval_boundary(family, notifier) -> None:
    _enable_rules(family, chore_claim_max=20)
    at_limit = family.add_chore("mum", "ava", name="Bed", points=20)
    over_limit = family.add_chore("mum", "ava", name="Car", points=21)

    approved = family.submit_claim("ava", "chore", chore_id=at_limit.id)
    pending = family.submit_claim("ava", "chore", chore_id=over_limit.id)

    assert approved.auto_approved
    assert approved.request is None
    assert sum(item.amount for item in approved.transactions) == 20
    assert not pending.auto_approved
    assert pending.request.status == RequestStatus.PENDING.value
    assert len(notifier.pending(notification_type=NotificationType.CHORE_AUTO_APPROVED, recipient_id="ava")) == 1


def test_resolving_twice_fails_and_leaves_balances(family) -> None:
    request = family.submit_claim("ava", "points", 15, note="Birthday").request
    family.resolve_claim(request.id, "mum", "Approved")
    before = family.balances("ava")

    with pytest.raises(InvalidTransitionError):
        family.resolve_claim(request.id, "mum", "Approved")
    with pytest.raises(InvalidTransitionError):
        family.resolve_claim(request.id, "mum", "Denied")

    assert family.balances("ava") == before
    assert before[Jar.CURRENT] == 115


def test_pending_is_not_a_decision(family) -> None:
    request = family.submit_claim("ava", "points", 5).request

    with pytest.raises(InvalidTransitionError):
        family.resolve_claim(request.id, "mum", "Pending")


def test_only_a_parent_of_the_family_can_resolve(family) -> None:
    family.create_account("dad", family_id="fam-2", role=Role.PARENT)
    request = family.submit_claim("ava", "points", 5).request

    with pytest.raises(ForbiddenError):
        family.resolve_claim(request.id, "ben", "Approved")
    with pytest.raises(ForbiddenError):
        family.resolve_claim(request.id, "dad", "Approved")
    with pytest.raises(NotFoundError):
        family.resolve_claim(9999, "mum", "Approved")

    assert family.get_request(request.id).status == RequestStatus.PENDING.value


def test_reward_claim_reserves_and_denial_releases(family, engine) -> None:
    reward = family.add_reward("mum", "ava", name="Cinema", cost=30)

    request = family.submit_claim("ava", ClaimType.REWARD, reward_id=reward.id).request
    assert request.amount == 30
    assert not _reload(engine, Reward, reward.id).available

    family.resolve_claim(request.id, "mum", "Denied", comment="Not this week")

    released = _reload(engine, Reward, reward.id)
    assert released.available
    assert not released.purchased
    assert family.balances("ava")[Jar.CURRENT] == 100


def test_reward_approval_buys_the_reward(family, engine) -> None:
    reward = family.add_reward("mum", "ava", name="Comic", cost=30, category="item")
    request = family.submit_claim("ava", "reward", reward_id=reward.id).request

    family.resolve_claim(request.id, "mum", "Approved")

    bought = _reload(engine, Reward, reward.id)
    assert bought.purchased
    assert not bought.available
    assert bought.purchased_at is not None
    assert family.balances("ava")[Jar.CURRENT] == 70
    with pytest.raises(InvalidTransitionError):
        family.submit_claim("ava", "reward", reward_id=reward.id)


def test_reward_claim_requires_enough_current_points(family, engine) -> None:
    reward = family.add_reward("mum", "ava", name="Console", cost=500)

    with pytest.raises(InsufficientFundsError):
        family.submit_claim("ava", "reward", reward_id=reward.id)

    assert _reload(engine, Reward, reward.id).available
    assert family.requests_for_child("ava") == ()


def test_goal_completion_debits_goal_jar(family, engine) -> None:
    goal = family.add_goal("mum", "ava", name="Bike", target_amount=40)
    request = family.submit_claim("ava", ClaimType.GOAL_COMPLETION, goal_id=goal.id).request
    assert _reload(engine, Goal, goal.id).status == GoalStatus.PENDING.value

    family.resolve_claim(request.id, "mum", "Approved")

    completed = _reload(engine, Goal, goal.id)
    assert completed.status == GoalStatus.COMPLETED.value
    assert completed.completed
    assert family.balances("ava")[Jar.SAVE] == 10


def test_denied_goal_returns_to_active(family, engine) -> None:
    goal = family.add_goal("mum", "ava", name="Kite", target_amount=10)
    request = family.submit_claim("ava", "goal-completion", goal_id=goal.id).request

    family.resolve_claim(request.id, "mum", "Denied")

    assert _reload(engine, Goal, goal.id).status == GoalStatus.ACTIVE.value
    assert family.balances("ava")[Jar.SAVE] == 50


def test_denying_a_points_move_has_no_side_effects(family, engine) -> None:
    reward = family.add_reward("mum", "ava", name="Zoo", cost=10)
    request = family.submit_claim("ava", "points-move", 20, from_jar="save", to_jar="spend").request

    family.resolve_claim(request.id, "mum", "Denied")

    assert family.get_request(request.id).status == RequestStatus.DENIED.value
    assert family.balances("ava")[Jar.SAVE] == 50
    assert _reload(engine, Reward, reward.id).available


def test_points_move_approval_is_atomic_with_the_transfer(family) -> None:
    request = family.submit_claim("ava", "move-points", 50, from_jar="save", to_jar="spend").request
    assert (request.from_balance, request.to_balance) == (50, 0)
    family.record_manual_transaction("mum", "ava", "withdrawal", 10, from_jar="save")

    with pytest.raises(InsufficientFundsError):
        family.resolve_claim(request.id, "mum", "Approved")

    assert family.get_request(request.id).status == RequestStatus.PENDING.value
    balances = family.balances("ava")
    assert balances[Jar.SAVE] == 40
    assert balances[Jar.SPEND] == 0


def test_points_move_over_balance_falls_back_to_a_request(family) -> None:
    _enable_rules(family, point_move_max=100)

    quick = family.submit_claim("ava", "points-move", 20, from_jar="save", to_jar="invest")
    short = family.submit_claim("ava", "points-move", 60, from_jar="save", to_jar="invest")

    assert quick.auto_approved
    assert family.balances("ava")[Jar.INVEST] == 20
    assert not short.auto_approved
    assert short.request.status == RequestStatus.PENDING.value


def test_points_move_needs_two_different_jars(family) -> None:
    with pytest.raises(InvalidJarError):
        family.submit_claim("ava", "points-move", 5, from_jar="save")
    with pytest.raises(InvalidJarError):
        family.submit_claim("ava", "points-move", 5, from_jar="save", to_jar="piggy")
    with pytest.raises(ValueError):
        family.submit_claim("ava", "points-move", 5, from_jar="save", to_jar="save")


def test_claim_references_are_checked_at_submission(family) -> None:
    bens_chore = family.add_chore("mum", "ben", name="Feed cat", points=5)
    avas_chore = family.add_chore("mum", "ava", name="Feed dog", points=5)

    with pytest.raises(NotFoundError):
        family.submit_claim("ava", "chore", chore_id=9999)
    with pytest.raises(ForbiddenError):
        family.submit_claim("ava", "chore", chore_id=bens_chore.id)
    with pytest.raises(NotFoundError):
        family.submit_claim("ava", "reward")

    family.submit_claim("ava", "chore", chore_id=avas_chore.id)
    with pytest.raises(DuplicateClaimError):
        family.submit_claim("ava", "chore", chore_id=avas_chore.id)


def test_parents_cannot_submit_claims(family) -> None:
    with pytest.raises(ForbiddenError):
        family.submit_claim("mum", "points", 5)


def test_messages_notify_the_counterparty(family, notifier) -> None:
    request = family.submit_claim("ava", "points", 10).request

    family.post_message(request.id, "mum", "What is this for?")
    family.post_message(request.id, "ava", "  School trip  ")

    thread = family.messages(request.id, acting_user_id="ava")
    assert [(message.sender, message.text) for message in thread] == [
        ("parent", "What is this for?"),
        ("child", "School trip"),
    ]
    to_ava = notifier.pending(notification_type=NotificationType.REQUEST_MESSAGE, recipient_id="ava")
    to_mum = notifier.pending(notification_type=NotificationType.REQUEST_MESSAGE, recipient_id="mum")
    assert len(to_ava) == 1
    assert len(to_mum) == 1
    with pytest.raises(EmptyMessageError):
        family.post_message(request.id, "ava", "   ")


def test_messages_stay_inside_the_family(family) -> None:
    family.create_account("dad", family_id="fam-2", role=Role.PARENT)
    request = family.submit_claim("ava", "points", 10).request

    with pytest.raises(ForbiddenError):
        family.post_message(request.id, "dad", "Hello")


def test_manual_transactions_are_parent_only_and_need_a_jar(family) -> None:
    credit = family.record_manual_transaction("mum", "ben", "parent-points-adjustment", 12, to_jar="donate")
    assert credit.kind == TransactionKind.PARENT_ADJUSTMENT.value
    assert family.balances("ben")[Jar.DONATE] == 12

    moved = family.record_manual_transaction("mum", "ben", "points-move", 2, from_jar="donate", to_jar="save")
    assert moved.signed_amount() == 0

    with pytest.raises(ForbiddenError):
        family.record_manual_transaction("ava", "ben", "withdrawal", 1, from_jar="donate")
    with pytest.raises(InvalidJarError):
        family.record_manual_transaction("mum", "ben", "withdrawal", 1)
    with pytest.raises(InvalidSettingError):
        family.record_manual_transaction("mum", "ben", "gift", 1, to_jar="save")


def test_invalid_split_leaves_settings_unchanged(family) -> None:
    before = family.get_account("ava").default_split()
    bad = SettingsUpdate(default_split=SplitConfig(current=40, save=30, spend=15, donate=10, invest=4))

    with pytest.raises(ValueError):
        family.update_family_settings("mum", bad, acting_user_id="mum")

    assert family.get_account("ava").default_split() == before
    assert before.as_dict() == {"current": 40, "save": 30, "spend": 15, "donate": 10, "invest": 5}


def test_settings_fan_out_to_the_whole_family(family) -> None:
    split = SplitConfig(current=50, save=50)
    updated = family.update_family_settings(
        "mum",
        SettingsUpdate(default_split=split, currency="inr", conversion_rate=2),
        acting_user_id="mum",
    )

    assert updated.user_id == "mum"
    for user_id in ("mum", "ava", "ben"):
        account = family.get_account(user_id)
        assert account.default_split() == split
        assert account.currency == "inr"
        assert account.conversion_rate == 2


def test_settings_validation_and_permissions(family) -> None:
    family.create_account("dad", family_id="fam-2", role=Role.PARENT)

    with pytest.raises(InvalidSettingError):
        family.update_family_settings("mum", SettingsUpdate(conversion_rate=0.05), acting_user_id="mum")
    with pytest.raises(InvalidSettingError):
        family.update_family_settings("mum", SettingsUpdate(currency="usd"), acting_user_id="mum")
    with pytest.raises(InvalidSettingError):
        _enable_rules(family, chore_claim_max=-1)
    with pytest.raises(ForbiddenError):
        family.update_family_settings("ava", SettingsUpdate(currency="inr"), acting_user_id="dad")
    with pytest.raises(ForbiddenError):
        family.update_family_settings("ben", SettingsUpdate(currency="inr"), acting_user_id="ava")
    with pytest.raises(ForbiddenError):
        family.update_family_settings(
            "ava",
            SettingsUpdate(auto_approval_rules=AutoApprovalRules(chore_claim_max=1000)),
            acting_user_id="ava",
        )

    display = family.update_family_settings("ava", SettingsUpdate(show_denominations=True), acting_user_id="ava")
    assert display.show_denominations


def test_ledger_stays_consistent_across_workflows(family) -> None:
    _enable_rules(family, chore_claim_max=10, point_move_max=30)
    quick = family.add_chore("mum", "ava", name="Sweep", points=7)
    slow = family.add_chore("mum", "ava", name="Paint", points=33)
    reward = family.add_reward("mum", "ava", name="Park", cost=25)

    family.submit_claim("ava", "chore", chore_id=quick.id)
    family.resolve_claim(family.submit_claim("ava", "chore", chore_id=slow.id).request.id, "mum", "Approved")
    family.submit_claim("ava", "points-move", 30, from_jar="save", to_jar="donate")
    family.resolve_claim(family.submit_claim("ava", "reward", reward_id=reward.id).request.id, "mum", "Approved")
    family.record_manual_transaction("mum", "ava", "withdrawal", 5, from_jar="spend")

    for user_id in ("mum", "ava", "ben"):
        assert family.reconcile(user_id) == {}
    account = family.get_account("ava")
    assert account.total_points() == sum(item.signed_amount() for item in family.transactions("ava"))
    assert all(amount >= 0 for amount in account.jar_balances().values())


def test_notification_failures_are_logged_not_raised(engine) -> None:
    class BrokenNotifier(Notifier):
        def notify(self, event) -> None:
            raise RuntimeError("mail server down")

    logger = StructuredLogger()
    bank = MoneyPots(engine, notifier=BrokenNotifier(), logger=logger)
    bank.create_account("mum", family_id="fam-1", role="parent")
    bank.create_account("ava", family_id="fam-1", parent_id="mum")

    result = bank.submit_claim("ava", "points", 3)

    assert bank.get_request(result.request.id).status == RequestStatus.PENDING.value
    failures = logger.events("notification_failed")
    assert len(failures) == 1
    assert failures[0]["recipient"] == "mum"


def test_database_notifications_can_be_listed_and_read(engine) -> None:
    bank = MoneyPots(engine, logger=StructuredLogger())
    bank.create_account("mum", family_id="fam-1", role="parent")
    bank.create_account("ava", family_id="fam-1", parent_id="mum")
    request = bank.submit_claim("ava", "points", 3).request

    inbox = bank.notifications("mum")
    assert [item.type for item in inbox] == [NotificationType.REQUEST_SUBMITTED.value]
    assert inbox[0].reference_id == request.id

    with pytest.raises(ForbiddenError):
        bank.mark_notification_read(inbox[0].id, acting_user_id="ava")
    read = bank.mark_notification_read(inbox[0].id, acting_user_id="mum")
    assert read.is_read
    assert bank.notifications("mum", unread_only=True) == ()


def test_request_listings(family) -> None:
    first = family.submit_claim("ava", "points", 1).request
    second = family.submit_claim("ben", "points", 2).request
    family.resolve_claim(first.id, "mum", "Denied")

    assert [item.id for item in family.requests_for_family("mum")] == [second.id, first.id]
    assert [item.id for item in family.requests_for_family("mum", status="pending")] == [second.id]
    assert [item.id for item in family.requests_for_child("ava", acting_user_id="ava")] == [first.id]
    with pytest.raises(ForbiddenError):
        family.requests_for_child("ava", acting_user_id="ben")
    with pytest.raises(ForbiddenError):
        family.requests_for_family("ava")
    with pytest.raises(InvalidSettingError):
        family.requests_for_family("mum", status="lost")


def test_transactions_visibility(family) -> None:
    assert len(family.transactions("ava", acting_user_id="mum")) == 2
    with pytest.raises(ForbiddenError):
        family.transactions("ava", acting_user_id="ben")


def test_statement_lists_jars_and_recent_activity(family) -> None:
    statement = family.statement("ava")

    assert "Account holder: Ava" in statement
    assert "Current: 100 points" in statement
    assert "Total: 150 points" in statement
    assert "Parent Adjustment: 50 points - Starting balance" in statement

    family.update_family_settings("ava", SettingsUpdate(currency="inr", conversion_rate=2), acting_user_id="ava")
    assert "Current: ₹200.00" in family.statement("ava")


def test_erase_account_removes_everything(family, engine) -> None:
    chore = family.add_chore("mum", "ava", name="Tidy", points=4)
    family.submit_claim("ava", "chore", chore_id=chore.id, note="done")

    with pytest.raises(ForbiddenError):
        family.erase_account("ava", acting_user_id="ben")
    family.erase_account("ava", acting_user_id="mum")

    with pytest.raises(NotFoundError):
        family.get_account("ava")
    assert family.requests_for_family("mum") == ()
    with open_session(engine) as session:
        assert session.exec(select(Transaction).where(Transaction.account_id == "ava")).all() == []
        assert session.get(Chore, chore.id) is None


def test_erasing_a_parent_with_children_is_refused(family) -> None:
    with pytest.raises(ForbiddenError):
        family.erase_account("mum", acting_user_id="mum")

    assert family.get_account("mum").role == Role.PARENT.value
    assert family.get_account("ava").parent_id == "mum"


def test_erasing_a_member_removes_their_messages_on_other_threads(family, engine) -> None:
    family.create_account("dad", family_id="fam-1", role=Role.PARENT)
    request = family.submit_claim("ava", "points", 10, note="Please").request
    family.post_message(request.id, "dad", "Ask mum")

    family.erase_account("dad", acting_user_id="mum")

    thread = family.messages(request.id, acting_user_id="mum")
    assert [message.author_id for message in thread] == ["ava"]
    with open_session(engine) as session:
        assert session.exec(select(ApprovalMessage).where(ApprovalMessage.author_id == "dad")).all() == []


def test_parent_can_be_erased_once_children_are_gone(family) -> None:
    family.erase_account("ava", acting_user_id="mum")
    family.erase_account("ben", acting_user_id="mum")

    family.erase_account("mum", acting_user_id="mum")

    assert family.family_members("fam-1") == ()


def test_request_threads_are_private_to_the_family(family) -> None:
    family.create_account("dad", family_id="fam-2", role=Role.PARENT)
    request = family.submit_claim("ava", "points", 10, note="For the fair").request

    with pytest.raises(ForbiddenError):
        family.messages(request.id, acting_user_id="dad")
    with pytest.raises(ForbiddenError):
        family.messages(request.id, acting_user_id="ben")
    with pytest.raises(NotFoundError):
        family.messages(9999, acting_user_id="mum")
    assert [message.text for message in family.messages(request.id, acting_user_id="ava")] == ["For the fair"]


def test_reward_auto_approval_buys_immediately(family, engine, notifier) -> None:
    _enable_rules(family, reward_claim_max=50)
    reward = family.add_reward("mum", "ava", name="Ice cream", cost=30)

    result = family.submit_claim("ava", "reward", reward_id=reward.id)

    assert result.auto_approved
    assert result.request is None
    bought = _reload(engine, Reward, reward.id)
    assert bought.purchased
    assert not bought.available
    assert family.balances("ava")[Jar.CURRENT] == 70
    assert family.requests_for_child("ava") == ()
    assert len(notifier.pending(notification_type=NotificationType.REWARD_AUTO_APPROVED, recipient_id="ava")) == 1


def test_goal_auto_approval_completes_the_goal(family, engine, notifier) -> None:
    _enable_rules(family, reward_claim_max=50)
    goal = family.add_goal("mum", "ava", name="Book", target_amount=40)

    result = family.submit_claim("ava", "goal-completion", goal_id=goal.id)

    assert result.auto_approved
    assert result.request is None
    assert [(item.from_jar, item.amount) for item in result.transactions] == [("save", 40)]
    completed = _reload(engine, Goal, goal.id)
    assert completed.status == GoalStatus.COMPLETED.value
    assert completed.completed
    assert family.balances("ava")[Jar.SAVE] == 10
    assert len(notifier.pending(notification_type=NotificationType.GOAL_AUTO_APPROVED, recipient_id="ava")) == 1


def test_goal_auto_claim_from_a_short_jar_changes_nothing(family, engine) -> None:
    _enable_rules(family, reward_claim_max=100)
    goal = family.add_goal("mum", "ava", name="Skates", target_amount=80)
    before = family.balances("ava")

    with pytest.raises(InsufficientFundsError):
        family.submit_claim("ava", "goal-completion", goal_id=goal.id)

    assert _reload(engine, Goal, goal.id).status == GoalStatus.ACTIVE.value
    assert family.requests_for_child("ava") == ()
    assert family.balances("ava") == before
    assert len(family.transactions("ava")) == 2


def test_expired_goals_cannot_be_claimed(family, engine) -> None:
    goal = family.add_goal("mum", "ava", name="Camp", target_amount=10)
    with open_session(engine) as session:
        stored = session.get(Goal, goal.id)
        stored.status = GoalStatus.EXPIRED.value
        session.add(stored)
        session.commit()

    with pytest.raises(InvalidTransitionError):
        family.submit_claim("ava", "goal-completion", goal_id=goal.id)


def test_concurrent_decisions_fulfil_a_request_once(family) -> None:
    request = family.submit_claim("ava", "points", 15).request
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    guard = threading.Lock()

    def decide() -> None:
        barrier.wait()
        try:
            family.resolve_claim(request.id, "mum", "Approved")
            result = "approved"
        except InvalidTransitionError:
            result = "already-decided"
        with guard:
            outcomes.append(result)

    threads = [threading.Thread(target=decide) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["already-decided", "approved"]
    assert family.balances("ava")[Jar.CURRENT] == 115
    assert family.reconcile("ava") == {}


def test_chore_claims_always_pay_the_chore_points(family) -> None:
    chore = family.add_chore("mum", "ava", name="Recycling", points=20)

    request = family.submit_claim("ava", "chore", 500, chore_id=chore.id).request

    assert request.amount == 20
    family.resolve_claim(request.id, "mum", "Approved")
    assert family.get_account("ava").total_points() == 170


def test_unknown_role_is_a_setting_error(bank) -> None:
    with pytest.raises(InvalidSettingError):
        bank.create_account("zed", family_id="fam-1", role="wizard")

    assert bank.family_members("fam-1") == ()


def test_elders_can_read_family_records_but_not_decide(family) -> None:
    family.create_account("nan", family_id="fam-1", role="elder", name="Nan")
    request = family.submit_claim("ava", "points", 5, note="Pocket money").request

    assert len(family.transactions("ava", acting_user_id="nan")) == 2
    assert [item.id for item in family.requests_for_child("ava", acting_user_id="nan")] == [request.id]
    assert [message.text for message in family.messages(request.id, acting_user_id="nan")] == ["Pocket money"]
    with pytest.raises(ForbiddenError):
        family.resolve_claim(request.id, "nan", "Approved")
    with pytest.raises(ForbiddenError):
        family.submit_claim("nan", "points", 5)


def test_stored_timestamps_carry_utc(family) -> None:
    chore = family.add_chore("mum", "ava", name="Lawn", points=3, deadline=datetime(2030, 6, 1, 18, 0))
    transaction = family.record_manual_transaction("mum", "ava", "parent-adjustment", 1, to_jar="save")

    assert chore.deadline.tzinfo is not None
    assert chore.deadline.hour == 18
    assert transaction.created_at.tzinfo is not None
    assert family.get_account("ava").created_at is not None


def test_statement_shows_the_interest_rule(family) -> None:
    assert "Interest:" not in family.statement("ava")

    family.update_family_settings(
        "mum",
        SettingsUpdate(interest_rule=InterestRule(rate=2.5, frequency="weekly", jar=Jar.INVEST)),
        acting_user_id="mum",
    )

    assert "Interest: 2.5% weekly on invest" in family.statement("ava")
