import pytest

from moneypots.models import Role
from moneypots.notifications import NotificationCenter
from moneypots.ops import StructuredLogger
from moneypots.persistence import create_db_and_tables, make_engine
from moneypots.service import MoneyPots


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'moneypots.db'}", echo=False)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def notifier() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture()
def bank(engine, notifier) -> MoneyPots:
    return MoneyPots(engine, notifier=notifier, logger=StructuredLogger())


@pytest.fixture()
def family(bank):
    """One parent with two children; Ava starts with points in current and save."""

    bank.create_account("mum", family_id="fam-1", role=Role.PARENT, name="Mum")
    bank.create_account(
        "ava",
        family_id="fam-1",
        name="Ava",
        parent_id="mum",
        starting_points={"current": 100, "save": 50},
    )
    bank.create_account("ben", family_id="fam-1", name="Ben", parent_id="mum")
    return bank
