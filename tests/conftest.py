"""Shared fixtures for RoomLedger tests."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from roomledger.config import LedgerSettings
from roomledger.models.expense import ExpenseRecord, SplitType


ALICE = "alice"
BOB = "bob"
CAROL = "carol"

_BASE_CREATED = datetime(2024, 1, 1, 12, 0, 0)
_counter = {"n": 0}


def make_record(**overrides) -> ExpenseRecord:
    """Build an ExpenseRecord with sensible defaults for tests."""
    _counter["n"] += 1
    data = {
        "description": "Groceries",
        "amount": Decimal("100"),
        "paid_by": ALICE,
        "owes_user_id": BOB,
        "split_type": SplitType.FIFTY_FIFTY,
        "expense_date": date(2024, 3, 10),
        "created_at": _BASE_CREATED + timedelta(seconds=_counter["n"]),
    }
    data.update(overrides)
    return ExpenseRecord(**data)


def make_payment(**overrides) -> ExpenseRecord:
    """Build a settlement payment (default: Bob pays Alice)."""
    data = {
        "description": "Payment",
        "is_payment": True,
        "paid_by": BOB,
        "owes_user_id": ALICE,
        "split_type": SplitType.ONE_OWES_ALL,
    }
    data.update(overrides)
    return make_record(**data)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    """Settings with defaults, independent of the environment."""
    return LedgerSettings(
        settled_epsilon=Decimal("0.01"),
        max_amount=Decimal("1000000"),
        min_expense_date=date(2000, 1, 1),
        future_date_tolerance_days=365,
        currency_code="INR",
        history_limit=50,
        corrections_limit=100,
        preferences_path="",
    )
