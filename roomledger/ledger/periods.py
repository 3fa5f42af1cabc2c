"""
Period Aggregator

Monthly spending totals for analytics and export.

Only ordinary expenses count as spending. Payments move money between
the two parties; they are not new spending.

NOTE: category totals include the full amount of an expense regardless
of its split type, even one_owes_all. This matches how the app has
always reported spending.
"""

from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal

from roomledger.ledger.balance import check_records
from roomledger.ledger.contribution import ZERO, check_parties, resolve_contribution
from roomledger.models.expense import (
    ExpenseCategory,
    ExpenseRecord,
    MonthlyAggregate,
    MonthSummary,
)


MonthPredicate = Callable[[date], bool]


def in_month(year: int, month: int) -> MonthPredicate:
    """Predicate matching dates in one calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")

    def predicate(day: date) -> bool:
        return day.year == year and day.month == month

    return predicate


def month_key(day: date) -> str:
    """YYYY-MM key for the month containing day."""
    return day.strftime("%Y-%m")


def parse_month_key(key: str) -> tuple[int, int]:
    """Inverse of month_key."""
    year, month = key.split("-")
    return int(year), int(month)


def monthly_aggregate(
    records: Sequence[ExpenseRecord],
    month_predicate: MonthPredicate,
) -> MonthlyAggregate:
    """
    Total spending, grouped by category and by payer.

    An empty month returns zero totals and empty groupings.
    """
    check_records(records)

    total = ZERO
    per_category: dict[ExpenseCategory, Decimal] = {}
    per_payer: dict[str, Decimal] = {}

    for record in records:
        if record.is_payment is not False:
            continue
        if not month_predicate(record.expense_date):
            continue

        category = record.category or ExpenseCategory.OTHER
        total += record.amount
        per_category[category] = per_category.get(category, ZERO) + record.amount
        per_payer[record.paid_by] = per_payer.get(record.paid_by, ZERO) + record.amount

    return MonthlyAggregate(
        total_spent=total,
        per_category_total=per_category,
        per_payer_total=per_payer,
    )


def month_summary(
    records: Sequence[ExpenseRecord],
    party_a: str,
    party_b: str,
    month_predicate: MonthPredicate,
) -> MonthSummary:
    """
    Header figures for one month.

    The month's net uses the same resolver as the all-time balance, so
    third-party and unattributed records are skipped here too.
    """
    check_records(records)
    check_parties(party_a, party_b)

    in_period = [r for r in records if month_predicate(r.expense_date)]
    aggregate = monthly_aggregate(in_period, month_predicate)

    total_payments = sum(
        (r.amount for r in in_period if r.is_payment is True),
        ZERO,
    )

    net = ZERO
    for record in in_period:
        contribution = resolve_contribution(record, party_a, party_b)
        if contribution is not None:
            net += contribution.net

    return MonthSummary(
        total_spent=aggregate.total_spent,
        total_payments=total_payments,
        spent_by_a=aggregate.per_payer_total.get(party_a, ZERO),
        spent_by_b=aggregate.per_payer_total.get(party_b, ZERO),
        net=net,
    )
