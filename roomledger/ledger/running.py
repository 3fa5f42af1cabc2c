"""
Running Balance / Ledger Builder

Produces the cumulative balance after each record, for the audited
ledger view.

IMPORTANT: The builder never sorts. Callers pass records oldest first
(sort_chronologically does exactly that). A running balance over an
arbitrary order is meaningless.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from roomledger.ledger.balance import check_records
from roomledger.ledger.contribution import ZERO, check_parties, resolve_contribution
from roomledger.models.expense import ExpenseRecord, LedgerEntry


def _chronological_key(record: ExpenseRecord):
    return (record.expense_date, record.created_at)


def sort_chronologically(records: Iterable[ExpenseRecord]) -> list[ExpenseRecord]:
    """Oldest first: by expense_date, ties broken by created_at."""
    return sorted(records, key=_chronological_key)


def sort_for_display(records: Iterable[ExpenseRecord]) -> list[ExpenseRecord]:
    """Newest first, the order the expense list shows."""
    return sorted(records, key=_chronological_key, reverse=True)


def running_balances(
    records: Sequence[ExpenseRecord],
    party_a: str,
    party_b: str,
) -> list[Decimal]:
    """
    Cumulative balance after each record, in the given order.

    Positive values mean B owes A at that point in history. Records
    excluded from the pair repeat the previous value.
    """
    return [entry.running_balance for entry in build_ledger(records, party_a, party_b)]


def build_ledger(
    records: Sequence[ExpenseRecord],
    party_a: str,
    party_b: str,
) -> list[LedgerEntry]:
    """Pair each record with its contribution and the balance after it."""
    check_records(records)
    check_parties(party_a, party_b)

    running = ZERO
    entries = []
    for record in records:
        contribution = resolve_contribution(record, party_a, party_b)
        if contribution is not None:
            running += contribution.net
        entries.append(
            LedgerEntry(
                record=record,
                contribution=contribution,
                running_balance=running,
            )
        )
    return entries
