"""
Balance Aggregator

Folds a record list into a single net balance between two parties.

DESIGN DECISION: Both sides are accumulated separately and netted once
at the end. Each record's effect stays visible in PairTotals, so a
surprising headline figure can be traced back record by record.
"""

from collections.abc import Sequence
from decimal import Decimal

from roomledger.errors import LedgerInputError
from roomledger.ledger.contribution import ZERO, check_parties, resolve_contribution
from roomledger.models.expense import (
    BalanceDirection,
    ExpenseRecord,
    NetBalance,
    PairTotals,
)


# Below one paisa/cent the pair is considered settled
SETTLED_EPSILON = Decimal("0.01")


def check_records(records: Sequence[ExpenseRecord]) -> None:
    """Fail fast when the caller passed something other than a record list."""
    if not isinstance(records, (list, tuple)):
        raise LedgerInputError(
            f"records must be a list of ExpenseRecord, got {type(records).__name__}"
        )
    for index, record in enumerate(records):
        if not isinstance(record, ExpenseRecord):
            raise LedgerInputError(
                f"records[{index}] is {type(record).__name__}, expected ExpenseRecord"
            )


def pair_totals(
    records: Sequence[ExpenseRecord],
    party_a: str,
    party_b: str,
) -> PairTotals:
    """Accumulate "A owes B" and "B owes A" without netting them."""
    check_records(records)
    check_parties(party_a, party_b)

    a_owes_b = ZERO
    b_owes_a = ZERO
    included = 0
    excluded = 0

    for record in records:
        contribution = resolve_contribution(record, party_a, party_b)
        if contribution is None:
            excluded += 1
            continue
        a_owes_b += contribution.a_owes_b
        b_owes_a += contribution.b_owes_a
        included += 1

    return PairTotals(
        total_a_owes_b=a_owes_b,
        total_b_owes_a=b_owes_a,
        included=included,
        excluded=excluded,
    )


def balance_from_net(net: Decimal, epsilon: Decimal = SETTLED_EPSILON) -> NetBalance:
    """Turn a signed net (positive = B owes A) into amount + direction."""
    if abs(net) < epsilon:
        return NetBalance(amount=ZERO, direction=BalanceDirection.SETTLED)
    if net > 0:
        return NetBalance(amount=net, direction=BalanceDirection.B_OWES_A)
    return NetBalance(amount=-net, direction=BalanceDirection.A_OWES_B)


def net_balance(
    records: Sequence[ExpenseRecord],
    party_a: str,
    party_b: str,
    epsilon: Decimal = SETTLED_EPSILON,
) -> NetBalance:
    """
    Net balance between party_a and party_b.

    Args:
        records: Snapshot of records, in any order
        party_a: First party identifier
        party_b: Second party identifier
        epsilon: Residual below which the pair counts as settled

    Returns:
        NetBalance with a non-negative amount and a direction

    Raises:
        LedgerInputError: records is not a list/tuple of ExpenseRecord,
            or a party identifier is missing
    """
    totals = pair_totals(records, party_a, party_b)
    return balance_from_net(totals.net, epsilon)
