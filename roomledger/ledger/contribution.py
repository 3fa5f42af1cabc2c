"""
Contribution Resolver

Decides, for a single record, how much it adds to "A owes B" and
"B owes A". Nothing is folded here; the aggregator and the ledger
builder both reuse these per-record deltas.

CRITICAL RULES:
1. A record not paid by either party is excluded.
2. Only is_payment == True (the boolean) marks a payment.
3. A payment REDUCES what the payer owed. It never adds to it.
4. A payment must name the other party as owes_user_id, or it is
   excluded as unattributed.
5. An expense whose owes_user_id names a third party is excluded.

Exclusion is returned as None. It is never an error.
"""

from decimal import Decimal
from typing import Optional

import structlog

from roomledger.errors import LedgerInputError
from roomledger.models.expense import Contribution, ExpenseRecord, SplitType


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def check_parties(party_a: str, party_b: str) -> None:
    """Fail fast on missing or identical party identifiers."""
    if not isinstance(party_a, str) or not party_a:
        raise LedgerInputError("party_a must be a non-empty identifier")
    if not isinstance(party_b, str) or not party_b:
        raise LedgerInputError("party_b must be a non-empty identifier")
    if party_a == party_b:
        raise LedgerInputError("party_a and party_b must be different parties")


def split_amount(record: ExpenseRecord) -> Decimal:
    """
    What the non-payer owes the payer for an ordinary expense.

    A custom split with no amount (or NaN) degrades to 0 instead of
    raising. Legacy rows may carry either.
    """
    if record.split_type == SplitType.FIFTY_FIFTY:
        return record.amount / 2
    if record.split_type == SplitType.ONE_OWES_ALL:
        return record.amount

    custom = record.custom_split_amount
    if custom is None or custom.is_nan():
        return ZERO
    return custom


def resolve_contribution(
    record: ExpenseRecord,
    party_a: str,
    party_b: str,
) -> Optional[Contribution]:
    """
    Resolve one record against the (party_a, party_b) pair.

    Returns:
        Contribution(a_owes_b, b_owes_a), or None when the record does
        not belong to this pair's ledger.
    """
    paid_by_a = record.paid_by == party_a
    paid_by_b = record.paid_by == party_b

    if not paid_by_a and not paid_by_b:
        logger.debug("record_excluded", record_id=record.id, reason="third_party_payer")
        return None

    if record.is_payment is True:
        counterparty = party_b if paid_by_a else party_a
        if record.owes_user_id != counterparty:
            logger.debug("record_excluded", record_id=record.id, reason="unattributed_payment")
            return None

        if paid_by_a:
            return Contribution(a_owes_b=-record.amount, b_owes_a=ZERO)
        return Contribution(a_owes_b=ZERO, b_owes_a=-record.amount)

    # owes_user_id may be None on legacy records; those still count
    if record.owes_user_id is not None and record.owes_user_id not in (party_a, party_b):
        logger.debug("record_excluded", record_id=record.id, reason="third_party_debtor")
        return None

    share = split_amount(record)
    if paid_by_a:
        return Contribution(a_owes_b=ZERO, b_owes_a=share)
    return Contribution(a_owes_b=share, b_owes_a=ZERO)
