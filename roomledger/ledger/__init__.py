"""
Balance / ledger computation engine.

Pure, synchronous functions over a snapshot of ExpenseRecords. Nothing
here touches storage, settings or the network.
"""

from roomledger.ledger.balance import (
    SETTLED_EPSILON,
    balance_from_net,
    net_balance,
    pair_totals,
)
from roomledger.ledger.contribution import resolve_contribution, split_amount
from roomledger.ledger.periods import (
    in_month,
    month_key,
    month_summary,
    monthly_aggregate,
    parse_month_key,
)
from roomledger.ledger.running import (
    build_ledger,
    running_balances,
    sort_chronologically,
    sort_for_display,
)

__all__ = [
    "SETTLED_EPSILON",
    "balance_from_net",
    "build_ledger",
    "in_month",
    "month_key",
    "month_summary",
    "monthly_aggregate",
    "net_balance",
    "pair_totals",
    "parse_month_key",
    "resolve_contribution",
    "running_balances",
    "sort_chronologically",
    "sort_for_display",
    "split_amount",
]
