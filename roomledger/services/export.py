"""
CSV Export

Writes a month of expenses as a spreadsheet-friendly CSV file, one row
per record, in the order given.
"""

import csv
from collections.abc import Iterable, Mapping
from typing import Optional, TextIO

import structlog

from roomledger.errors import ExportError
from roomledger.models.expense import ExpenseRecord


logger = structlog.get_logger(__name__)

CSV_HEADERS = [
    "Date",
    "Description",
    "Category",
    "Amount",
    "Paid By",
    "Split Type",
    "Custom Amount",
    "Is Payment",
    "Notes",
]

UNKNOWN_PAYER = "Unknown"


def _payer_name(
    record: ExpenseRecord,
    display_names: Optional[Mapping[str, str]],
) -> str:
    if display_names and display_names.get(record.paid_by):
        return display_names[record.paid_by]
    return record.paid_by_name or UNKNOWN_PAYER


def export_expenses_csv(
    records: Iterable[ExpenseRecord],
    display_names: Optional[Mapping[str, str]],
    stream: TextIO,
) -> int:
    """
    Write records as CSV to an open text stream.

    Open files with newline="" so the csv module controls line endings.

    Returns:
        Number of data rows written

    Raises:
        ExportError: If there is nothing to export
    """
    records = list(records)
    if not records:
        raise ExportError("No expenses to export")

    writer = csv.writer(stream)
    writer.writerow(CSV_HEADERS)

    for record in records:
        custom = record.custom_split_amount
        writer.writerow([
            record.expense_date.isoformat(),
            record.description,
            record.category.value,
            str(record.amount),
            _payer_name(record, display_names),
            record.split_type.value,
            str(custom) if custom else "",
            "Yes" if record.is_payment else "No",
            record.notes or "",
        ])

    logger.info("expenses_exported", record_count=len(records))
    return len(records)


def export_filename(month_label: str) -> str:
    """expenses-march-2024.csv for "March 2024"."""
    return f"expenses-{month_label.strip().lower().replace(' ', '-')}.csv"
