"""Tests for the storage layer: in-memory stores, preferences and Google Sheets rows."""

import json
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from roomledger.ledger import net_balance, sort_chronologically
from roomledger.models.audit import AuditEventBuilder
from roomledger.models.expense import (
    BalanceDirection,
    ExpenseCategory,
    RecurringConfirmation,
    RecurringTemplate,
    SplitType,
)
from roomledger.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsExpenseStore,
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    NotFoundError,
)
from roomledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    CONFIRMATION_COLUMNS,
    EXPENSE_COLUMNS,
    RECURRING_COLUMNS,
)

from conftest import ALICE, BOB, make_payment, make_record


# =============================================================================
# FAKE GOOGLE SHEETS
# =============================================================================

class FakeWorksheet:
    """Just enough of gspread.Worksheet for the store."""

    def __init__(self, headers):
        self.rows = [list(headers)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient without any network access."""

    def __init__(self):
        self.expenses = FakeWorksheet(EXPENSE_COLUMNS)
        self.recurring = FakeWorksheet(RECURRING_COLUMNS)
        self.confirmations = FakeWorksheet(CONFIRMATION_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_expenses_sheet(self):
        return self.expenses

    def get_recurring_sheet(self):
        return self.recurring

    def get_confirmations_sheet(self):
        return self.confirmations

    def get_audit_sheet(self):
        return self.audit


def make_template(**overrides) -> RecurringTemplate:
    data = {
        "description": "Rent",
        "default_amount": Decimal("15000"),
        "category": ExpenseCategory.RENT,
        "typically_paid_by": ALICE,
        "owes_user_id": BOB,
        "created_by": ALICE,
    }
    data.update(overrides)
    return RecurringTemplate(**data)


@pytest.fixture(params=["memory", "sheets"])
def store(request):
    """Every store implementation must behave the same."""
    if request.param == "memory":
        return InMemoryExpenseStore()
    return GoogleSheetsExpenseStore(FakeSheetsClient())


# =============================================================================
# EXPENSE STORE CONTRACT
# =============================================================================

class TestExpenseStore:
    """Contract tests run against both store implementations."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, store):
        """Test that a saved record reads back equal."""
        record = make_record(notes="Costco", category=ExpenseCategory.GROCERIES)
        await store.add_expense(record)
        assert await store.get_expense(record.id) == record

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Test lookup of an unknown id."""
        assert await store.get_expense("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, store):
        """Test that ids are unique."""
        record = make_record()
        await store.add_expense(record)
        with pytest.raises(DuplicateError):
            await store.add_expense(record)

    @pytest.mark.asyncio
    async def test_update(self, store):
        """Test replacing a record."""
        record = make_record()
        await store.add_expense(record)
        updated = record.model_copy(update={"amount": Decimal("42.5")})
        await store.update_expense(updated)
        assert (await store.get_expense(record.id)).amount == Decimal("42.5")

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        """Test that updating an unknown record fails."""
        with pytest.raises(NotFoundError):
            await store.update_expense(make_record())

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Test deletion and the return value."""
        record = make_record()
        await store.add_expense(record)
        assert await store.delete_expense(record.id) is True
        assert await store.delete_expense(record.id) is False
        assert await store.list_expenses() == []

    @pytest.mark.asyncio
    async def test_list_filters(self, store):
        """Test date range and group filters."""
        march = make_record(expense_date=date(2024, 3, 5), group_id="flat-1")
        april = make_record(expense_date=date(2024, 4, 5))
        await store.add_expense(march)
        await store.add_expense(april)

        in_march = await store.list_expenses(
            date_from=date(2024, 3, 1),
            date_to=date(2024, 3, 31),
        )
        assert [r.id for r in in_march] == [march.id]
        assert [r.id for r in await store.list_expenses(group_id="flat-1")] == [march.id]

    @pytest.mark.asyncio
    async def test_payment_round_trip_keeps_boolean(self, store):
        """Test that is_payment survives storage as a real boolean."""
        payment = make_payment()
        await store.add_expense(payment)
        loaded = await store.get_expense(payment.id)
        assert loaded.is_payment is True
        assert loaded.owes_user_id == ALICE

    @pytest.mark.asyncio
    async def test_subscribers_get_full_snapshot(self, store):
        """Test change notification after each mutation."""
        snapshots = []
        unsubscribe = store.subscribe(snapshots.append)

        first = make_record()
        await store.add_expense(first)
        await store.add_expense(make_record())
        await store.delete_expense(first.id)

        assert [len(s) for s in snapshots] == [1, 2, 1]

        unsubscribe()
        await store.add_expense(make_record())
        assert len(snapshots) == 3

    @pytest.mark.asyncio
    async def test_broken_listener_does_not_block_others(self, store):
        """Test that one failing listener is isolated."""
        received = []

        def broken(records):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(received.append)
        await store.add_expense(make_record())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_templates(self, store):
        """Test template CRUD and soft-delete filtering."""
        rent = make_template()
        wifi = make_template(description="internet", default_amount=Decimal("999"))
        await store.add_template(rent)
        await store.add_template(wifi)

        await store.update_template(wifi.model_copy(update={"is_active": False}))

        active = await store.list_templates()
        assert [t.id for t in active] == [rent.id]
        everything = await store.list_templates(active_only=False)
        assert [t.description for t in everything] == ["internet", "Rent"]

    @pytest.mark.asyncio
    async def test_confirmations(self, store):
        """Test confirmation storage keyed by month."""
        confirmation = RecurringConfirmation(
            recurring_expense_id="t1",
            month_key="2024-03",
            confirmed_amount=Decimal("15000"),
            confirmed_by=ALICE,
            expense_id="e1",
        )
        await store.add_confirmation(confirmation)

        assert await store.list_confirmations("2024-03") == [confirmation]
        assert await store.list_confirmations("2024-04") == []
        assert await store.get_confirmation(confirmation.id) == confirmation
        assert await store.delete_confirmation(confirmation.id) is True
        assert await store.get_confirmation(confirmation.id) is None


class TestGoogleSheetsRows:
    """Tests specific to the spreadsheet row format."""

    @pytest.mark.asyncio
    async def test_expense_row_layout(self):
        """Test the column layout of an expense row."""
        client = FakeSheetsClient()
        store = GoogleSheetsExpenseStore(client)
        record = make_record(
            split_type=SplitType.CUSTOM,
            custom_split_amount=Decimal("25"),
        )
        await store.add_expense(record)

        row = dict(zip(EXPENSE_COLUMNS, client.expenses.rows[1]))
        assert row["id"] == record.id
        assert row["is_payment"] == "FALSE"
        assert row["split_type"] == "custom"
        assert row["custom_split_amount"] == "25"
        assert row["expense_date"] == "2024-03-10"

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self):
        """Test that bad rows are skipped when listing."""
        client = FakeSheetsClient()
        store = GoogleSheetsExpenseStore(client)
        await store.add_expense(make_record())
        client.expenses.rows.append(["broken", "desc", "not-a-number"])
        client.expenses.rows.append([])

        assert len(await store.list_expenses()) == 1

    @pytest.mark.asyncio
    async def test_lowercase_true_cell_is_payment(self):
        """Test that a hand-edited 'true' cell still reads as a payment."""
        client = FakeSheetsClient()
        store = GoogleSheetsExpenseStore(client)
        payment = make_payment()
        await store.add_expense(payment)
        client.expenses.rows[1][EXPENSE_COLUMNS.index("is_payment")] = "true"

        assert (await store.get_expense(payment.id)).is_payment is True

    @pytest.mark.asyncio
    async def test_nan_custom_amount_loads_as_zero_share(self):
        """Test that a 'NaN' custom cell loads and moves no money."""
        client = FakeSheetsClient()
        store = GoogleSheetsExpenseStore(client)
        record = make_record(split_type=SplitType.CUSTOM, custom_split_amount=Decimal("25"))
        await store.add_expense(record)
        client.expenses.rows[1][EXPENSE_COLUMNS.index("custom_split_amount")] = "NaN"

        records = await store.list_expenses()

        assert [r.id for r in records] == [record.id]
        assert records[0].custom_split_amount.is_nan()
        assert net_balance(records, ALICE, BOB).direction == BalanceDirection.SETTLED

    @pytest.mark.asyncio
    async def test_offset_timestamps_normalized_to_utc(self):
        """Test that Z and +05:30 timestamps sort alongside naive ones."""
        client = FakeSheetsClient()
        store = GoogleSheetsExpenseStore(client)
        naive = make_record(created_at=datetime(2024, 1, 1, 9, 0))
        zulu = make_record()
        offset = make_record()
        for record in (naive, zulu, offset):
            await store.add_expense(record)

        created_at = EXPENSE_COLUMNS.index("created_at")
        updated_at = EXPENSE_COLUMNS.index("updated_at")
        client.expenses.rows[2][created_at] = "2024-01-01T12:00:00Z"
        client.expenses.rows[2][updated_at] = "2024-01-01T12:00:00Z"
        client.expenses.rows[3][created_at] = "2024-01-01T12:00:00+05:30"
        client.expenses.rows[3][updated_at] = "2024-01-01T12:00:00+05:30"

        records = await store.list_expenses()
        assert all(r.created_at.tzinfo is None for r in records)

        ordered = sort_chronologically(records)
        assert [r.id for r in ordered] == [offset.id, naive.id, zulu.id]
        assert ordered[0].created_at == datetime(2024, 1, 1, 6, 30)

    @pytest.mark.asyncio
    async def test_audit_storage_round_trip(self):
        """Test audit rows read back as events."""
        client = FakeSheetsClient()
        audit = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.expense_created("e1", "100", ALICE, ALICE, correlation_id=uuid4())

        assert await audit.append_event(event) is True
        assert len(client.audit.rows[1]) == len(AUDIT_COLUMNS)

        recent = await audit.get_recent_events()
        assert recent[0].event_id == event.event_id
        assert recent[0].details == {"amount": "100", "paid_by": ALICE}

        by_entity = await audit.get_events_by_entity("expense", "e1")
        assert [e.event_id for e in by_entity] == [event.event_id]

        related = await audit.get_events_by_correlation_id(event.correlation_id)
        assert [e.event_id for e in related] == [event.event_id]


# =============================================================================
# AUDIT AND PREFERENCES
# =============================================================================

class TestInMemoryAuditStorage:
    """Tests for InMemoryAuditStorage."""

    @pytest.mark.asyncio
    async def test_queries(self):
        """Test correlation and recency queries."""
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        first = AuditEventBuilder.expense_deleted("e1", ALICE, correlation_id=correlation_id)
        second = AuditEventBuilder.expense_deleted("e2", ALICE)
        await storage.append_event(first)
        await storage.append_event(second)

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.entity_id for e in related] == ["e1"]

        recent = await storage.get_recent_events(limit=1)
        assert len(recent) == 1
        assert [e.entity_id for e in await storage.get_events_by_entity("expense", "e2")] == ["e2"]


class TestPreferenceStores:
    """Tests for preference stores."""

    def test_in_memory(self):
        """Test get/set/delete."""
        prefs = InMemoryPreferenceStore({"a": "1"})
        assert prefs.get("a") == "1"
        prefs.set("b", "2")
        prefs.delete("a")
        assert prefs.get("a") is None
        assert prefs.get("b") == "2"

    def test_json_file_persists(self, tmp_path):
        """Test that values survive a new store instance."""
        path = tmp_path / "prefs" / "defaults.json"
        JsonFilePreferenceStore(str(path)).set("last", "custom")
        assert JsonFilePreferenceStore(str(path)).get("last") == "custom"
        assert json.loads(path.read_text(encoding="utf-8")) == {"last": "custom"}

    def test_json_file_missing_is_empty(self, tmp_path):
        """Test that a missing file reads as empty."""
        assert JsonFilePreferenceStore(str(tmp_path / "none.json")).get("x") is None

    def test_json_file_corrupt_is_empty(self, tmp_path):
        """Test that a corrupt file is ignored."""
        path = tmp_path / "prefs.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFilePreferenceStore(str(path))
        assert store.get("x") is None
        store.set("x", "1")
        assert store.get("x") == "1"
