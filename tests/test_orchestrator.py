"""Tests for the orchestrator: recording flows, snapshots, export and the live view."""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest

from roomledger.audit import AuditLogger
from roomledger.errors import ExpenseValidationError, ExportError, LedgerInputError
from roomledger.models.audit import AuditEventType
from roomledger.models.expense import BalanceDirection, ExpenseCategory
from roomledger.orchestrator import (
    GENERIC_ERROR_MESSAGE,
    AppComponents,
    LedgerService,
    LedgerView,
    create_ledger_service,
    safe_error_message,
)
from roomledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    NotFoundError,
    StorageError,
)

from conftest import ALICE, BOB, make_record


def expense_data(**overrides):
    data = {
        "description": "Groceries",
        "amount": "100",
        "paid_by": ALICE,
        "owes_user_id": BOB,
        "split_type": "fifty_fifty",
        "category": "groceries",
        "expense_date": "2024-03-10",
    }
    data.update(overrides)
    return data


class FailingStore(InMemoryExpenseStore):
    """Store whose writes always fail."""

    async def add_expense(self, record):
        raise StorageError("Sheets API quota exceeded")


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def store():
    return InMemoryExpenseStore()


@pytest.fixture
def service(store, audit_storage, ledger_settings):
    return LedgerService(
        store,
        ALICE,
        BOB,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
    )


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestLedgerServiceWrites:
    """Tests for recording, editing and deleting."""

    def test_identical_parties_rejected(self, store, ledger_settings):
        """Test that the two parties must differ."""
        with pytest.raises(LedgerInputError):
            LedgerService(store, ALICE, ALICE, settings=ledger_settings)

    @pytest.mark.asyncio
    async def test_add_expense(self, service, audit_storage):
        """Test the add flow end to end."""
        record = await service.add_expense(expense_data(), actor_id=ALICE)

        assert record.amount == Decimal("100")
        assert record.category == ExpenseCategory.GROCERIES
        balance = await service.balance()
        assert balance.direction == BalanceDirection.B_OWES_A
        assert balance.amount == Decimal("50")

        created = audit_storage.events[-1]
        assert created.event_type == AuditEventType.EXPENSE_CREATED
        assert created.entity_id == record.id
        assert created.actor_id == ALICE

    @pytest.mark.asyncio
    async def test_invalid_expense_not_saved(self, service, store, audit_storage):
        """Test that rejected input never reaches the store."""
        with pytest.raises(ExpenseValidationError) as exc_info:
            await service.add_expense(expense_data(amount="0"), actor_id=ALICE)

        assert exc_info.value.field == "amount"
        assert await store.list_expenses() == []
        assert event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_payment_settles_balance(self, service, audit_storage):
        """Test that a payment of the owed amount settles up."""
        await service.add_expense(expense_data(), actor_id=ALICE)
        payment = await service.add_payment({
            "amount": "50",
            "paid_by": BOB,
            "owes_user_id": ALICE,
            "expense_date": "2024-03-12",
        }, actor_id=BOB)

        assert payment.is_payment is True
        assert payment.description == "Payment"
        assert (await service.balance()).is_settled
        assert audit_storage.events[-1].event_type == AuditEventType.PAYMENT_RECORDED

    @pytest.mark.asyncio
    async def test_edit_expense(self, service, audit_storage):
        """Test that an edit is saved and the balance recomputed."""
        record = await service.add_expense(expense_data(), actor_id=ALICE)
        updated = await service.edit_expense(record.id, {"amount": "80"}, actor_id=BOB)

        assert updated.amount == Decimal("80")
        assert updated.paid_by == ALICE
        assert updated.created_at == record.created_at
        assert (await service.balance()).amount == Decimal("40")

        edited = audit_storage.events[-1]
        assert edited.event_type == AuditEventType.EXPENSE_UPDATED
        assert "amount" in edited.details["changed_fields"]

    @pytest.mark.asyncio
    async def test_edit_payer_rejected(self, service):
        """Test that the payer cannot be changed by an edit."""
        record = await service.add_expense(expense_data(), actor_id=ALICE)
        with pytest.raises(ExpenseValidationError):
            await service.edit_expense(record.id, {"paid_by": BOB}, actor_id=ALICE)

    @pytest.mark.asyncio
    async def test_edit_missing_record(self, service):
        """Test editing an unknown record."""
        with pytest.raises(NotFoundError):
            await service.edit_expense("missing", {"amount": "10"}, actor_id=ALICE)

    @pytest.mark.asyncio
    async def test_delete_expense(self, service, audit_storage):
        """Test that deleting drops the record from the balance."""
        record = await service.add_expense(expense_data(), actor_id=ALICE)

        assert await service.delete_expense(record.id, actor_id=ALICE) is True
        assert (await service.balance()).is_settled
        assert audit_storage.events[-1].event_type == AuditEventType.EXPENSE_DELETED

        assert await service.delete_expense(record.id, actor_id=ALICE) is False

    @pytest.mark.asyncio
    async def test_storage_error_audited_and_raised(self, audit_storage, ledger_settings):
        """Test that store failures are audited and propagate."""
        service = LedgerService(
            FailingStore(),
            ALICE,
            BOB,
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
        )
        with pytest.raises(StorageError):
            await service.add_expense(expense_data(), actor_id=ALICE)

        assert event_types(audit_storage) == [AuditEventType.STORAGE_ERROR]

    @pytest.mark.asyncio
    async def test_unexpected_error_audited_and_raised(self, store, audit_storage, ledger_settings):
        """Test that non-storage failures are audited as system errors."""
        async def broken_delete(expense_id):
            raise RuntimeError("unexpected")

        store.delete_expense = broken_delete
        service = LedgerService(
            store,
            ALICE,
            BOB,
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
        )
        with pytest.raises(RuntimeError):
            await service.delete_expense("e1", actor_id=ALICE)

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.details == {"operation": "delete_expense"}


class TestLedgerServiceReads:
    """Tests for snapshots and export."""

    @pytest.mark.asyncio
    async def test_snapshot(self, service):
        """Test that the month views cover only the month."""
        await service.add_expense(expense_data(), actor_id=ALICE)
        await service.add_expense(
            expense_data(description="Rent", amount="300", category="rent", expense_date="2024-03-01"),
            actor_id=ALICE,
        )
        await service.add_expense(
            expense_data(paid_by=BOB, owes_user_id=ALICE, expense_date="2024-04-02"),
            actor_id=BOB,
        )

        snapshot = await service.snapshot("2024-03")

        assert snapshot.month_key == "2024-03"
        assert len(snapshot.ledger) == 3
        assert [r.description for r in snapshot.month_expenses] == ["Groceries", "Rent"]
        assert snapshot.month_summary.total_spent == Decimal("400")
        assert snapshot.category_breakdown[0].category == ExpenseCategory.RENT
        # 50 + 150 owed to Alice, 50 owed to Bob
        assert snapshot.balance.amount == Decimal("150")
        assert snapshot.balance.direction == BalanceDirection.B_OWES_A

    @pytest.mark.asyncio
    async def test_empty_snapshot(self, service):
        """Test a month with no records."""
        snapshot = await service.snapshot("2024-03")
        assert snapshot.balance.is_settled
        assert snapshot.month_expenses == []
        assert snapshot.category_breakdown == []

    @pytest.mark.asyncio
    async def test_export_month(self, service, audit_storage):
        """Test CSV export of one month, newest first."""
        await service.add_expense(expense_data(description="Early", expense_date="2024-03-01"), actor_id=ALICE)
        await service.add_expense(expense_data(description="Late", expense_date="2024-03-20"), actor_id=ALICE)
        await service.add_expense(expense_data(description="April", expense_date="2024-04-01"), actor_id=ALICE)

        stream = io.StringIO()
        filename = await service.export_month(
            "2024-03",
            stream,
            display_names={ALICE: "Alice"},
            actor_id=ALICE,
        )

        assert filename == "expenses-march-2024.csv"
        rows = list(csv.reader(io.StringIO(stream.getvalue())))
        assert [row[1] for row in rows[1:]] == ["Late", "Early"]
        assert rows[1][4] == "Alice"

        exported = audit_storage.events[-1]
        assert exported.event_type == AuditEventType.EXPORT_GENERATED
        assert exported.details["record_count"] == 2

    @pytest.mark.asyncio
    async def test_export_empty_month(self, service):
        """Test that an empty month cannot be exported."""
        with pytest.raises(ExportError):
            await service.export_month("2024-03", io.StringIO())


class TestLedgerView:
    """Tests for the notification-driven view."""

    @pytest.mark.asyncio
    async def test_view_follows_store(self, store):
        """Test that every mutation replaces the view's state."""
        view = LedgerView(store, ALICE, BOB)
        assert view.version == 0
        assert view.balance.is_settled

        record = make_record(expense_date=date(2024, 3, 1))
        await store.add_expense(record)
        assert view.version == 1
        assert view.balance.amount == Decimal("50")
        assert view.ledger[0].running_balance == Decimal("50")

        await store.delete_expense(record.id)
        assert view.balance.is_settled
        assert view.ledger == []

    @pytest.mark.asyncio
    async def test_refresh_and_close(self):
        """Test initial load and unsubscribe."""
        store = InMemoryExpenseStore([make_record()])
        view = LedgerView(store, ALICE, BOB)
        await view.refresh()
        assert len(view.ledger) == 1

        version = view.version
        view.close()
        await store.add_expense(make_record())
        assert view.version == version


class TestSafeErrorMessage:
    """Tests for safe_error_message."""

    def test_validation_message_passed_through(self):
        """Test that user-facing messages are kept."""
        error = ExpenseValidationError("Amount must be greater than 0", field="amount")
        assert safe_error_message(error) == "Amount must be greater than 0"

    def test_not_found(self):
        """Test the deleted-item message."""
        assert "no longer exists" in safe_error_message(NotFoundError("Expense not found: e1"))

    @pytest.mark.parametrize("error,expected", [
        (StorageError("quota exceeded"), "Too many attempts. Please wait and try again."),
        (RuntimeError("Token has expired"), "Session expired. Please sign in again."),
        (RuntimeError("permission denied for sheet"), "You don't have permission to perform this action."),
        (OSError("request timed out"), "Network error. Please check your connection and try again."),
        (StorageError("disk full"), "Could not save your changes. Please try again."),
        (KeyError("internal detail"), GENERIC_ERROR_MESSAGE),
    ])
    def test_pattern_mapping(self, error, expected):
        """Test keyword mapping and fallbacks."""
        assert safe_error_message(error) == expected


class TestFactory:
    """Tests for create_ledger_service."""

    def test_in_memory_components(self, monkeypatch):
        """Test wiring without external storage."""
        monkeypatch.delenv("LEDGER_PREFERENCES_PATH", raising=False)
        components = create_ledger_service(ALICE, BOB, use_storage=False)

        assert isinstance(components, AppComponents)
        assert isinstance(components.store, InMemoryExpenseStore)
        assert components.ledger.party_a == ALICE

    @pytest.mark.asyncio
    async def test_components_share_store(self, monkeypatch):
        """Test that recurring confirmations show up in the ledger."""
        monkeypatch.delenv("LEDGER_PREFERENCES_PATH", raising=False)
        components = create_ledger_service(ALICE, BOB, use_storage=False)

        template = await components.recurring.add_template({
            "description": "Rent",
            "default_amount": "1000",
            "category": "rent",
            "typically_paid_by": ALICE,
            "owes_user_id": BOB,
        }, actor_id=ALICE)
        await components.recurring.confirm(
            template.id, "1000", actor_id=ALICE, today=date(2024, 3, 1),
        )

        assert (await components.ledger.balance()).amount == Decimal("500")
