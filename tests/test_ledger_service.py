"""
Tests for the ledger engine: category spent tracking, bank debits and
the consistency rules around deletes and renames.
"""

from datetime import date
from decimal import Decimal

import pytest

from smartbank.data.repositories import account_store
from smartbank.domain.errors import (
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from smartbank.domain.models import TRANSFER_CATEGORY, EntityType, TransactionType
from smartbank.domain.services import ledger_service
from smartbank.domain.services.account_service import create_bank, create_category
from smartbank.domain.services.auth_service import login, register_user


@pytest.fixture
def ocio(db, user):
    return create_category(db, user.id, {"name": "Ocio", "budget": 200})


@pytest.fixture
def bank(db, user):
    return create_bank(db, user.id, {"name": "Banco Principal", "balance": 5000})


def _spent(db, user_id, category_id):
    return account_store.get_by_id(db, EntityType.CATEGORY, category_id, user_id).spent


def _balance(db, user_id, bank_id):
    return account_store.get_by_id(db, EntityType.BANK, bank_id, user_id).balance


def _expense(amount, category="Ocio", **extra):
    return {"type": "expense", "amount": amount, "category": category, "date": "2024-05-10", **extra}


class TestRecordTransaction:
    """Tests for record_transaction."""

    def test_registered_user_scenario(self, db, today):
        """Test the register, login and two-expense flow on Ocio."""
        user = register_user(db, "Juan", "Pérez", "juan@test.com", "pw123456", today=today)
        token, logged_in = login(db, "juan@test.com", "pw123456")
        assert token and logged_in.id == user.id

        ocio = account_store.find_category_by_name(db, user.id, "Ocio")
        assert ocio.budget == Decimal("200")
        assert ocio.spent == Decimal("0")

        ledger_service.record_transaction(db, user.id, _expense(50))
        assert _spent(db, user.id, ocio.id) == Decimal("50")
        ledger_service.record_transaction(db, user.id, _expense(60))
        assert _spent(db, user.id, ocio.id) == Decimal("110")

    def test_spent_equals_sum_of_expenses(self, db, user, ocio):
        amounts = ["12.35", "0.65", "100", "7.10"]
        for amount in amounts:
            ledger_service.record_transaction(db, user.id, _expense(amount))
        assert _spent(db, user.id, ocio.id) == sum(Decimal(a) for a in amounts)

    def test_category_match_ignores_case(self, db, user, ocio):
        ledger_service.record_transaction(db, user.id, _expense(25, category="ocio"))
        assert _spent(db, user.id, ocio.id) == Decimal("25")

    def test_income_does_not_touch_spent(self, db, user, ocio):
        ledger_service.record_transaction(
            db, user.id, {"type": "income", "amount": 80, "category": "Ocio", "date": "2024-05-10"}
        )
        assert _spent(db, user.id, ocio.id) == Decimal("0")

    def test_unknown_category_is_stored_anyway(self, db, user):
        """Test that an expense with no matching category is kept untracked."""
        stored = ledger_service.record_transaction(db, user.id, _expense(10, category="Viajes"))
        assert stored.category == "Viajes"

    def test_description_defaults_to_category(self, db, user, ocio):
        stored = ledger_service.record_transaction(db, user.id, _expense(10))
        assert stored.description == "Ocio"

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, "NaN", "1e30", "1000000000000"])
    def test_rejects_bad_amounts(self, db, user, ocio, amount):
        with pytest.raises(ValidationError):
            ledger_service.record_transaction(db, user.id, _expense(amount))
        assert _spent(db, user.id, ocio.id) == Decimal("0")

    def test_rejects_bad_type(self, db, user, ocio):
        with pytest.raises(ValidationError):
            ledger_service.record_transaction(
                db, user.id, {"type": "gift", "amount": 5, "category": "Ocio", "date": "2024-05-10"}
            )

    def test_rejects_bad_date(self, db, user, ocio):
        with pytest.raises(ValidationError):
            ledger_service.record_transaction(db, user.id, {**_expense(5), "date": "not a date"})

    def test_rejects_unknown_bank(self, db, user, ocio):
        with pytest.raises(NotFoundError):
            ledger_service.record_transaction(db, user.id, _expense(5, bank_id=999))

    def test_transfer_debits_bank_and_defaults_category(self, db, user, bank):
        stored = ledger_service.record_transaction(
            db, user.id, {"type": "transfer", "amount": 300, "date": "2024-05-10", "bank_id": bank.id}
        )
        assert stored.category == TRANSFER_CATEGORY
        assert _balance(db, user.id, bank.id) == Decimal("4700")

    def test_transfer_over_balance_writes_nothing(self, db, user, bank):
        with pytest.raises(InsufficientFundsError):
            ledger_service.record_transaction(
                db, user.id, {"type": "transfer", "amount": 9000, "date": "2024-05-10", "bank_id": bank.id}
            )
        assert _balance(db, user.id, bank.id) == Decimal("5000")
        assert account_store.list_transactions(db, user.id) == []


class TestDeleteTransaction:
    """Tests for delete_transaction."""

    def test_delete_reverses_spent(self, db, user, ocio):
        first = ledger_service.record_transaction(db, user.id, _expense(50))
        ledger_service.record_transaction(db, user.id, _expense(60))
        ledger_service.delete_transaction(db, user.id, first.id)
        assert _spent(db, user.id, ocio.id) == Decimal("60")

    def test_delete_leaves_bank_balance(self, db, user, bank, ocio):
        stored = ledger_service.record_transaction(db, user.id, _expense(50, bank_id=bank.id))
        ledger_service.delete_transaction(db, user.id, stored.id)
        assert _balance(db, user.id, bank.id) == Decimal("5000")

    def test_delete_missing(self, db, user):
        with pytest.raises(NotFoundError):
            ledger_service.delete_transaction(db, user.id, 404)


class TestCategoryConsistency:
    """Tests for recompute, rename and delete of categories."""

    def test_recompute_repairs_drift(self, db, user, ocio):
        ledger_service.record_transaction(db, user.id, _expense(40))
        account_store.set_category_spent(db, user.id, ocio.id, Decimal("999"))
        db.commit()
        repaired = ledger_service.recompute_category_spent(db, user.id, ocio.id)
        assert repaired.spent == Decimal("40")

    def test_rename_moves_transactions(self, db, user, ocio):
        ledger_service.record_transaction(db, user.id, _expense(40))
        renamed = ledger_service.update_category(db, user.id, ocio.id, {"name": "Diversión"})
        assert renamed.name == "Diversión"
        categories = [t.category for t in account_store.list_transactions(db, user.id)]
        assert categories == ["Diversión"]
        assert ledger_service.recompute_category_spent(db, user.id, ocio.id).spent == Decimal("40")

    def test_update_rejects_spent(self, db, user, ocio):
        with pytest.raises(ValidationError):
            ledger_service.update_category(db, user.id, ocio.id, {"spent": 0})

    def test_update_rejects_negative_budget(self, db, user, ocio):
        with pytest.raises(ValidationError):
            ledger_service.update_category(db, user.id, ocio.id, {"budget": -1})

    def test_delete_orphans_transactions(self, db, user, ocio):
        stored = ledger_service.record_transaction(db, user.id, _expense(40))
        ledger_service.delete_category(db, user.id, ocio.id)
        remaining = account_store.get_by_id(db, EntityType.TRANSACTION, stored.id, user.id)
        assert remaining.category == "Ocio"
        assert account_store.find_category_by_name(db, user.id, "Ocio") is None


class TestSpentMatchesExpenses:
    """Tests that spent stays equal to the expenses filed under the category name."""

    def test_accented_names_match_ignoring_case(self, db, user):
        opera = create_category(db, user.id, {"name": "ÓPERA", "budget": 100})
        ledger_service.record_transaction(db, user.id, _expense(50, category="ópera"))
        assert _spent(db, user.id, opera.id) == Decimal("50")
        assert ledger_service.recompute_category_spent(db, user.id, opera.id).spent == Decimal("50")

    def test_recreated_category_then_old_expense_deleted(self, db, user, ocio):
        old = ledger_service.record_transaction(db, user.id, _expense(50))
        ledger_service.delete_category(db, user.id, ocio.id)
        recreated = create_category(db, user.id, {"name": "Ocio", "budget": 200})
        assert recreated.spent == Decimal("50")

        ledger_service.record_transaction(db, user.id, _expense(30))
        ledger_service.delete_transaction(db, user.id, old.id)
        assert _spent(db, user.id, recreated.id) == Decimal("30")

    def test_category_created_after_its_expenses(self, db, user):
        ledger_service.record_transaction(db, user.id, _expense(20, category="Viajes"))
        ledger_service.record_transaction(db, user.id, _expense(15, category="VIAJES"))
        viajes = create_category(db, user.id, {"name": "Viajes", "budget": 500})
        assert viajes.spent == Decimal("35")

    def test_rename_onto_orphaned_name(self, db, user, ocio):
        ledger_service.record_transaction(db, user.id, _expense(40))
        ledger_service.record_transaction(db, user.id, _expense(25, category="Educación"))
        renamed = ledger_service.update_category(
            db, user.id, ocio.id, {"name": "EDUCACIÓN"}
        )
        assert renamed.spent == Decimal("65")
        categories = {t.category.lower() for t in account_store.list_transactions(db, user.id)}
        assert categories == {"educación"}


class TestBankMovements:
    """Tests for withdraw_from_bank and transfer_between_banks."""

    def test_withdraw_over_balance(self, db, user, bank):
        """Test that withdrawing 6000 from 5000 fails and leaves the balance."""
        with pytest.raises(InsufficientFundsError):
            ledger_service.withdraw_from_bank(db, user.id, bank.id, 6000)
        assert _balance(db, user.id, bank.id) == Decimal("5000")

    @pytest.mark.parametrize("amount", ["0.01", "1234.56", "5000"])
    def test_withdraw_debits_exactly(self, db, user, bank, amount, today):
        updated, tx = ledger_service.withdraw_from_bank(db, user.id, bank.id, amount, today)
        assert updated.balance == Decimal("5000") - Decimal(amount)
        assert tx.type == TransactionType.EXPENSE
        assert tx.category == TRANSFER_CATEGORY
        assert tx.bank_id == bank.id
        assert tx.date == today

    def test_withdraw_counts_toward_transfer_category(self, db, user, bank):
        transfer = create_category(db, user.id, {"name": TRANSFER_CATEGORY, "budget": 0})
        ledger_service.withdraw_from_bank(db, user.id, bank.id, 250)
        assert _spent(db, user.id, transfer.id) == Decimal("250")

    def test_withdraw_rejects_non_positive(self, db, user, bank):
        with pytest.raises(ValidationError):
            ledger_service.withdraw_from_bank(db, user.id, bank.id, 0)

    def test_transfer_moves_money(self, db, user, bank):
        savings = create_bank(db, user.id, {"name": "Ahorros", "type": "savings", "balance": 100})
        source, target, tx = ledger_service.transfer_between_banks(
            db, user.id, bank.id, savings.id, 1000
        )
        assert source.balance == Decimal("4000")
        assert target.balance == Decimal("1100")
        assert "Ahorros" in tx.description

    def test_transfer_over_balance(self, db, user, bank):
        savings = create_bank(db, user.id, {"name": "Ahorros", "balance": 0})
        with pytest.raises(InsufficientFundsError):
            ledger_service.transfer_between_banks(db, user.id, bank.id, savings.id, 5000.01)
        assert _balance(db, user.id, bank.id) == Decimal("5000")
        assert _balance(db, user.id, savings.id) == Decimal("0")

    def test_transfer_to_same_bank(self, db, user, bank):
        with pytest.raises(ValidationError):
            ledger_service.transfer_between_banks(db, user.id, bank.id, bank.id, 10)

    def test_bank_history(self, db, user, bank):
        ledger_service.withdraw_from_bank(db, user.id, bank.id, 10)
        ledger_service.record_transaction(db, user.id, _expense(5, category="Otro"))
        history = ledger_service.bank_history(db, user.id, bank.id)
        assert len(history) == 1
        assert history[0].bank_id == bank.id
