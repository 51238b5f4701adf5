"""
Tests for account-level operations: banks, categories, subscriptions,
settings, aggregate reads and the dashboard summary.
"""

from datetime import date
from decimal import Decimal

import pytest

from smartbank.data.repositories import account_store
from smartbank.domain.errors import DuplicateNameError, ValidationError
from smartbank.domain.models import BillingCycle, EntityType
from smartbank.domain.services import account_service
from smartbank.domain.services.ledger_service import record_transaction


def _tx(tx_type, amount, category, day, description=""):
    return {
        "type": tx_type,
        "amount": amount,
        "category": category,
        "date": day,
        "description": description,
    }


class TestBanks:
    """Tests for bank CRUD."""

    def test_create_with_defaults(self, db, user):
        bank = account_service.create_bank(db, user.id, {"name": "Ahorros"})
        assert bank.balance == Decimal("0")
        assert bank.currency == "USD"
        assert bank.is_active is True

    def test_negative_opening_balance(self, db, user):
        with pytest.raises(ValidationError):
            account_service.create_bank(db, user.id, {"name": "Rojo", "balance": -1})

    def test_invalid_type(self, db, user):
        with pytest.raises(ValidationError):
            account_service.create_bank(db, user.id, {"name": "Raro", "type": "crypto"})

    def test_update_and_delete(self, db, user):
        bank = account_service.create_bank(db, user.id, {"name": "Ahorros", "balance": 10})
        updated = account_service.update_bank(
            db, user.id, bank.id, {"balance": "25.50", "currency": "eur", "is_active": False}
        )
        assert updated.balance == Decimal("25.50")
        assert updated.currency == "EUR"
        assert updated.is_active is False
        account_service.delete_bank(db, user.id, bank.id)
        assert account_store.find_by_id(db, EntityType.BANK, bank.id) is None


class TestSubscriptions:
    """Tests for subscription CRUD and billing date roll-forward."""

    def test_create_defaults_next_payment(self, db, user, today):
        sub = account_service.create_subscription(
            db, user.id, {"name": "Spotify", "price": "9.99"}, today
        )
        assert sub.next_payment == date(2024, 6, 14)
        assert sub.billing_cycle == BillingCycle.MONTHLY

    def test_price_must_be_positive(self, db, user):
        with pytest.raises(ValidationError):
            account_service.create_subscription(db, user.id, {"name": "Gratis", "price": 0})

    def test_duplicate_name(self, db, user):
        account_service.create_subscription(db, user.id, {"name": "Spotify", "price": 5})
        with pytest.raises(DuplicateNameError):
            account_service.create_subscription(db, user.id, {"name": "SPOTIFY", "price": 5})

    def test_toggle(self, db, user):
        sub = account_service.create_subscription(db, user.id, {"name": "Spotify", "price": 5})
        assert account_service.toggle_subscription(db, user.id, sub.id).active is False
        assert account_service.toggle_subscription(db, user.id, sub.id).active is True

    def test_update_cycle(self, db, user):
        sub = account_service.create_subscription(db, user.id, {"name": "Spotify", "price": 5})
        updated = account_service.update_subscription(
            db, user.id, sub.id, {"billing_cycle": "annual", "price": "99"}
        )
        assert updated.billing_cycle == BillingCycle.ANNUAL
        assert updated.price == Decimal("99")

    def test_elapsed_payment_rolls_forward(self, db, user):
        sub = account_service.create_subscription(
            db, user.id, {"name": "Gym", "price": 30, "next_payment": "2024-01-31"}
        )
        advanced = account_service.advance_elapsed_subscriptions(db, user.id, date(2024, 4, 10))
        assert advanced == 1
        stored = account_store.get_by_id(db, EntityType.SUBSCRIPTION, sub.id)
        # Jan 31 + 3 months clamps to Apr 30
        assert stored.next_payment == date(2024, 4, 30)

    def test_future_payment_untouched(self, db, user):
        account_service.create_subscription(
            db, user.id, {"name": "Gym", "price": 30, "next_payment": "2024-06-01"}
        )
        assert account_service.advance_elapsed_subscriptions(db, user.id, date(2024, 5, 1)) == 0

    def test_annual_roll_forward(self, db, user):
        sub = account_service.create_subscription(
            db,
            user.id,
            {"name": "Dominio", "price": 12, "billing_cycle": "annual", "next_payment": "2022-03-01"},
        )
        assert account_service.next_due_date(sub, date(2024, 3, 2)) == date(2025, 3, 1)


class TestSettings:
    """Tests for update_settings."""

    def test_defaults(self, db, user):
        settings = account_service.user_settings(user)
        assert settings["currency"] == "USD"
        assert settings["language"] == "es"
        assert settings["savings_goal"] == 20

    def test_update(self, db, user):
        settings = account_service.update_settings(
            db, user, {"currency": "eur", "theme": "dark", "savings_goal": 35}
        )
        assert settings["currency"] == "EUR"
        assert settings["theme"] == "dark"
        assert settings["savings_goal"] == 35

    @pytest.mark.parametrize(
        "patch",
        [
            {"currency": "EURO"},
            {"language": "fr"},
            {"theme": "blue"},
            {"savings_goal": 101},
            {"emergency_fund": -5},
        ],
    )
    def test_rejects_invalid(self, db, user, patch):
        with pytest.raises(ValidationError):
            account_service.update_settings(db, user, patch)


class TestAggregateReads:
    """Tests for get_user_data, list_transactions and dashboard_summary."""

    @pytest.fixture
    def ledger(self, db, user, today):
        account_service.create_category(db, user.id, {"name": "Ocio", "budget": 100})
        account_service.create_category(db, user.id, {"name": "Comida", "budget": 400})
        account_service.create_bank(db, user.id, {"name": "Banco", "balance": 1000})
        record_transaction(db, user.id, _tx("income", 2000, "Salario", today))
        record_transaction(db, user.id, _tx("expense", 150, "Ocio", today, "Cine y cena"))
        record_transaction(db, user.id, _tx("expense", 50, "Comida", date(2024, 5, 1)))
        record_transaction(db, user.id, _tx("expense", 80, "Viajes", date(2024, 1, 20)))
        record_transaction(db, user.id, _tx("expense", 10, "Comida", date(2023, 12, 1)))

    def test_user_data_shape(self, db, user, ledger, today):
        data = account_service.get_user_data(db, user, today)
        assert set(data) == {"transactions", "categories", "subscriptions", "banks", "settings"}
        assert len(data["transactions"]) == 5
        assert data["transactions"][0].date == today

    def test_list_filters(self, db, user, ledger, today):
        by_search = account_service.list_transactions(db, user.id, search="cine", today=today)
        assert [t.category for t in by_search] == ["Ocio"]
        incomes = account_service.list_transactions(db, user.id, tx_type="income", today=today)
        assert len(incomes) == 1
        comida = account_service.list_transactions(db, user.id, category="Comida", today=today)
        assert len(comida) == 2
        this_year = account_service.list_transactions(db, user.id, period="this-year", today=today)
        assert len(this_year) == 4

    def test_unknown_period(self, db, user, ledger, today):
        with pytest.raises(ValidationError):
            account_service.list_transactions(db, user.id, period="forever", today=today)

    def test_dashboard_totals(self, db, user, ledger, today):
        summary = account_service.dashboard_summary(db, user, "30-days", today)
        assert summary["total_income"] == Decimal("2000")
        assert summary["total_expenses"] == Decimal("200")
        assert summary["total_balance"] == Decimal("2800")
        assert summary["savings_rate"] == 140.0
        assert summary["transaction_count"] == 3

    def test_dashboard_categories_and_budgets(self, db, user, ledger, today):
        summary = account_service.dashboard_summary(db, user, "all", today)
        rows = {row["category"]: row for row in summary["expenses_by_category"]}
        assert rows["Ocio"]["amount"] == Decimal("150")
        assert rows["Viajes"]["orphaned"] is True
        assert rows["Viajes"]["icon"] == "💰"
        budgets = {b["name"]: b for b in summary["budgets"]}
        assert budgets["Ocio"]["over_budget"] is True
        assert budgets["Comida"]["remaining"] == Decimal("340")

    def test_category_filter_and_grouping_ignore_case(self, db, user, ledger, today):
        """Test that expenses filed as 'ocio' and 'OCIO' land in the single Ocio row."""
        record_transaction(db, user.id, _tx("expense", 20, "ocio", today))
        record_transaction(db, user.id, _tx("expense", 5, "OCIO", today))

        filtered = account_service.list_transactions(db, user.id, category="oCiO", today=today)
        assert len(filtered) == 3

        summary = account_service.dashboard_summary(db, user, "all", today)
        ocio_rows = [r for r in summary["expenses_by_category"] if r["category"].lower() == "ocio"]
        assert len(ocio_rows) == 1
        assert ocio_rows[0]["category"] == "Ocio"
        assert ocio_rows[0]["amount"] == Decimal("175")
        assert ocio_rows[0]["orphaned"] is False

    def test_zero_budget_with_spending_is_over_budget(self, db, user, today):
        """Test that any spending on a zero budget counts as over budget."""
        account_service.create_category(db, user.id, {"name": "Caprichos", "budget": 0})
        record_transaction(db, user.id, _tx("expense", "0.01", "Caprichos", today))
        summary = account_service.dashboard_summary(db, user, "all", today)
        budgets = {b["name"]: b for b in summary["budgets"]}
        assert budgets["Caprichos"]["percentage"] == 0.0
        assert budgets["Caprichos"]["over_budget"] is True
