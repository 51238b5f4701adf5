from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from smartbank.domain.errors import ValidationError
from smartbank.domain.helpers.validation import name_key
from smartbank.domain.models import (
    FALLBACK_CATEGORY_COLOR,
    FALLBACK_CATEGORY_ICON,
    BillingCycle,
    TransactionType,
)

PERIOD_DAYS = {"7-days": 7, "30-days": 30, "90-days": 90}
PERIODS = set(PERIOD_DAYS) | {"this-year", "all"}


def period_start(period: str, today: date) -> Optional[date]:
    """First day included in the given dashboard period, or None for 'all'."""
    if period not in PERIODS:
        raise ValidationError(
            f"Invalid period: {period} (expected one of {', '.join(sorted(PERIODS))})"
        )
    if period in PERIOD_DAYS:
        return today - timedelta(days=PERIOD_DAYS[period])
    if period == "this-year":
        return date(today.year, 1, 1)
    return None


def sum_by_type(transactions, tx_type: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == tx_type), Decimal("0"))


def expenses_by_category(transactions, categories) -> List[dict]:
    """
    Group expense amounts by category name ignoring case, largest first. Names with no
    matching category get the fallback icon and color.
    """
    by_key = {name_key(c.name): c for c in categories}
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    labels: Dict[str, str] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            key = name_key(t.category)
            totals[key] += t.amount
            labels.setdefault(key, t.category)
    grand_total = sum(totals.values(), Decimal("0"))
    rows = []
    for key, amount in sorted(totals.items(), key=lambda kv: kv[1], reverse=True):
        category = by_key.get(key)
        rows.append(
            {
                "category": category.name if category else labels[key],
                "amount": amount,
                "percentage": round(float(amount / grand_total * 100), 1)
                if grand_total > 0
                else 0.0,
                "color": category.color if category else FALLBACK_CATEGORY_COLOR,
                "icon": category.icon if category else FALLBACK_CATEGORY_ICON,
                "orphaned": category is None,
            }
        )
    return rows


def budget_usage(categories) -> List[dict]:
    return [
        {
            "id": c.id,
            "name": c.name,
            "budget": c.budget,
            "spent": c.spent,
            "remaining": c.remaining,
            "percentage": round(c.usage_percentage, 1),
            "over_budget": c.spent > c.budget,
        }
        for c in categories
    ]


def subscription_totals(subscriptions) -> dict:
    active = [s for s in subscriptions if s.active]
    return {
        "total": len(subscriptions),
        "active": len(active),
        "monthly_total": sum(
            (s.price for s in active if s.billing_cycle == BillingCycle.MONTHLY),
            Decimal("0"),
        ),
        "annual_total": sum(
            (s.price for s in active if s.billing_cycle == BillingCycle.ANNUAL),
            Decimal("0"),
        ),
    }


def bank_totals(banks) -> dict:
    active = [b for b in banks if b.is_active]
    return {
        "total": len(banks),
        "active": len(active),
        "balance": sum((b.balance for b in active), Decimal("0")),
        "currencies": len({b.currency for b in banks}),
    }


def build_dashboard_summary(
    transactions, categories, banks, subscriptions, period: str, currency: str
) -> dict:
    total_income = sum_by_type(transactions, TransactionType.INCOME)
    total_expenses = sum_by_type(transactions, TransactionType.EXPENSE)
    banks_summary = bank_totals(banks)
    total_balance = total_income - total_expenses + banks_summary["balance"]
    savings_rate = (
        round(float(total_balance / total_income * 100), 1) if total_income > 0 else 0.0
    )
    return {
        "period": period,
        "currency": currency,
        "total_income": total_income,
        "total_expenses": total_expenses,
        "total_balance": total_balance,
        "savings_rate": savings_rate,
        "transaction_count": len(transactions),
        "expenses_by_category": expenses_by_category(transactions, categories),
        "budgets": budget_usage(categories),
        "subscriptions": subscription_totals(subscriptions),
        "banks": banks_summary,
    }
