import io
import json
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from smartbank.config import TRANSACTIONS_FETCH_LIMIT
from smartbank.data.repositories import account_store
from smartbank.data.repositories.user_repository import UserORM
from smartbank.data.repositories.user_repository import (
    update_settings as repo_update_settings,
)
from smartbank.domain.errors import ValidationError
from smartbank.domain.helpers.default_data import (
    DEFAULT_BANK,
    DEFAULT_CATEGORIES,
    default_subscription,
    default_transactions,
)
from smartbank.domain.helpers.export import build_json_export, transactions_to_csv
from smartbank.domain.helpers.summary import build_dashboard_summary, period_start
from smartbank.domain.helpers.validation import (
    name_key,
    parse_date,
    parse_enum,
    parse_non_negative_amount,
    parse_positive_amount,
    require_text,
)
from smartbank.domain.models import (
    Bank,
    BankType,
    BillingCycle,
    Category,
    EntityType,
    Subscription,
    Transaction,
    TransactionType,
)
from smartbank.domain.services.ledger_service import record_transaction
from smartbank.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = {"es", "en"}
SUPPORTED_THEMES = {"light", "dark"}

_BILLING_STEP = {
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.ANNUAL: relativedelta(years=1),
}


# --- Banks ---


def create_bank(
    db: Session, user_id: int, data: Dict[str, Any], commit: bool = True
) -> Bank:
    return account_store.create_entity(
        db,
        EntityType.BANK,
        user_id,
        commit=commit,
        name=require_text(data.get("name"), "name"),
        type=parse_enum(BankType, data.get("type") or "checking", "account type"),
        balance=parse_non_negative_amount(data.get("balance", 0), "balance"),
        account_number=data.get("account_number") or "****0000",
        currency=(data.get("currency") or "USD").upper(),
        color=data.get("color") or "#3B82F6",
        icon=data.get("icon") or "🏦",
        is_active=data.get("is_active", True),
    )


def update_bank(db: Session, user_id: int, bank_id: int, patch: Dict[str, Any]) -> Bank:
    changes: Dict[str, Any] = {}
    if patch.get("name") is not None:
        changes["name"] = patch["name"]
    if patch.get("type") is not None:
        changes["type"] = parse_enum(BankType, patch["type"], "account type")
    if patch.get("balance") is not None:
        changes["balance"] = parse_non_negative_amount(patch["balance"], "balance")
    if patch.get("currency"):
        changes["currency"] = patch["currency"].upper()
    for key in ("account_number", "color", "icon", "is_active"):
        if patch.get(key) is not None:
            changes[key] = patch[key]
    return account_store.update_entity(db, EntityType.BANK, bank_id, changes, user_id)


def delete_bank(db: Session, user_id: int, bank_id: int) -> Bank:
    removed = account_store.delete_entity(db, EntityType.BANK, bank_id, user_id)
    logger.info(f"Deleted bank {bank_id} for user {user_id}")
    return removed


# --- Categories ---


def create_category(
    db: Session, user_id: int, data: Dict[str, Any], commit: bool = True
) -> Category:
    """
    Create a budget category. Expenses already filed under the name count
    toward spent from the start.
    """
    name = require_text(data.get("name"), "name")
    return account_store.create_entity(
        db,
        EntityType.CATEGORY,
        user_id,
        commit=commit,
        name=name,
        budget=parse_non_negative_amount(data.get("budget", 0), "budget"),
        spent=account_store.sum_expenses_for_category(db, user_id, name),
        color=data.get("color") or "#3B82F6",
        icon=data.get("icon") or "💰",
    )


# --- Subscriptions ---


def create_subscription(
    db: Session,
    user_id: int,
    data: Dict[str, Any],
    today: Optional[date] = None,
    commit: bool = True,
) -> Subscription:
    next_payment = data.get("next_payment")
    if next_payment is None:
        next_payment = (today or date.today()) + timedelta(days=30)
    return account_store.create_entity(
        db,
        EntityType.SUBSCRIPTION,
        user_id,
        commit=commit,
        name=require_text(data.get("name"), "name"),
        price=parse_positive_amount(data.get("price"), "price"),
        billing_cycle=parse_enum(
            BillingCycle, data.get("billing_cycle") or "monthly", "billing cycle"
        ),
        next_payment=parse_date(next_payment, "next_payment"),
        active=data.get("active", True),
        color=data.get("color") or "#3B82F6",
        icon=data.get("icon") or "📱",
    )


def update_subscription(
    db: Session, user_id: int, subscription_id: int, patch: Dict[str, Any]
) -> Subscription:
    changes: Dict[str, Any] = {}
    if patch.get("name") is not None:
        changes["name"] = patch["name"]
    if patch.get("price") is not None:
        changes["price"] = parse_positive_amount(patch["price"], "price")
    if patch.get("billing_cycle") is not None:
        changes["billing_cycle"] = parse_enum(
            BillingCycle, patch["billing_cycle"], "billing cycle"
        )
    if patch.get("next_payment") is not None:
        changes["next_payment"] = parse_date(patch["next_payment"], "next_payment")
    for key in ("active", "color", "icon"):
        if patch.get(key) is not None:
            changes[key] = patch[key]
    return account_store.update_entity(
        db, EntityType.SUBSCRIPTION, subscription_id, changes, user_id
    )


def toggle_subscription(db: Session, user_id: int, subscription_id: int) -> Subscription:
    current = account_store.get_by_id(
        db, EntityType.SUBSCRIPTION, subscription_id, user_id
    )
    return account_store.update_entity(
        db,
        EntityType.SUBSCRIPTION,
        subscription_id,
        {"active": not current.active},
        user_id,
    )


def delete_subscription(db: Session, user_id: int, subscription_id: int) -> Subscription:
    return account_store.delete_entity(
        db, EntityType.SUBSCRIPTION, subscription_id, user_id
    )


def next_due_date(subscription: Subscription, today: date) -> date:
    """First billing date on or after today, stepping by whole billing cycles."""
    step = _BILLING_STEP[subscription.billing_cycle]
    due = subscription.next_payment
    cycles = 0
    while due < today:
        cycles += 1
        # Step from the anchor so month-end dates do not drift
        due = subscription.next_payment + step * cycles
    return due


def advance_elapsed_subscriptions(
    db: Session, user_id: int, today: Optional[date] = None
) -> int:
    today = today or date.today()
    advanced = 0
    for subscription in list(
        account_store.find_all_by_user(db, EntityType.SUBSCRIPTION, user_id)
    ):
        due = next_due_date(subscription, today)
        if due != subscription.next_payment:
            account_store.update_entity(
                db,
                EntityType.SUBSCRIPTION,
                subscription.id,
                {"next_payment": due},
                user_id,
                commit=False,
            )
            advanced += 1
    if advanced:
        db.commit()
        logger.info(f"Advanced {advanced} subscriptions for user {user_id}")
    return advanced


# --- Settings & aggregate reads ---


def user_settings(user: UserORM) -> Dict[str, Any]:
    return {
        "currency": user.currency,
        "language": user.language,
        "theme": user.theme,
        "savings_goal": user.savings_goal,
        "emergency_fund": user.emergency_fund,
    }


def update_settings(db: Session, user: UserORM, patch: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    if patch.get("currency"):
        currency = patch["currency"].strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code: {patch['currency']}")
        changes["currency"] = currency
    if patch.get("language"):
        if patch["language"] not in SUPPORTED_LANGUAGES:
            raise ValidationError(f"Unsupported language: {patch['language']}")
        changes["language"] = patch["language"]
    if patch.get("theme"):
        if patch["theme"] not in SUPPORTED_THEMES:
            raise ValidationError(f"Unsupported theme: {patch['theme']}")
        changes["theme"] = patch["theme"]
    if patch.get("savings_goal") is not None:
        goal = int(patch["savings_goal"])
        if not 0 <= goal <= 100:
            raise ValidationError("savings_goal must be between 0 and 100")
        changes["savings_goal"] = goal
    if patch.get("emergency_fund") is not None:
        changes["emergency_fund"] = parse_non_negative_amount(
            patch["emergency_fund"], "emergency_fund"
        )
    updated = repo_update_settings(db, user.id, changes)
    return user_settings(updated)


def get_user_data(
    db: Session, user: UserORM, today: Optional[date] = None
) -> Dict[str, Any]:
    advance_elapsed_subscriptions(db, user.id, today)
    return {
        "transactions": account_store.list_transactions(
            db, user.id, limit=TRANSACTIONS_FETCH_LIMIT
        ),
        "categories": list(
            account_store.find_all_by_user(db, EntityType.CATEGORY, user.id)
        ),
        "subscriptions": list(
            account_store.find_all_by_user(db, EntityType.SUBSCRIPTION, user.id)
        ),
        "banks": list(account_store.find_all_by_user(db, EntityType.BANK, user.id)),
        "settings": user_settings(user),
    }


def list_transactions(
    db: Session,
    user_id: int,
    search: Optional[str] = None,
    tx_type: Optional[str] = None,
    category: Optional[str] = None,
    period: str = "all",
    today: Optional[date] = None,
) -> List[Transaction]:
    type_filter = None
    if tx_type and tx_type != "all":
        type_filter = parse_enum(TransactionType, tx_type, "transaction type")
    start = period_start(period, today or date.today())
    term = (search or "").strip().lower()
    result = []
    for t in account_store.find_all_by_user(db, EntityType.TRANSACTION, user_id):
        if term and term not in t.description.lower() and term not in t.category.lower():
            continue
        if type_filter and t.type != type_filter:
            continue
        if category and category != "all" and name_key(t.category) != name_key(
            category
        ):
            continue
        if start and t.date < start:
            continue
        result.append(t)
    return result


def dashboard_summary(
    db: Session, user: UserORM, period: str = "30-days", today: Optional[date] = None
) -> Dict[str, Any]:
    today = today or date.today()
    transactions = list_transactions(db, user.id, period=period, today=today)
    return build_dashboard_summary(
        transactions=transactions,
        categories=list(account_store.find_all_by_user(db, EntityType.CATEGORY, user.id)),
        banks=list(account_store.find_all_by_user(db, EntityType.BANK, user.id)),
        subscriptions=list(
            account_store.find_all_by_user(db, EntityType.SUBSCRIPTION, user.id)
        ),
        period=period,
        currency=user.currency,
    )


def seed_default_data(
    db: Session, user_id: int, today: Optional[date] = None, commit: bool = True
) -> None:
    """
    Give a new user the starter categories, bank, transactions and subscription.
    With commit=False everything stays in the caller's transaction.
    """
    today = today or date.today()
    for category in DEFAULT_CATEGORIES:
        create_category(db, user_id, category, commit=False)
    bank = create_bank(db, user_id, DEFAULT_BANK, commit=False)
    for transaction in default_transactions(bank.id, today):
        record_transaction(db, user_id, transaction, commit=False)
    create_subscription(db, user_id, default_subscription(today), today, commit=False)
    if commit:
        db.commit()
    logger.info(f"Seeded default data for user {user_id}")


# --- Exports ---


def get_transactions_csv_stream(
    db: Session, user: UserORM, today: Optional[date] = None
) -> StreamingResponse:
    transactions = account_store.find_all_by_user(db, EntityType.TRANSACTION, user.id)
    output = io.StringIO(transactions_to_csv(transactions))
    filename = f"transacciones_{(today or date.today()).isoformat()}.csv"
    return StreamingResponse(
        output,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def get_data_json_stream(
    db: Session, user: UserORM, now: Optional[datetime] = None
) -> StreamingResponse:
    now = now or datetime.utcnow()
    data = get_user_data(db, user, now.date())
    data["transactions"] = list(
        account_store.find_all_by_user(db, EntityType.TRANSACTION, user.id)
    )
    document = build_json_export(data, user, now)
    output = io.StringIO(json.dumps(document, ensure_ascii=False, indent=2))
    logger.info(f"Exported data for user {user.id}")
    return StreamingResponse(
        output,
        media_type="application/json",
        headers={
            "Content-Disposition": f"attachment; filename=datos_{now.date().isoformat()}.json"
        },
    )
