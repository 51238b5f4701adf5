"""
Ledger engine.

Keeps the derived totals consistent with the transaction set:
``Category.spent`` follows expense transactions by category name, and
``Bank.balance`` moves only through transfers, withdrawals and explicit
edits. Every operation commits its writes together or not at all.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from smartbank.data.repositories import account_store
from smartbank.domain.errors import (
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from smartbank.domain.helpers.validation import (
    parse_date,
    parse_enum,
    parse_non_negative_amount,
    parse_positive_amount,
)
from smartbank.domain.models import (
    TRANSFER_CATEGORY,
    Bank,
    Category,
    EntityType,
    Transaction,
    TransactionType,
)
from smartbank.utils.logger import get_logger

logger = get_logger(__name__)


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _insufficient_funds(bank: Bank, amount: Decimal) -> InsufficientFundsError:
    logger.warning(
        f"Rejected debit of {amount} from bank {bank.id}: balance {bank.balance}"
    )
    return InsufficientFundsError(
        f"Insufficient funds in {bank.name}: balance {bank.balance}, requested {amount}"
    )


def record_transaction(
    db: Session, user_id: int, payload: Dict[str, Any], commit: bool = True
) -> Transaction:
    """
    Validate and store a transaction, then apply its side effects:
    an expense increments the matching category's spent, and a transfer
    tied to a bank debits that bank. With commit=False the writes are only
    flushed into the caller's transaction.
    """
    tx_type = parse_enum(TransactionType, payload.get("type"), "transaction type")
    amount = parse_positive_amount(payload.get("amount"))
    tx_date = parse_date(payload.get("date"))
    category = _clean(payload.get("category"))
    if not category:
        if tx_type == TransactionType.TRANSFER:
            category = TRANSFER_CATEGORY
        else:
            raise ValidationError("category is required")
    description = _clean(payload.get("description")) or category
    bank_id = payload.get("bank_id")

    if bank_id is not None:
        bank = account_store.get_by_id(db, EntityType.BANK, bank_id, user_id)
        if tx_type == TransactionType.TRANSFER:
            if not account_store.debit_bank_balance(db, user_id, bank.id, amount):
                db.rollback()
                raise _insufficient_funds(bank, amount)

    transaction = account_store.create_entity(
        db,
        EntityType.TRANSACTION,
        user_id,
        commit=False,
        type=tx_type,
        amount=amount,
        category=category,
        description=description,
        date=tx_date,
        location=_clean(payload.get("location")),
        method=_clean(payload.get("method")),
        notes=_clean(payload.get("notes")),
        bank_id=bank_id,
    )
    if tx_type == TransactionType.EXPENSE:
        # No matching category simply leaves the amount untracked
        account_store.increment_category_spent(db, user_id, category, amount)
    if commit:
        db.commit()
    logger.info(
        f"Recorded {tx_type.value} {transaction.id} of {amount} for user {user_id}"
    )
    return transaction


def delete_transaction(db: Session, user_id: int, transaction_id: int) -> Transaction:
    """
    Remove a transaction and reverse its contribution to category spent.
    Bank balances are left as they are.
    """
    removed = account_store.delete_entity(
        db, EntityType.TRANSACTION, transaction_id, user_id, commit=False
    )
    if removed.type == TransactionType.EXPENSE:
        account_store.decrement_category_spent(
            db, user_id, removed.category, removed.amount
        )
    db.commit()
    logger.info(f"Deleted transaction {transaction_id} for user {user_id}")
    return removed


def recompute_category_spent(db: Session, user_id: int, category_id: int) -> Category:
    """Overwrite spent with the sum of the expenses currently filed under the category."""
    category = account_store.get_by_id(db, EntityType.CATEGORY, category_id, user_id)
    total = account_store.sum_expenses_for_category(db, user_id, category.name)
    account_store.set_category_spent(db, user_id, category_id, total)
    db.commit()
    if total != category.spent:
        logger.info(
            f"Category {category_id} spent repaired from {category.spent} to {total}"
        )
    return account_store.get_by_id(db, EntityType.CATEGORY, category_id, user_id)


def update_category(
    db: Session, user_id: int, category_id: int, patch: Dict[str, Any]
) -> Category:
    """
    Edit name, budget, color or icon. A rename carries the transactions
    filed under the old name along with it.
    """
    current = account_store.get_by_id(db, EntityType.CATEGORY, category_id, user_id)
    changes: Dict[str, Any] = {}
    if patch.get("budget") is not None:
        changes["budget"] = parse_non_negative_amount(patch["budget"], "budget")
    for key in ("color", "icon"):
        if patch.get(key):
            changes[key] = patch[key]
    new_name = patch.get("name")
    if new_name is not None:
        changes["name"] = new_name
    if "spent" in patch:
        raise ValidationError("spent is derived from transactions")

    updated = account_store.update_entity(
        db, EntityType.CATEGORY, category_id, changes, user_id, commit=False
    )
    if updated.name != current.name:
        moved = account_store.rename_category_references(
            db, user_id, current.name, updated.name
        )
        # Orphaned expenses already under the new name now count too
        account_store.set_category_spent(
            db,
            user_id,
            category_id,
            account_store.sum_expenses_for_category(db, user_id, updated.name),
        )
        logger.info(
            f"Category {category_id} renamed, {moved} transactions moved along"
        )
    db.commit()
    return account_store.get_by_id(db, EntityType.CATEGORY, category_id, user_id)


def delete_category(db: Session, user_id: int, category_id: int) -> Category:
    """Remove the category only. Transactions keep the now-dangling name."""
    removed = account_store.delete_entity(db, EntityType.CATEGORY, category_id, user_id)
    logger.info(f"Deleted category {category_id} ('{removed.name}') for user {user_id}")
    return removed


def withdraw_from_bank(
    db: Session, user_id: int, bank_id: int, amount, today: date | None = None
) -> tuple[Bank, Transaction]:
    amount = parse_positive_amount(amount)
    bank = account_store.get_by_id(db, EntityType.BANK, bank_id, user_id)
    if not account_store.debit_bank_balance(db, user_id, bank_id, amount):
        db.rollback()
        raise _insufficient_funds(bank, amount)
    transaction = _record_transfer_expense(
        db,
        user_id,
        bank,
        amount,
        f"Transferencia desde {bank.name}",
        today or date.today(),
    )
    db.commit()
    logger.info(f"Withdrew {amount} from bank {bank_id} for user {user_id}")
    return account_store.get_by_id(db, EntityType.BANK, bank_id, user_id), transaction


def transfer_between_banks(
    db: Session,
    user_id: int,
    source_bank_id: int,
    target_bank_id: int,
    amount,
    today: date | None = None,
) -> tuple[Bank, Bank, Transaction]:
    amount = parse_positive_amount(amount)
    if source_bank_id == target_bank_id:
        raise ValidationError("Source and target banks must differ")
    source = account_store.get_by_id(db, EntityType.BANK, source_bank_id, user_id)
    target = account_store.get_by_id(db, EntityType.BANK, target_bank_id, user_id)
    if not account_store.debit_bank_balance(db, user_id, source.id, amount):
        db.rollback()
        raise _insufficient_funds(source, amount)
    account_store.credit_bank_balance(db, user_id, target.id, amount)
    transaction = _record_transfer_expense(
        db,
        user_id,
        source,
        amount,
        f"Transferencia desde {source.name} hacia {target.name}",
        today or date.today(),
    )
    db.commit()
    logger.info(
        f"Transferred {amount} from bank {source.id} to bank {target.id} "
        f"for user {user_id}"
    )
    return (
        account_store.get_by_id(db, EntityType.BANK, source.id, user_id),
        account_store.get_by_id(db, EntityType.BANK, target.id, user_id),
        transaction,
    )


def _record_transfer_expense(
    db: Session, user_id: int, bank: Bank, amount: Decimal, description: str, day: date
) -> Transaction:
    transaction = account_store.create_entity(
        db,
        EntityType.TRANSACTION,
        user_id,
        commit=False,
        type=TransactionType.EXPENSE,
        amount=amount,
        category=TRANSFER_CATEGORY,
        description=description,
        date=day,
        location="Transferencia Interna",
        method="Transferencia",
        bank_id=bank.id,
    )
    account_store.increment_category_spent(db, user_id, TRANSFER_CATEGORY, amount)
    return transaction


def bank_history(db: Session, user_id: int, bank_id: int) -> List[Transaction]:
    bank = account_store.find_by_id(db, EntityType.BANK, bank_id, user_id)
    if bank is None:
        raise NotFoundError(f"Bank {bank_id} not found")
    return account_store.list_transactions_for_bank(db, user_id, bank_id)
