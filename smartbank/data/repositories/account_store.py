from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import Boolean, Column, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, case, func

from smartbank.data.base import Base
from smartbank.domain.errors import DuplicateNameError, NotFoundError, ValidationError
from smartbank.domain.helpers.validation import name_key
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

Money = Numeric(14, 2)


class BankORM(Base):
    __tablename__ = "banks"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    # Python-lowered name, SQLite lower() only folds ASCII
    name_key = Column(String, nullable=False, index=True)
    type = Column(SAEnum(BankType), nullable=False, default=BankType.CHECKING)
    balance = Column(Money, nullable=False, default=Decimal("0"))
    account_number = Column(String, default="****0000")
    currency = Column(String, default="USD")
    color = Column(String, default="#3B82F6")
    icon = Column(String, default="🏦")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CategoryORM(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    name_key = Column(String, nullable=False, index=True)
    budget = Column(Money, nullable=False, default=Decimal("0"))
    spent = Column(Money, nullable=False, default=Decimal("0"))
    color = Column(String, default="#3B82F6")
    icon = Column(String, default="💰")
    created_at = Column(DateTime, default=datetime.utcnow)


class SubscriptionORM(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    name_key = Column(String, nullable=False, index=True)
    price = Column(Money, nullable=False)
    billing_cycle = Column(
        SAEnum(BillingCycle), nullable=False, default=BillingCycle.MONTHLY
    )
    next_payment = Column(Date, nullable=False)
    active = Column(Boolean, default=True)
    color = Column(String, default="#3B82F6")
    icon = Column(String, default="📱")
    created_at = Column(DateTime, default=datetime.utcnow)


class TransactionORM(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(SAEnum(TransactionType), nullable=False)
    amount = Column(Money, nullable=False)
    # Weak reference by name, categories may be deleted underneath it
    category = Column(String, nullable=False, default="")
    category_key = Column(String, nullable=False, default="", index=True)
    description = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    location = Column(String, default="")
    method = Column(String, default="")
    notes = Column(Text, default="")
    bank_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


def bank_to_domain(bank_orm: BankORM) -> Bank:
    return Bank(
        id=bank_orm.id,
        user_id=bank_orm.user_id,
        name=bank_orm.name,
        type=bank_orm.type,
        balance=bank_orm.balance,
        account_number=bank_orm.account_number,
        currency=bank_orm.currency,
        color=bank_orm.color,
        icon=bank_orm.icon,
        is_active=bank_orm.is_active,
        created_at=bank_orm.created_at,
    )


def category_to_domain(category_orm: CategoryORM) -> Category:
    return Category(
        id=category_orm.id,
        user_id=category_orm.user_id,
        name=category_orm.name,
        budget=category_orm.budget,
        spent=category_orm.spent,
        color=category_orm.color,
        icon=category_orm.icon,
        created_at=category_orm.created_at,
    )


def subscription_to_domain(subscription_orm: SubscriptionORM) -> Subscription:
    return Subscription(
        id=subscription_orm.id,
        user_id=subscription_orm.user_id,
        name=subscription_orm.name,
        price=subscription_orm.price,
        billing_cycle=subscription_orm.billing_cycle,
        next_payment=subscription_orm.next_payment,
        active=subscription_orm.active,
        color=subscription_orm.color,
        icon=subscription_orm.icon,
        created_at=subscription_orm.created_at,
    )


def transaction_to_domain(transaction_orm: TransactionORM) -> Transaction:
    return Transaction(
        id=transaction_orm.id,
        user_id=transaction_orm.user_id,
        type=transaction_orm.type,
        amount=transaction_orm.amount,
        category=transaction_orm.category,
        description=transaction_orm.description,
        date=transaction_orm.date,
        location=transaction_orm.location or "",
        method=transaction_orm.method or "",
        notes=transaction_orm.notes or "",
        bank_id=transaction_orm.bank_id,
        created_at=transaction_orm.created_at,
    )


_ORM_BY_TYPE = {
    EntityType.BANK: BankORM,
    EntityType.CATEGORY: CategoryORM,
    EntityType.SUBSCRIPTION: SubscriptionORM,
    EntityType.TRANSACTION: TransactionORM,
}

_TO_DOMAIN = {
    EntityType.BANK: bank_to_domain,
    EntityType.CATEGORY: category_to_domain,
    EntityType.SUBSCRIPTION: subscription_to_domain,
    EntityType.TRANSACTION: transaction_to_domain,
}

_UNIQUE_NAME_TYPES = {EntityType.BANK, EntityType.CATEGORY, EntityType.SUBSCRIPTION}

_PROTECTED_FIELDS = {"id", "user_id", "created_at", "name_key", "category_key"}


def _to_domain(entity_type: EntityType, obj):
    return _TO_DOMAIN[entity_type](obj)


def _default_order(entity_type: EntityType):
    orm = _ORM_BY_TYPE[entity_type]
    if entity_type == EntityType.TRANSACTION:
        return (orm.date.desc(), orm.id.desc())
    return (orm.id.asc(),)


def _name_taken(
    db, entity_type: EntityType, user_id: int, name: str, exclude_id=None
) -> bool:
    orm = _ORM_BY_TYPE[entity_type]
    query = db.query(orm.id).filter(
        orm.user_id == user_id, orm.name_key == name_key(name)
    )
    if exclude_id is not None:
        query = query.filter(orm.id != exclude_id)
    return db.query(query.exists()).scalar()


def _get_orm(db, entity_type: EntityType, entity_id: int, user_id=None):
    orm = _ORM_BY_TYPE[entity_type]
    query = db.query(orm).filter(orm.id == entity_id)
    if user_id is not None:
        query = query.filter(orm.user_id == user_id)
    return query.first()


def _finish(db, obj, commit: bool):
    if commit:
        db.commit()
        db.refresh(obj)
    else:
        db.flush()


def create_entity(db, entity_type: EntityType, user_id: int, commit=True, **fields):
    """
    Persist a new record owned by user_id and return its domain view.
    Bank, category and subscription names are unique per user, ignoring case.
    """
    if entity_type in _UNIQUE_NAME_TYPES:
        name = (fields.get("name") or "").strip()
        if not name:
            raise ValidationError(f"A {entity_type.value} name is required")
        if _name_taken(db, entity_type, user_id, name):
            raise DuplicateNameError(
                f"A {entity_type.value} named '{name}' already exists"
            )
        fields["name"] = name
        fields["name_key"] = name_key(name)
    if entity_type == EntityType.TRANSACTION:
        fields["category_key"] = name_key(fields.get("category"))
    obj = _ORM_BY_TYPE[entity_type](user_id=user_id, **fields)
    db.add(obj)
    _finish(db, obj, commit)
    return _to_domain(entity_type, obj)


def find_by_id(db, entity_type: EntityType, entity_id: int, user_id=None):
    obj = _get_orm(db, entity_type, entity_id, user_id)
    return _to_domain(entity_type, obj) if obj else None


def get_by_id(db, entity_type: EntityType, entity_id: int, user_id=None):
    found = find_by_id(db, entity_type, entity_id, user_id)
    if found is None:
        raise NotFoundError(f"{entity_type.value.capitalize()} {entity_id} not found")
    return found


def find_all_by_user(db, entity_type: EntityType, user_id: int) -> Iterator:
    """
    Lazily yield every record of entity_type owned by user_id.
    Each call runs a fresh query, so a new iteration sees current state.
    """
    orm = _ORM_BY_TYPE[entity_type]
    query = (
        db.query(orm)
        .filter(orm.user_id == user_id)
        .order_by(*_default_order(entity_type))
    )
    for obj in query.yield_per(100):
        yield _to_domain(entity_type, obj)


def update_entity(
    db, entity_type: EntityType, entity_id: int, patch: dict, user_id=None, commit=True
):
    obj = _get_orm(db, entity_type, entity_id, user_id)
    if obj is None:
        raise NotFoundError(f"{entity_type.value.capitalize()} {entity_id} not found")
    for key in patch:
        if key in _PROTECTED_FIELDS or not hasattr(obj, key):
            raise ValidationError(f"Field '{key}' cannot be updated")
    if "name" in patch and entity_type in _UNIQUE_NAME_TYPES:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationError(f"A {entity_type.value} name is required")
        if _name_taken(db, entity_type, obj.user_id, name, exclude_id=obj.id):
            raise DuplicateNameError(
                f"A {entity_type.value} named '{name}' already exists"
            )
        patch = {**patch, "name": name, "name_key": name_key(name)}
    if "category" in patch and entity_type == EntityType.TRANSACTION:
        patch = {**patch, "category_key": name_key(patch["category"])}
    for key, value in patch.items():
        setattr(obj, key, value)
    _finish(db, obj, commit)
    return _to_domain(entity_type, obj)


def delete_entity(
    db, entity_type: EntityType, entity_id: int, user_id=None, commit=True
):
    obj = _get_orm(db, entity_type, entity_id, user_id)
    if obj is None:
        raise NotFoundError(f"{entity_type.value.capitalize()} {entity_id} not found")
    snapshot = _to_domain(entity_type, obj)
    db.delete(obj)
    if commit:
        db.commit()
    else:
        db.flush()
    return snapshot


def list_transactions(db, user_id: int, limit: Optional[int] = None) -> list:
    query = (
        db.query(TransactionORM)
        .filter(TransactionORM.user_id == user_id)
        .order_by(*_default_order(EntityType.TRANSACTION))
    )
    if limit:
        query = query.limit(limit)
    return [transaction_to_domain(t) for t in query.all()]


def list_transactions_for_bank(db, user_id: int, bank_id: int) -> list:
    query = (
        db.query(TransactionORM)
        .filter(TransactionORM.user_id == user_id, TransactionORM.bank_id == bank_id)
        .order_by(*_default_order(EntityType.TRANSACTION))
    )
    return [transaction_to_domain(t) for t in query.all()]


def find_category_by_name(db, user_id: int, name: str) -> Optional[Category]:
    obj = (
        db.query(CategoryORM)
        .filter(
            CategoryORM.user_id == user_id,
            CategoryORM.name_key == name_key(name),
        )
        .first()
    )
    return category_to_domain(obj) if obj else None


# --- Record-scoped atomic updates ---
# Each one is a single UPDATE with an arithmetic expression, so concurrent
# writers cannot lose each other's increments.


def increment_category_spent(db, user_id: int, name: str, amount: Decimal) -> int:
    return (
        db.query(CategoryORM)
        .filter(
            CategoryORM.user_id == user_id,
            CategoryORM.name_key == name_key(name),
        )
        .update(
            {CategoryORM.spent: CategoryORM.spent + amount}, synchronize_session=False
        )
    )


def decrement_category_spent(db, user_id: int, name: str, amount: Decimal) -> int:
    """Reverse an expense contribution, never taking spent below zero."""
    return (
        db.query(CategoryORM)
        .filter(
            CategoryORM.user_id == user_id,
            CategoryORM.name_key == name_key(name),
        )
        .update(
            {
                CategoryORM.spent: case(
                    (CategoryORM.spent >= amount, CategoryORM.spent - amount),
                    else_=0,
                )
            },
            synchronize_session=False,
        )
    )


def set_category_spent(db, user_id: int, category_id: int, spent: Decimal) -> int:
    return (
        db.query(CategoryORM)
        .filter(CategoryORM.id == category_id, CategoryORM.user_id == user_id)
        .update({CategoryORM.spent: spent}, synchronize_session=False)
    )


def debit_bank_balance(db, user_id: int, bank_id: int, amount: Decimal) -> bool:
    """
    Compare-and-swap debit. Returns False when the bank is missing or its
    balance does not cover amount, in which case nothing is written.
    """
    updated = (
        db.query(BankORM)
        .filter(
            BankORM.id == bank_id,
            BankORM.user_id == user_id,
            BankORM.balance >= amount,
        )
        .update({BankORM.balance: BankORM.balance - amount}, synchronize_session=False)
    )
    return updated == 1


def credit_bank_balance(db, user_id: int, bank_id: int, amount: Decimal) -> bool:
    updated = (
        db.query(BankORM)
        .filter(BankORM.id == bank_id, BankORM.user_id == user_id)
        .update({BankORM.balance: BankORM.balance + amount}, synchronize_session=False)
    )
    return updated == 1


def rename_category_references(db, user_id: int, old_name: str, new_name: str) -> int:
    return (
        db.query(TransactionORM)
        .filter(
            TransactionORM.user_id == user_id,
            TransactionORM.category_key == name_key(old_name),
        )
        .update(
            {
                TransactionORM.category: new_name,
                TransactionORM.category_key: name_key(new_name),
            },
            synchronize_session=False,
        )
    )


def sum_expenses_for_category(db, user_id: int, name: str) -> Decimal:
    total = (
        db.query(func.sum(TransactionORM.amount))
        .filter(
            TransactionORM.user_id == user_id,
            TransactionORM.type == TransactionType.EXPENSE,
            TransactionORM.category_key == name_key(name),
        )
        .scalar()
    )
    return Decimal(str(total)) if total is not None else Decimal("0")
