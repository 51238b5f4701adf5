# smartbank/domain/models.py
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class EntityType(Enum):
    BANK = "bank"
    CATEGORY = "category"
    SUBSCRIPTION = "subscription"
    TRANSACTION = "transaction"


class TransactionType(Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class BankType(Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"


class BillingCycle(Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SessionState(Enum):
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    LOGGED_OUT = "logged_out"


TRANSFER_CATEGORY = "Transferencia"
FALLBACK_CATEGORY_ICON = "💰"
FALLBACK_CATEGORY_COLOR = "#3B82F6"


@dataclass
class Bank:
    id: int
    user_id: int
    name: str
    type: BankType
    balance: Decimal
    account_number: str = "****0000"
    currency: str = "USD"
    color: str = "#3B82F6"
    icon: str = "🏦"
    is_active: bool = True
    created_at: Optional[datetime] = None


@dataclass
class Category:
    id: int
    user_id: int
    name: str
    budget: Decimal
    spent: Decimal = Decimal("0")
    color: str = FALLBACK_CATEGORY_COLOR
    icon: str = FALLBACK_CATEGORY_ICON
    created_at: Optional[datetime] = None

    @property
    def remaining(self) -> Decimal:
        return self.budget - self.spent

    @property
    def usage_percentage(self) -> float:
        if self.budget <= 0:
            return 0.0
        return float(self.spent / self.budget * 100)


@dataclass
class Subscription:
    id: int
    user_id: int
    name: str
    price: Decimal
    billing_cycle: BillingCycle
    next_payment: date
    active: bool = True
    color: str = "#3B82F6"
    icon: str = "📱"
    created_at: Optional[datetime] = None


@dataclass
class Transaction:
    id: int
    user_id: int
    type: TransactionType
    amount: Decimal
    category: str
    description: str
    date: date
    location: str = ""
    method: str = ""
    notes: str = ""
    bank_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        # Income and expense are both stored as positive magnitudes
        if self.amount <= 0:
            raise ValueError("Transaction amount must be positive.")
