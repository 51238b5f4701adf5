import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from smartbank.domain.models import Bank, Category, Subscription, Transaction


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---


class RegisterRequest(CamelModel):
    first_name: str
    last_name: str
    email: str
    password: str
    phone: str = ""


class LoginRequest(CamelModel):
    email: str
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str


class SettingsUpdateRequest(CamelModel):
    currency: Optional[str] = None
    language: Optional[str] = None
    theme: Optional[str] = None
    savings_goal: Optional[int] = None
    emergency_fund: Optional[Decimal] = None


class TransactionCreateRequest(CamelModel):
    type: str
    amount: Decimal
    category: str = ""
    description: str = ""
    date: str
    location: Optional[str] = ""
    method: Optional[str] = ""
    notes: Optional[str] = ""
    bank_id: Optional[int] = None


class CategoryCreateRequest(CamelModel):
    name: str
    budget: Decimal = Decimal("0")
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryUpdateRequest(CamelModel):
    name: Optional[str] = None
    budget: Optional[Decimal] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class SubscriptionCreateRequest(CamelModel):
    name: str
    price: Decimal
    billing_cycle: str = "monthly"
    next_payment: Optional[str] = None
    active: bool = True
    color: Optional[str] = None
    icon: Optional[str] = None


class SubscriptionUpdateRequest(CamelModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    billing_cycle: Optional[str] = None
    next_payment: Optional[str] = None
    active: Optional[bool] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class BankCreateRequest(CamelModel):
    name: str
    type: str = "checking"
    balance: Decimal = Decimal("0")
    account_number: Optional[str] = None
    currency: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool = True


class BankUpdateRequest(CamelModel):
    name: Optional[str] = None
    type: Optional[str] = None
    balance: Optional[Decimal] = None
    account_number: Optional[str] = None
    currency: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None


class WithdrawRequest(CamelModel):
    amount: Decimal


class TransferRequest(CamelModel):
    source_bank_id: int
    target_bank_id: int
    amount: Decimal


# --- Responses ---


class UserResponse(CamelModel):
    id: int
    email: str
    name: str
    first_name: str
    last_name: str
    currency: str
    language: str
    theme: str

    @staticmethod
    def from_orm_user(user) -> "UserResponse":
        return UserResponse(
            id=user.id,
            email=user.email,
            name=user.full_name,
            first_name=user.first_name,
            last_name=user.last_name,
            currency=user.currency,
            language=user.language,
            theme=user.theme,
        )


class SettingsResponse(CamelModel):
    currency: str
    language: str
    theme: str
    savings_goal: int
    emergency_fund: float

    @staticmethod
    def from_settings(settings: Dict[str, Any]) -> "SettingsResponse":
        return SettingsResponse(
            currency=settings["currency"],
            language=settings["language"],
            theme=settings["theme"],
            savings_goal=settings["savings_goal"],
            emergency_fund=float(settings["emergency_fund"]),
        )


class BankResponse(CamelModel):
    id: int
    name: str
    type: str
    balance: float
    account_number: str
    currency: str
    color: str
    icon: str
    is_active: bool

    @staticmethod
    def from_domain(b: Bank) -> "BankResponse":
        return BankResponse(
            id=b.id,
            name=b.name,
            type=b.type.value,
            balance=float(b.balance),
            account_number=b.account_number,
            currency=b.currency,
            color=b.color,
            icon=b.icon,
            is_active=b.is_active,
        )


class CategoryResponse(CamelModel):
    id: int
    name: str
    budget: float
    spent: float
    color: str
    icon: str

    @staticmethod
    def from_domain(c: Category) -> "CategoryResponse":
        return CategoryResponse(
            id=c.id,
            name=c.name,
            budget=float(c.budget),
            spent=float(c.spent),
            color=c.color,
            icon=c.icon,
        )


class SubscriptionResponse(CamelModel):
    id: int
    name: str
    price: float
    billing_cycle: str
    next_payment: dt.date
    active: bool
    color: str
    icon: str

    @staticmethod
    def from_domain(s: Subscription) -> "SubscriptionResponse":
        return SubscriptionResponse(
            id=s.id,
            name=s.name,
            price=float(s.price),
            billing_cycle=s.billing_cycle.value,
            next_payment=s.next_payment,
            active=s.active,
            color=s.color,
            icon=s.icon,
        )


class TransactionResponse(CamelModel):
    id: int
    type: str
    amount: float
    category: str
    description: str
    date: dt.date
    location: str = ""
    method: str = ""
    notes: str = ""
    bank_id: Optional[int] = None

    @staticmethod
    def from_domain(t: Transaction) -> "TransactionResponse":
        return TransactionResponse(
            id=t.id,
            type=t.type.value,
            amount=float(t.amount),
            category=t.category,
            description=t.description,
            date=t.date,
            location=t.location,
            method=t.method,
            notes=t.notes,
            bank_id=t.bank_id,
        )


class UserDataResponse(CamelModel):
    transactions: List[TransactionResponse]
    categories: List[CategoryResponse]
    subscriptions: List[SubscriptionResponse]
    banks: List[BankResponse]
    settings: SettingsResponse

    @staticmethod
    def from_domain(data: Dict[str, Any]) -> "UserDataResponse":
        return UserDataResponse(
            transactions=[TransactionResponse.from_domain(t) for t in data["transactions"]],
            categories=[CategoryResponse.from_domain(c) for c in data["categories"]],
            subscriptions=[
                SubscriptionResponse.from_domain(s) for s in data["subscriptions"]
            ],
            banks=[BankResponse.from_domain(b) for b in data["banks"]],
            settings=SettingsResponse.from_settings(data["settings"]),
        )
