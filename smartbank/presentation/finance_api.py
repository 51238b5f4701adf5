from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from smartbank.data.base import get_db
from smartbank.data.repositories import account_store
from smartbank.domain.helpers.export import camel_jsonable
from smartbank.domain.models import EntityType
from smartbank.domain.services.account_service import (
    create_bank,
    create_category,
    create_subscription,
    dashboard_summary,
    delete_bank,
    delete_subscription,
    get_data_json_stream,
    get_transactions_csv_stream,
    get_user_data,
    list_transactions,
    toggle_subscription,
    update_bank,
    update_subscription,
)
from smartbank.domain.services.auth_service import get_current_user
from smartbank.domain.services.ledger_service import (
    bank_history,
    delete_category,
    delete_transaction,
    recompute_category_spent,
    record_transaction,
    transfer_between_banks,
    update_category,
    withdraw_from_bank,
)
from smartbank.presentation.schemas import (
    BankCreateRequest,
    BankResponse,
    BankUpdateRequest,
    CategoryCreateRequest,
    CategoryResponse,
    CategoryUpdateRequest,
    SubscriptionCreateRequest,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    TransactionCreateRequest,
    TransactionResponse,
    TransferRequest,
    UserDataResponse,
    WithdrawRequest,
)

router = APIRouter(prefix="/api", tags=["finance"])


@router.get("/user/data", response_model=UserDataResponse)
def get_user_data_endpoint(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
) -> UserDataResponse:
    """
    Everything the client needs on startup: newest transactions, categories,
    subscriptions, banks and settings.
    """
    return UserDataResponse.from_domain(get_user_data(db, current_user))


@router.get("/dashboard")
def get_dashboard(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    period: str = Query("30-days", description="7-days, 30-days, 90-days, this-year or all"),
):
    return camel_jsonable(dashboard_summary(db, current_user, period))


# --- Transactions ---


@router.get("/transactions", response_model=List[TransactionResponse])
def get_transactions(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    search: Optional[str] = Query(None, description="Matches description or category"),
    type: Optional[str] = Query(None, description="income, expense, transfer or all"),
    category: Optional[str] = None,
    period: str = "all",
) -> List[TransactionResponse]:
    transactions = list_transactions(
        db, current_user.id, search=search, tx_type=type, category=category, period=period
    )
    return [TransactionResponse.from_domain(t) for t in transactions]


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
def post_transaction(
    req: TransactionCreateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    transaction = record_transaction(db, current_user.id, req.model_dump())
    return TransactionResponse.from_domain(transaction)


@router.delete("/transactions/{transaction_id}")
def delete_transaction_endpoint(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    delete_transaction(db, current_user.id, transaction_id)
    return {"deleted": transaction_id}


# --- Categories ---


@router.get("/categories", response_model=List[CategoryResponse])
def get_categories(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return [
        CategoryResponse.from_domain(c)
        for c in account_store.find_all_by_user(db, EntityType.CATEGORY, current_user.id)
    ]


@router.post(
    "/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED
)
def post_category(
    req: CategoryCreateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    category = create_category(db, current_user.id, req.model_dump(exclude_none=True))
    return CategoryResponse.from_domain(category)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
def put_category(
    category_id: int,
    req: CategoryUpdateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    category = update_category(
        db, current_user.id, category_id, req.model_dump(exclude_none=True)
    )
    return CategoryResponse.from_domain(category)


@router.delete("/categories/{category_id}")
def delete_category_endpoint(
    category_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    delete_category(db, current_user.id, category_id)
    return {"deleted": category_id}


@router.post("/categories/{category_id}/recompute", response_model=CategoryResponse)
def recompute_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return CategoryResponse.from_domain(
        recompute_category_spent(db, current_user.id, category_id)
    )


# --- Subscriptions ---


@router.get("/subscriptions", response_model=List[SubscriptionResponse])
def get_subscriptions(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    return [
        SubscriptionResponse.from_domain(s)
        for s in account_store.find_all_by_user(
            db, EntityType.SUBSCRIPTION, current_user.id
        )
    ]


@router.post(
    "/subscriptions",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
def post_subscription(
    req: SubscriptionCreateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    subscription = create_subscription(
        db, current_user.id, req.model_dump(exclude_none=True)
    )
    return SubscriptionResponse.from_domain(subscription)


@router.put("/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
def put_subscription(
    subscription_id: int,
    req: SubscriptionUpdateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    subscription = update_subscription(
        db, current_user.id, subscription_id, req.model_dump(exclude_none=True)
    )
    return SubscriptionResponse.from_domain(subscription)


@router.post(
    "/subscriptions/{subscription_id}/toggle", response_model=SubscriptionResponse
)
def toggle_subscription_endpoint(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return SubscriptionResponse.from_domain(
        toggle_subscription(db, current_user.id, subscription_id)
    )


@router.delete("/subscriptions/{subscription_id}")
def delete_subscription_endpoint(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    delete_subscription(db, current_user.id, subscription_id)
    return {"deleted": subscription_id}


# --- Banks ---


@router.get("/banks", response_model=List[BankResponse])
def get_banks(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return [
        BankResponse.from_domain(b)
        for b in account_store.find_all_by_user(db, EntityType.BANK, current_user.id)
    ]


@router.post("/banks", response_model=BankResponse, status_code=status.HTTP_201_CREATED)
def post_bank(
    req: BankCreateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    bank = create_bank(db, current_user.id, req.model_dump(exclude_none=True))
    return BankResponse.from_domain(bank)


# Registered before the {bank_id} routes
@router.post("/banks/transfer")
def transfer_endpoint(
    req: TransferRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    source, target, transaction = transfer_between_banks(
        db, current_user.id, req.source_bank_id, req.target_bank_id, req.amount
    )
    return {
        "source": BankResponse.from_domain(source),
        "target": BankResponse.from_domain(target),
        "transaction": TransactionResponse.from_domain(transaction),
    }


@router.put("/banks/{bank_id}", response_model=BankResponse)
def put_bank(
    bank_id: int,
    req: BankUpdateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    bank = update_bank(db, current_user.id, bank_id, req.model_dump(exclude_none=True))
    return BankResponse.from_domain(bank)


@router.delete("/banks/{bank_id}")
def delete_bank_endpoint(
    bank_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    delete_bank(db, current_user.id, bank_id)
    return {"deleted": bank_id}


@router.post("/banks/{bank_id}/withdraw")
def withdraw_endpoint(
    bank_id: int,
    req: WithdrawRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    bank, transaction = withdraw_from_bank(db, current_user.id, bank_id, req.amount)
    return {
        "bank": BankResponse.from_domain(bank),
        "transaction": TransactionResponse.from_domain(transaction),
    }


@router.get("/banks/{bank_id}/history", response_model=List[TransactionResponse])
def get_bank_history(
    bank_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return [
        TransactionResponse.from_domain(t)
        for t in bank_history(db, current_user.id, bank_id)
    ]


# --- Exports ---


@router.get("/export/transactions.csv")
def export_transactions_csv(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    return get_transactions_csv_stream(db, current_user)


@router.get("/export/data.json")
def export_data_json(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    return get_data_json_stream(db, current_user)
