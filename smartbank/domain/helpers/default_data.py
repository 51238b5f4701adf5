from datetime import date, timedelta
from decimal import Decimal

DEFAULT_CATEGORIES = [
    {"name": "Alimentación", "budget": Decimal("500"), "color": "#3B82F6", "icon": "🍽️"},
    {"name": "Transporte", "budget": Decimal("300"), "color": "#60A5FA", "icon": "🚗"},
    {"name": "Vivienda", "budget": Decimal("1200"), "color": "#93C5FD", "icon": "🏠"},
    {"name": "Ocio", "budget": Decimal("200"), "color": "#BFDBFE", "icon": "🎬"},
    {"name": "Salud", "budget": Decimal("150"), "color": "#10B981", "icon": "⚕️"},
    {"name": "Educación", "budget": Decimal("100"), "color": "#F59E0B", "icon": "📚"},
]

DEFAULT_BANK = {
    "name": "Banco Principal",
    "type": "checking",
    "balance": Decimal("5000"),
    "account_number": "****1234",
    "currency": "USD",
    "color": "#3B82F6",
    "is_active": True,
}


def default_transactions(bank_id: int, today: date) -> list[dict]:
    return [
        {
            "type": "income",
            "amount": Decimal("5000"),
            "category": "Salario",
            "description": "Salario Mensual",
            "date": today,
            "location": "Transferencia Bancaria",
            "method": "Transferencia",
            "bank_id": bank_id,
        },
        {
            "type": "expense",
            "amount": Decimal("1200"),
            "category": "Vivienda",
            "description": "Alquiler",
            "date": today,
            "location": "Pago Bancario",
            "method": "Débito Automático",
            "bank_id": bank_id,
        },
    ]


def default_subscription(today: date) -> dict:
    return {
        "name": "Netflix",
        "price": Decimal("15.99"),
        "billing_cycle": "monthly",
        "next_payment": today + timedelta(days=30),
        "active": True,
        "icon": "🎬",
        "color": "#E50914",
    }
