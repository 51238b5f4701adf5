import csv
import io
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Iterator, List

from pydantic.alias_generators import to_camel

from smartbank.domain.errors import ValidationError
from smartbank.domain.helpers.validation import parse_date, parse_enum, parse_positive_amount
from smartbank.domain.models import Transaction, TransactionType

CSV_COLUMNS = [
    "date",
    "description",
    "category",
    "type",
    "amount",
    "location",
    "method",
]


def csv_header(include_notes: bool = True) -> List[str]:
    return CSV_COLUMNS + ["notes"] if include_notes else list(CSV_COLUMNS)


def transaction_row(t: Transaction, include_notes: bool = True) -> list:
    row = [
        t.date.isoformat(),
        t.description,
        t.category,
        t.type.value,
        str(t.amount),
        t.location or "",
        t.method or "",
    ]
    if include_notes:
        row.append(t.notes or "")
    return row


def transactions_to_csv(
    transactions: Iterable[Transaction], include_notes: bool = True
) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(csv_header(include_notes))
    for t in transactions:
        writer.writerow(transaction_row(t, include_notes))
    return output.getvalue()


def parse_transactions_csv(text: str) -> Iterator[dict]:
    """
    Read rows written by transactions_to_csv back into typed dicts.
    Raises ValidationError naming the line of the first bad row.
    """
    reader = csv.DictReader(io.StringIO(text))
    missing = [c for c in CSV_COLUMNS if c not in (reader.fieldnames or [])]
    if missing:
        raise ValidationError(f"CSV is missing columns: {', '.join(missing)}")
    for row in reader:
        try:
            yield {
                "date": parse_date(row["date"]),
                "description": row["description"],
                "category": row["category"],
                "type": parse_enum(TransactionType, row["type"], "transaction type"),
                "amount": parse_positive_amount(row["amount"]),
                "location": row.get("location") or "",
                "method": row.get("method") or "",
                "notes": row.get("notes") or "",
            }
        except ValidationError as e:
            raise ValidationError(f"Line {reader.line_num}: {e.message}")


def camel_jsonable(value):
    """Recursively convert domain values to JSON types with camelCase keys."""
    if is_dataclass(value):
        return {
            to_camel(f.name): camel_jsonable(getattr(value, f.name))
            for f in fields(value)
            if f.name != "user_id"
        }
    if isinstance(value, dict):
        return {to_camel(k): camel_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camel_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def build_json_export(data: dict, user, now: datetime) -> dict:
    """
    Full backup document: the aggregate user data with camelCase keys,
    stamped with the export time and the owner's identity.
    """
    document = camel_jsonable(data)
    document["exportDate"] = now.isoformat()
    document["user"] = {
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
    }
    return document
