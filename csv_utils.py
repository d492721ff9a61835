import csv
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from models import Expense
from schemas import CSVRow


CSV_HEADER = [
    "Date",
    "Amount",
    "Category",
    "Room",
    "Supplier",
    "Description",
    "InvoiceUrl",
]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str):
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return datetime.strptime(value, "%d/%m/%Y").date()


def parse_amount(value: str) -> int:
    """Parse a decimal amount such as ``1 234,50 €`` into integer cents."""
    clean = (
        value.strip()
        .replace("€", "")
        .replace("$", "")
        .replace("\u00a0", "")
        .replace("\u202f", "")
        .replace(" ", "")
    )
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents <= 0:
        raise ValueError("Amount must be greater than zero")
    return cents


def format_amount(cents: int) -> str:
    return f"{cents / 100:.2f}"


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            invoice_url = (raw.get("InvoiceUrl") or "").strip()
            rows.append(
                CSVRow(
                    date=parse_date(raw.get("Date") or ""),
                    amount_cents=parse_amount(raw.get("Amount") or "0"),
                    category=(raw.get("Category") or "").strip(),
                    room=(raw.get("Room") or "").strip(),
                    supplier=(raw.get("Supplier") or "").strip(),
                    description=(raw.get("Description") or "").strip(),
                    invoice_url=invoice_url or None,
                )
            )
        except ValueError as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_expenses(expenses: Sequence[Expense]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    for expense in expenses:
        writer.writerow(
            [
                expense.date.isoformat(),
                format_amount(expense.amount_cents),
                sanitize_csv_value(expense.category),
                sanitize_csv_value(expense.room),
                sanitize_csv_value(expense.supplier),
                sanitize_csv_value(expense.description),
                sanitize_csv_value(expense.invoice_url or ""),
            ]
        )
    return output.getvalue()
