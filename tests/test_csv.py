import csv
from datetime import date
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from csv_utils import (
    CSV_HEADER,
    export_expenses,
    parse_amount,
    parse_csv,
    sanitize_csv_value,
)
from database import Base
from models import Expense
from services import CSVService, ExpenseService


HEADER = ",".join(CSV_HEADER)


def test_parse_amount_handles_french_formatting() -> None:
    assert parse_amount("1 234,50 €") == 123_450
    assert parse_amount("1.234,50") == 123_450
    assert parse_amount("1 000") == 100_000
    assert parse_amount("$12.30") == 1_230


@pytest.mark.parametrize("value", ["abc", "0", "-5,00", ""])
def test_parse_amount_rejects_invalid_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_amount(value)


def test_parse_csv_collects_row_errors() -> None:
    content = "\n".join(
        [
            HEADER,
            "2025-03-01,120,Plomberie,Cuisine,Cedeo,Raccords,",
            "01/03/2025,abc,Peinture,Salon,Castorama,Pots,",
            "2025-03-02,10,Peinture,,Castorama,Rouleaux,",
        ]
    )

    rows, errors = parse_csv(content)

    assert len(rows) == 1
    assert rows[0].date == date(2025, 3, 1)
    assert rows[0].amount_cents == 12_000
    assert rows[0].invoice_url is None
    assert [e.split(":")[0] for e in errors] == ["Row 2", "Row 3"]


def test_sanitize_csv_value_neutralises_formulas() -> None:
    assert sanitize_csv_value("=SUM(A1)") == "\t=SUM(A1)"
    assert sanitize_csv_value("cmd /c calc") == "\tcmd /c calc"
    assert sanitize_csv_value(" Cedeo ") == "Cedeo"


def test_export_writes_header_and_sanitised_rows() -> None:
    expense = Expense(
        id=1,
        date=date(2025, 3, 4),
        amount_cents=4_550,
        category="Peinture",
        room="Salon",
        supplier="Castorama",
        description="=HYPERLINK(\"x\")",
        invoice_url=None,
    )

    rows = list(csv.reader(StringIO(export_expenses([expense]))))

    assert rows[0] == CSV_HEADER
    assert rows[1][:2] == ["2025-03-04", "45.50"]
    assert rows[1][5] == "\t=HYPERLINK(\"x\")"
    assert rows[1][6] == ""


def test_commit_imports_all_rows_or_none() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    good = "\n".join(
        [
            HEADER,
            "2025-03-01,120,plomberie,cuisine,Cedeo,Raccords,",
            "2025-03-05,\"45,50\",Peinture,Salon,Castorama,Pots,https://example.test/f1",
        ]
    )
    bad = "\n".join(
        [
            HEADER,
            "2025-03-01,120,Plomberie,Cuisine,Cedeo,Raccords,",
            "not-a-date,10,Peinture,Salon,Castorama,Pots,",
        ]
    )

    with Session(engine) as session:
        service = CSVService(session)
        with pytest.raises(ValueError, match="Row 2"):
            service.commit(bad)
        assert ExpenseService(session).list() == []

        assert service.commit(good) == 2
        expenses = ExpenseService(session).list()
        assert [(e.room, e.category, e.amount_cents) for e in expenses] == [
            ("Salon", "Peinture", 4_550),
            ("Cuisine", "Plomberie", 12_000),
        ]
        assert expenses[0].invoice_url == "https://example.test/f1"


def test_preview_returns_json_ready_rows() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    content = HEADER + "\n2025-03-01,120,Plomberie,Cuisine,Cedeo,Raccords,\n"

    with Session(engine) as session:
        rows, errors = CSVService(session).preview(content)

    assert errors == []
    assert rows[0]["date"] == "2025-03-01"
    assert rows[0]["amount_cents"] == 12_000


def test_ambiguous_label_fails_preview_and_imports_nothing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    content = "\n".join(
        [
            HEADER,
            "2025-03-01,120,Plomberie,Cuisine,Cedeo,Raccords,",
            "2025-03-02,30,Peinture,Balon,Castorama,Pots,",
        ]
    )

    with Session(engine) as session:
        service = CSVService(session)
        rows, errors = service.preview(content)
        assert [row["room"] for row in rows] == ["Cuisine"]
        assert len(errors) == 1
        assert "ambiguous" in errors[0]

        with pytest.raises(ValueError, match="Balon"):
            service.commit(content)
        assert ExpenseService(session).list() == []
