from __future__ import annotations

import io
from datetime import datetime
from typing import TYPE_CHECKING

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from app.hub.models import status_label

if TYPE_CHECKING:
    from app.hub.models import Customer

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (header, column width in characters)
EXPORT_COLUMNS = (
    ("Name", 25),
    ("Mobile Number", 20),
    ("Activation Date", 20),
)

NO_DATE = "N/A"


class EmptyExportError(ValueError):
    pass


def format_activation_date(value: datetime | None) -> str:
    """``October 8, 2026`` style, or N/A when the record has no timestamp."""
    if value is None:
        return NO_DATE
    return f"{value:%B} {value.day}, {value.year}"


def sheet_title(status: str) -> str:
    return f"{status_label(status)} Customers"


def export_filename(status: str) -> str:
    return f"{sheet_title(status)}.xlsx"


def build_customer_workbook(customers: list[Customer], status: str) -> bytes:
    if not customers:
        raise EmptyExportError(f"There are no {status_label(status).lower()} customers to download.")

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title(status)
    ws.append([header for header, _ in EXPORT_COLUMNS])

    for row, c in enumerate(customers, start=2):
        for col, value in enumerate((c.name, c.phone_number, format_activation_date(c.created_at)), start=1):
            cell = ws.cell(row=row, column=col, value=str(value))
            # Literal text: no formulas from "=...", numbers like 0044... kept as typed.
            cell.data_type = "s"
            cell.number_format = "@"

    for idx, (_, width) in enumerate(EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
