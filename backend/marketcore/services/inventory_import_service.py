# Overview: Bulk inventory import from spreadsheet uploads (xlsx, csv, json).

from __future__ import annotations

import csv
import io
import json
import math
from typing import Any

from flask import current_app

from ..errors import CoreError, ValidationError
from . import inventory_service

"""
Rows are imported one product at a time: a bad row is reported back with its
row number and never blocks the rows around it. Each product insert is its
own transaction through inventory_service.create_inventory_product().

Header aliases follow the vendor spreadsheet conventions (English and French).
Price columns ending in _cents are integer cents; the short aliases
(price, prix, cost, ...) are currency units and are converted to cents.
"""

SUPPORTED_FORMATS = ("xlsx", "xlsm", "csv", "json")
DEFAULT_LOW_STOCK_THRESHOLD = 10
# Largest quantity or cents value a cell may carry (signed 32-bit)
MAX_IMPORT_INT = 2**31 - 1

_ALIASES = {
    "sku": ("sku", "SKU"),
    "name": ("name", "Name", "nom", "Nom"),
    "category": ("category", "Category", "categorie"),
    "stock": ("stock", "Stock", "quantity"),
    "low_stock_threshold": ("low_stock_threshold", "lowStockThreshold", "threshold"),
    "barcode": ("barcode", "Barcode"),
}
_CENTS_COLUMNS = {
    "cost_price_cents": ("cost_price_cents",),
    "selling_price_cents": ("selling_price_cents",),
}
_UNIT_COLUMNS = {
    "cost_price_cents": ("costPrice", "cost", "prix_cout"),
    "selling_price_cents": ("sellingPrice", "price", "prix", "prix_vente"),
}


def _to_float(value: Any, *, decimal_comma: bool = False) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if decimal_comma:
            text = text.replace(",", ".")
        if not text:
            return None
        number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite number")
    return number


def _checked_int(number: float, original: Any) -> int:
    result = int(number)
    if abs(result) > MAX_IMPORT_INT:
        raise ValueError(f"{original!r} is out of range")
    return result


def _to_int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        if abs(value) > MAX_IMPORT_INT:
            raise ValueError(f"{value!r} is out of range")
        return value
    number = _to_float(value)
    if number is None:
        return None
    if not number.is_integer():
        raise ValueError(f"{value!r} is not a whole number")
    return _checked_int(number, value)


def _units_to_cents(value: Any) -> int | None:
    number = _to_float(value, decimal_comma=True)
    if number is None:
        return None
    scaled = number * 100
    if not math.isfinite(scaled):
        raise ValueError(f"{value!r} is out of range")
    return _checked_int(round(scaled), value)


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _first(raw_row: dict[str, Any], keys) -> Any:
    for key in keys:
        if raw_row.get(key) not in (None, ""):
            return raw_row[key]
    return None


def parse_upload(filename: str, stream) -> list[tuple[int, dict[str, Any]]]:
    """
    Read an uploaded file into (row_number, header-keyed row) pairs.

    Row numbers are positions in the source file with the header as row 1,
    so blank rows that are skipped still count. JSON rows have no header
    line and are numbered from 2 to match.

    Raises:
        ValidationError: unsupported extension or unreadable content
    """
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext not in SUPPORTED_FORMATS:
        raise ValidationError(f"Unsupported file format: {ext or 'none'}")

    try:
        if ext == "csv":
            text = stream.read()
            if isinstance(text, bytes):
                text = text.decode("utf-8-sig")
            reader = csv.DictReader(io.StringIO(text))
            # DictReader skips blank lines; line_num keeps the physical line
            return [(reader.line_num, dict(row)) for row in reader]

        if ext == "json":
            rows = json.load(stream)
            if isinstance(rows, dict):
                rows = rows.get("rows", [])
            if not isinstance(rows, list):
                raise ValidationError("JSON upload must be a list of rows")
            return list(enumerate(rows, start=2))

        from openpyxl import load_workbook
        wb = load_workbook(stream, data_only=True, read_only=True)
        data = list(wb.active.values)
        wb.close()
    except CoreError:
        raise
    except Exception as exc:
        current_app.logger.warning("Unreadable inventory upload %s: %s", filename, exc)
        raise ValidationError(f"Could not read {ext} upload")

    if not data:
        return []
    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    return [
        (row_number, {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]})
        for row_number, row in enumerate(data[1:], start=2)
        if any(cell not in (None, "") for cell in row)
    ]


def normalize_row(raw_row: dict[str, Any]) -> dict[str, Any]:
    """Map an uploaded row onto create_inventory_product() keyword arguments."""
    if not isinstance(raw_row, dict):
        raise ValidationError("Row must be an object")

    sku = _to_text(_first(raw_row, _ALIASES["sku"]))
    name = _to_text(_first(raw_row, _ALIASES["name"]))
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")

    try:
        fields = {
            "sku": sku,
            "name": name,
            "category": _to_text(_first(raw_row, _ALIASES["category"])) or "general",
            "stock": _to_int(_first(raw_row, _ALIASES["stock"])) or 0,
            "low_stock_threshold": _to_int(_first(raw_row, _ALIASES["low_stock_threshold"])),
            "barcode": _to_text(_first(raw_row, _ALIASES["barcode"])),
        }
        for field in ("cost_price_cents", "selling_price_cents"):
            cents = _to_int(_first(raw_row, _CENTS_COLUMNS[field]))
            if cents is None:
                cents = _units_to_cents(_first(raw_row, _UNIT_COLUMNS[field]))
            fields[field] = cents or 0
    except (ValueError, OverflowError) as exc:
        raise ValidationError(f"Unreadable number: {exc}")

    if fields["low_stock_threshold"] is None:
        fields["low_stock_threshold"] = DEFAULT_LOW_STOCK_THRESHOLD
    return fields


def import_inventory_rows(
    rows: list[dict[str, Any]],
    row_numbers: list[int] | None = None,
) -> dict[str, Any]:
    """
    Create one inventory product per row.

    row_numbers gives each row's position in its source file; without it
    rows are numbered consecutively from 2 (header = row 1).

    Returns:
        {"imported": n, "product_ids": [...], "errors": [{"row": 2, "error": "..."}]}
    """
    if row_numbers is None:
        row_numbers = list(range(2, len(rows) + 2))
    elif len(row_numbers) != len(rows):
        raise ValidationError("row_numbers must match rows one to one")

    product_ids: list[int] = []
    errors: list[dict[str, Any]] = []

    for row_number, raw_row in zip(row_numbers, rows):
        try:
            product = inventory_service.create_inventory_product(**normalize_row(raw_row))
        except CoreError as e:
            errors.append({"row": row_number, "error": e.message})
            continue
        product_ids.append(product.id)

    if errors:
        current_app.logger.warning(
            "Inventory import: %s imported, %s rejected", len(product_ids), len(errors),
        )
    else:
        current_app.logger.info("Inventory import: %s imported", len(product_ids))
    return {"imported": len(product_ids), "product_ids": product_ids, "errors": errors}


def import_inventory_file(filename: str, stream) -> dict[str, Any]:
    numbered = parse_upload(filename, stream)
    return import_inventory_rows(
        [row for _, row in numbered],
        row_numbers=[row_number for row_number, _ in numbered],
    )
