"""
Bulk price import: a spreadsheet of (no, item name, price) rows is written
into the remote 'prices' collection. A later pull mirrors it locally.

Row layout (first row is a header and is skipped):
    A: running number (ignored)   B: item name   C: price
"""
import csv
import logging
import os
import uuid
from typing import Dict, List

from openpyxl import load_workbook

from billing_models import ZERO, money_json, to_money
from billing_service import PRICES, OfflineError, ValidationError

log = logging.getLogger("billing.price_import")


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _read_xlsx(path: str) -> List[List[str]]:
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        return [[_cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_csv(path: str) -> List[List[str]]:
    with open(path, "rb") as fh:
        raw = fh.read()
    for enc in ("utf-8-sig", "cp1252", "latin-1"):
        try:
            content = raw.decode(enc)
            break
        except UnicodeDecodeError:
            continue
    else:
        content = raw.decode("utf-8", errors="replace")
    return [row for row in csv.reader(content.splitlines())]


def read_price_rows(path: str) -> List[Dict[str, object]]:
    """Parse the sheet into [{'itemName', 'price'}] in file order."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".xlsx":
        rows = _read_xlsx(path)
    elif ext == ".csv":
        rows = _read_csv(path)
    else:
        raise ValidationError(f"Unsupported price file type: {ext or path}")

    items = []
    for row in rows[1:]:
        if len(row) < 3:
            continue
        name = (row[1] or "").strip()
        if not name:
            continue
        price = to_money(row[2], ZERO)
        if price < 0:
            log.warning("Skipping %s: negative price %s", name, price)
            continue
        items.append({"itemName": name, "price": price})
    return items


def import_price_file(cloud, path: str) -> Dict[str, int]:
    """Upsert every row into the remote price list, keyed by exact item name."""
    if not cloud.is_online():
        raise OfflineError("No internet. Cannot import prices.")
    items = read_price_rows(path)

    by_name: Dict[str, str] = {}
    for doc_id, data in cloud.get(PRICES).items():
        name = data.get("itemName")
        if isinstance(name, str) and name not in by_name:
            by_name[name] = doc_id

    updated = created = 0
    for item in items:
        doc_id = by_name.get(item["itemName"])
        if doc_id is None:
            doc_id = str(uuid.uuid4())
            by_name[item["itemName"]] = doc_id
            created += 1
        else:
            updated += 1
        cloud.set(PRICES, doc_id, {"itemName": item["itemName"], "price": money_json(item["price"])}, merge=True)

    log.info("Price import from %s: %d rows, %d updated, %d created", path, len(items), updated, created)
    return {"read": len(items), "updated": updated, "created": created}
