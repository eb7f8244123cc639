#!/usr/bin/env python3
# Billing core: company balances + invoices/receipts + price list + cloud sync
import argparse
import datetime as dt
import json
import logging
import sqlite3
import sys
import uuid
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import billing_config as cfg
import billing_db as db
from billing_models import (
    ZERO,
    credit_contribution,
    decode_invoice_row,
    decode_receipt_row,
    encode_invoice_payload,
    encode_receipt_payload,
    format_number,
    invoice_total,
    iso_now,
    money_json,
    money_str,
    normalize_date,
    normalize_line_item,
    parse_datetime,
    to_flag,
    to_json_dict,
    to_money,
)
from cloud_store import RemoteStoreError

log = logging.getLogger("billing.service")

COMPANIES = "companies"
PRICES = "prices"


class BillingError(Exception):
    """Base error; the message is meant for the user."""


class OfflineError(BillingError):
    pass


class ValidationError(BillingError):
    pass


class NotFoundError(BillingError):
    pass


def _require_online(cloud, action: str):
    if not cloud.is_online():
        raise OfflineError(f"No internet. Cannot {action}.")


def _new_doc_id() -> str:
    return str(uuid.uuid4())


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


# ---------- COMPANIES ----------
def _company_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "docId": row["docId"],
        "name": row.get("name") or "",
        "phone": row.get("phone") or "",
        "address": row.get("address") or "",
        "description": row.get("description") or "",
        "crNumber": row.get("crNumber") or "",
        "vatNumber": row.get("vatNumber") or "",
        "outstanding": to_money(row.get("outstanding"), ZERO),
        "isSynced": row.get("isSynced") is None or int(row.get("isSynced")) == 1,
    }


def _company_identity_doc(company: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": company["name"],
        "phone": company["phone"],
        "address": company.get("address") or "",
        "description": company.get("description") or "",
        "crNumber": company.get("crNumber") or "",
        "vatNumber": company.get("vatNumber") or "",
    }


def _company_remote_doc(company: Dict[str, Any]) -> Dict[str, Any]:
    doc = _company_identity_doc(company)
    doc["outstanding"] = money_json(company["outstanding"])
    return doc


def list_companies(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    companies = [_company_from_row(r) for r in db.get_all(conn, COMPANIES)]
    companies.sort(key=lambda c: (c["name"].lower(), c["docId"]))
    return companies


def get_company(conn: sqlite3.Connection, doc_id: str) -> Optional[Dict[str, Any]]:
    row = db.get_row(conn, COMPANIES, doc_id)
    return _company_from_row(row) if row else None


def dirty_companies(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return [c for c in list_companies(conn) if not c["isSynced"]]


def _validate_identity(name: Any, phone: Any) -> Tuple[str, str]:
    name = _clean(name)
    phone = _clean(phone)
    if not name:
        raise ValidationError("Company name is required.")
    if not phone:
        raise ValidationError("Company phone is required.")
    return name, phone


def _push_company_change(conn: sqlite3.Connection, cloud, doc_id: str, partial: Dict[str, Any],
                         was_synced: bool) -> bool:
    """Best-effort push after a local company write; flips isSynced on success.

    A company that was already dirty gets its whole document pushed so the
    earlier unsynced change is not hidden behind the new synced flag.
    """
    if not cloud.is_online():
        return False
    company = get_company(conn, doc_id)
    if company is None:
        return False
    try:
        if was_synced:
            cloud.set(COMPANIES, doc_id, partial, merge=True)
        else:
            cloud.set(COMPANIES, doc_id, _company_remote_doc(company))
    except RemoteStoreError as exc:
        log.warning("Company %s left unsynced: %s", doc_id, exc)
        return False
    db.update_fields(conn, COMPANIES, doc_id, {"isSynced": 1})
    return True


def create_company(conn: sqlite3.Connection, cloud, name: str, phone: str, address: Optional[str] = None,
                   description: Optional[str] = None, cr_number: Optional[str] = None,
                   vat_number: Optional[str] = None, doc_id: Optional[str] = None) -> Dict[str, Any]:
    """Create (or re-create by id) a company locally, then push it when online.

    Re-creating an existing id overwrites its identity fields and keeps its balance.
    """
    name, phone = _validate_identity(name, phone)
    doc_id = _clean(doc_id) or _new_doc_id()
    existing = get_company(conn, doc_id)
    outstanding = existing["outstanding"] if existing else ZERO
    db.upsert(conn, COMPANIES, doc_id, {
        "name": name,
        "phone": phone,
        "address": _clean(address),
        "description": _clean(description),
        "outstanding": money_str(outstanding),
        "isSynced": 0,
        "crNumber": _clean(cr_number),
        "vatNumber": _clean(vat_number),
    })
    log.info("Company %s (%s) saved locally", name, doc_id)
    # the first push always carries the full document
    _push_company_change(conn, cloud, doc_id, {}, was_synced=False)
    return get_company(conn, doc_id)


def update_company_details(conn: sqlite3.Connection, cloud, doc_id: str, name: str, phone: str,
                           address: Optional[str] = None, description: Optional[str] = None,
                           cr_number: Optional[str] = None, vat_number: Optional[str] = None) -> Dict[str, Any]:
    """Edit identity fields. The balance travels on its own path (apply_credit_delta).

    Optional fields left as None keep their stored value; pass "" to clear one.
    """
    company = get_company(conn, doc_id)
    if company is None:
        raise NotFoundError(f"Company {doc_id} not found.")
    name, phone = _validate_identity(name, phone)
    fields = {"name": name, "phone": phone, "isSynced": 0}
    optional = {"address": address, "description": description, "crNumber": cr_number, "vatNumber": vat_number}
    for column, value in optional.items():
        if value is not None:
            fields[column] = _clean(value)
    db.update_fields(conn, COMPANIES, doc_id, fields)
    updated = get_company(conn, doc_id)
    _push_company_change(conn, cloud, doc_id, _company_identity_doc(updated), company["isSynced"])
    return get_company(conn, doc_id)


def delete_company(conn: sqlite3.Connection, cloud, doc_id: str) -> bool:
    """Remove the company (remote first when online). Its bills and receipts stay behind."""
    if cloud.is_online():
        cloud.delete(COMPANIES, doc_id)
    removed = db.delete(conn, COMPANIES, doc_id)
    if removed:
        log.info("Company %s deleted", doc_id)
    return removed


def company_transactions(conn: sqlite3.Connection, doc_id: str) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "invoices": list_invoices(conn, company_id=doc_id),
        "receipts": list_receipts(conn, company_id=doc_id),
    }


# ---------- COMPANY LEDGER ENGINE ----------
def _apply_local_delta(conn: sqlite3.Connection, company_id: str, delta: Decimal) -> Optional[Tuple[Decimal, bool]]:
    """Add delta to the stored outstanding and mark the row dirty. Returns (new, was_synced)."""
    row = db.get_row(conn, COMPANIES, company_id)
    if row is None:
        log.warning("Company %s no longer exists; balance change of %s skipped", company_id, delta)
        return None
    company = _company_from_row(row)
    new_value = to_money(company["outstanding"] + delta)
    db.update_fields(conn, COMPANIES, company_id, {"outstanding": money_str(new_value), "isSynced": 0})
    return new_value, company["isSynced"]


def _push_balances(conn: sqlite3.Connection, cloud, touched: List[Tuple[str, Decimal, bool]]):
    for company_id, new_value, was_synced in touched:
        _push_company_change(conn, cloud, company_id, {"outstanding": money_json(new_value)}, was_synced)


def apply_credit_delta(conn: sqlite3.Connection, cloud, company_id: str, delta: Any) -> Optional[Decimal]:
    """The single writer of Company.outstanding: local write first, then a best-effort push."""
    delta = to_money(delta)
    with db.transaction(conn):
        result = _apply_local_delta(conn, company_id, delta)
    if result is None:
        return None
    new_value, was_synced = result
    _push_balances(conn, cloud, [(company_id, new_value, was_synced)])
    return new_value


def set_company_outstanding(conn: sqlite3.Connection, cloud, doc_id: str, new_value: Any) -> Decimal:
    """Direct balance edit, applied as the difference to the current value."""
    company = get_company(conn, doc_id)
    if company is None:
        raise NotFoundError(f"Company {doc_id} not found.")
    try:
        target = to_money(new_value)
    except ValueError as exc:
        raise ValidationError(str(exc))
    result = apply_credit_delta(conn, cloud, doc_id, target - company["outstanding"])
    return result if result is not None else target


# ---------- INVOICES ----------
def reserve_invoice_number(conn: sqlite3.Connection) -> str:
    """Mint the next invoice number. The counter is persisted immediately, so cancelled
    invoices leave gaps."""
    return format_number(cfg.INVOICE_PREFIX, db.next_counter(conn, cfg.INVOICE_COUNTER_KEY))


def _newest_first_key(record: Dict[str, Any], *fields: str):
    for field in fields:
        parsed = parse_datetime(record.get(field))
        if parsed is not None:
            return parsed
    return dt.datetime.min


def get_invoice(conn: sqlite3.Connection, doc_id: str) -> Optional[Dict[str, Any]]:
    row = db.get_row(conn, "bills", doc_id)
    return decode_invoice_row(row) if row else None


def list_invoices(conn: sqlite3.Connection, company_id: Optional[str] = None,
                  query: Optional[str] = None) -> List[Dict[str, Any]]:
    where = {"companyDocId": company_id} if company_id else {}
    invoices = [decode_invoice_row(r) for r in db.get_all(conn, "bills", **where)]
    needle = _clean(query).lower()
    if needle:
        invoices = [i for i in invoices if needle in (i["invoiceNumber"] or "").lower()]
    invoices.sort(key=lambda i: _newest_first_key(i, "createdAt", "date"), reverse=True)
    return invoices


def save_invoice(conn: sqlite3.Connection, cloud, invoice: Dict[str, Any]) -> Dict[str, Any]:
    """Create or update a bill and move the affected balances in the same local transaction.

    invoice = {
      'docId': optional (new invoice when absent or unknown),
      'companyDocId': 'c-1',
      'invoiceNumber': optional (reserved earlier via reserve_invoice_number),
      'isCredit': True,
      'date': '2025-03-15T13:05:00',
      'items': [ {'docId': 'p-1', 'name': 'Crate', 'unitPrice': 1.5, 'quantity': 2, 'vatApplied': True} ]
    }
    """
    company_id = _clean(invoice.get("companyDocId"))
    if not company_id:
        raise ValidationError("No company selected.")
    raw_items = invoice.get("items") or []
    if not raw_items:
        raise ValidationError("No items added.")
    doc_id = _clean(invoice.get("docId")) or _new_doc_id()
    old = get_invoice(conn, doc_id)
    try:
        items = [normalize_line_item(it) for it in raw_items]
        is_credit = to_flag(invoice.get("isCredit"), "credit flag")
        date = normalize_date(invoice.get("date") or (old or {}).get("date"))
    except ValueError as exc:
        raise ValidationError(str(exc))

    company = get_company(conn, company_id)

    if old is not None and old["companyDocId"] == company_id:
        snapshot = {k: old.get(k) for k in ("companyName", "companyAddress", "companyCr", "companyVat")}
    elif company is not None:
        snapshot = {
            "companyName": company["name"],
            "companyAddress": company["address"],
            "companyCr": company["crNumber"],
            "companyVat": company["vatNumber"],
        }
    else:
        snapshot = {k: invoice.get(k) for k in ("companyName", "companyAddress", "companyCr", "companyVat")}

    number = (old or {}).get("invoiceNumber") or _clean(invoice.get("invoiceNumber")) or reserve_invoice_number(conn)
    now = iso_now()
    record = {
        "docId": doc_id,
        "companyDocId": company_id,
        "invoiceNumber": number,
        "isCredit": is_credit,
        "date": date,
        "createdAt": (old or {}).get("createdAt") or invoice.get("createdAt") or now,
        "updatedAt": now,
        "items": items,
    }
    record.update(snapshot)
    record["total"] = invoice_total(items)

    # one signed delta per affected company
    deltas: "OrderedDict[str, Decimal]" = OrderedDict()
    if old is not None and old["companyDocId"]:
        deltas[old["companyDocId"]] = -credit_contribution(old)
    deltas[company_id] = deltas.get(company_id, ZERO) + credit_contribution(record)

    touched = []
    with db.transaction(conn):
        db.upsert(conn, "bills", doc_id, {
            "companyDocId": company_id,
            "total": money_str(record["total"]),
            "date": date,
            "lineItemsJson": encode_invoice_payload(record),
        })
        for cid, delta in deltas.items():
            if delta == 0:
                continue
            result = _apply_local_delta(conn, cid, delta)
            if result is not None:
                touched.append((cid, result[0], result[1]))
    _push_balances(conn, cloud, touched)
    log.info("Invoice %s saved for company %s (total %s, %s)", number, company_id, record["total"],
             "credit" if record["isCredit"] else "cash")
    return get_invoice(conn, doc_id)


def delete_invoice(conn: sqlite3.Connection, cloud, doc_id: str) -> Dict[str, Any]:
    invoice = get_invoice(conn, doc_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {doc_id} not found.")
    contribution = credit_contribution(invoice)
    touched = []
    with db.transaction(conn):
        db.delete(conn, "bills", doc_id)
        if contribution != 0 and invoice["companyDocId"]:
            result = _apply_local_delta(conn, invoice["companyDocId"], -contribution)
            if result is not None:
                touched.append((invoice["companyDocId"], result[0], result[1]))
    _push_balances(conn, cloud, touched)
    log.info("Invoice %s deleted", invoice["invoiceNumber"] or doc_id)
    return invoice


# ---------- RECEIPTS ----------
def reserve_receipt_number(conn: sqlite3.Connection) -> str:
    return format_number(cfg.RECEIPT_PREFIX, db.next_counter(conn, cfg.RECEIPT_COUNTER_KEY))


def get_receipt(conn: sqlite3.Connection, doc_id: str) -> Optional[Dict[str, Any]]:
    row = db.get_row(conn, "receipts", doc_id)
    return decode_receipt_row(row) if row else None


def list_receipts(conn: sqlite3.Connection, company_id: Optional[str] = None,
                  query: Optional[str] = None) -> List[Dict[str, Any]]:
    where = {"companyDocId": company_id} if company_id else {}
    receipts = [decode_receipt_row(r) for r in db.get_all(conn, "receipts", **where)]
    needle = _clean(query).lower()
    if needle:
        receipts = [r for r in receipts if needle in (r["receiptNumber"] or "").lower()
                    or needle in (r["companyName"] or "").lower()]
    receipts.sort(key=lambda r: _newest_first_key(r, "date"), reverse=True)
    return receipts


def create_receipt(conn: sqlite3.Connection, cloud, company_id: str, amount: Any, date: Any = None,
                   description: Optional[str] = None, receipt_number: Optional[str] = None,
                   doc_id: Optional[str] = None) -> Dict[str, Any]:
    """Record a payment against a company's outstanding balance."""
    company_id = _clean(company_id)
    if not company_id:
        raise ValidationError("No company selected.")
    try:
        amount = to_money(amount)
        date = normalize_date(date)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if amount <= 0:
        raise ValidationError("Receipt amount must be > 0.")

    doc_id = _clean(doc_id) or _new_doc_id()
    now = iso_now()
    with db.transaction(conn):
        company = get_company(conn, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found.")
        current = company["outstanding"]
        if amount > current:
            raise ValidationError(
                f"Receipt amount cannot exceed the company's outstanding balance ({cfg.CURRENCY} {current})."
            )
        number = _clean(receipt_number) or reserve_receipt_number(conn)
        record = {
            "docId": doc_id,
            "companyDocId": company_id,
            "receiptNumber": number,
            "companyName": company["name"],
            "amount": amount,
            "date": date,
            "description": _clean(description),
            "createdAt": now,
            "updatedAt": now,
            "osAfterThisReceipt": to_money(current - amount),
        }
        db.upsert(conn, "receipts", doc_id, {
            "companyDocId": company_id,
            "amount": money_str(amount),
            "date": date,
            "extraJson": encode_receipt_payload(record),
        })
        new_value, was_synced = _apply_local_delta(conn, company_id, -amount)
    _push_balances(conn, cloud, [(company_id, new_value, was_synced)])
    log.info("Receipt %s recorded for company %s (amount %s)", number, company_id, amount)
    return get_receipt(conn, doc_id)


def delete_receipt(conn: sqlite3.Connection, cloud, doc_id: str) -> Dict[str, Any]:
    """Remove a receipt and give its full amount back to the company's balance."""
    receipt = get_receipt(conn, doc_id)
    if receipt is None:
        raise NotFoundError(f"Receipt {doc_id} not found.")
    touched = []
    with db.transaction(conn):
        db.delete(conn, "receipts", doc_id)
        if receipt["companyDocId"]:
            result = _apply_local_delta(conn, receipt["companyDocId"], receipt["amount"])
            if result is not None:
                touched.append((receipt["companyDocId"], result[0], result[1]))
    _push_balances(conn, cloud, touched)
    log.info("Receipt %s deleted", receipt["receiptNumber"] or doc_id)
    return receipt


# ---------- PRICE LIST ----------
def _price_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "docId": row["docId"],
        "itemName": row.get("itemName") or "",
        "price": to_money(row.get("price"), ZERO),
    }


def list_prices(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    prices = [_price_from_row(r) for r in db.get_all(conn, PRICES)]
    prices.sort(key=lambda p: (p["itemName"].lower(), p["docId"]))
    return prices


def search_prices(conn: sqlite3.Connection, query: Optional[str]) -> List[Dict[str, Any]]:
    needle = _clean(query).lower()
    prices = list_prices(conn)
    if not needle:
        return prices
    return [p for p in prices if needle in p["itemName"].lower()]


def _validate_price(item_name: Any, price: Any) -> Tuple[str, Decimal]:
    item_name = _clean(item_name)
    if not item_name:
        raise ValidationError("Item name is required.")
    try:
        value = to_money(price)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if value < 0:
        raise ValidationError("Price cannot be negative.")
    return item_name, value


def create_price(conn: sqlite3.Connection, cloud, item_name: str, price: Any,
                 doc_id: Optional[str] = None) -> Dict[str, Any]:
    """Online-only: write the remote document, then the local row."""
    item_name, value = _validate_price(item_name, price)
    _require_online(cloud, "create item")
    doc_id = _clean(doc_id) or _new_doc_id()
    cloud.set(PRICES, doc_id, {"itemName": item_name, "price": money_json(value)})
    db.upsert(conn, PRICES, doc_id, {"itemName": item_name, "price": money_str(value)})
    return _price_from_row(db.get_row(conn, PRICES, doc_id))


def update_price(conn: sqlite3.Connection, cloud, doc_id: str, item_name: str, price: Any) -> Dict[str, Any]:
    item_name, value = _validate_price(item_name, price)
    _require_online(cloud, "update price")
    cloud.set(PRICES, doc_id, {"itemName": item_name, "price": money_json(value)}, merge=True)
    db.upsert(conn, PRICES, doc_id, {"itemName": item_name, "price": money_str(value)})
    return _price_from_row(db.get_row(conn, PRICES, doc_id))


def delete_price(conn: sqlite3.Connection, cloud, doc_id: str) -> bool:
    _require_online(cloud, "delete item")
    cloud.delete(PRICES, doc_id)
    return db.delete(conn, PRICES, doc_id)


# ---------- CLOUD SYNC ----------
def pull_prices_from_cloud(conn: sqlite3.Connection, cloud) -> int:
    """Mirror the remote price list: the local table is cleared and refilled."""
    _require_online(cloud, "pull from cloud")
    docs = cloud.get(PRICES)
    with db.transaction(conn):
        db.clear(conn, PRICES)
        for doc_id, data in docs.items():
            db.upsert(conn, PRICES, doc_id, {
                "itemName": _clean(data.get("itemName")) or "Unknown",
                "price": money_str(to_money(data.get("price"), ZERO)),
            })
    log.info("Pulled %d prices from cloud", len(docs))
    return len(docs)


def pull_companies_from_cloud(conn: sqlite3.Connection, cloud) -> int:
    """Overwrite local companies with the remote copies (remote wins). Local-only
    companies are left alone."""
    _require_online(cloud, "pull from cloud")
    docs = cloud.get(COMPANIES)
    with db.transaction(conn):
        for doc_id, data in docs.items():
            existing = db.get_row(conn, COMPANIES, doc_id)
            if existing is not None and not _company_from_row(existing)["isSynced"]:
                log.warning("Pull overwrites unsynced local changes of company %s", doc_id)
            db.upsert(conn, COMPANIES, doc_id, {
                "name": _clean(data.get("name")) or "Unknown",
                "phone": _clean(data.get("phone")),
                "address": _clean(data.get("address")),
                "description": _clean(data.get("description")),
                "outstanding": money_str(to_money(data.get("outstanding"), ZERO)),
                "isSynced": 1,
                "crNumber": _clean(data.get("crNumber")),
                "vatNumber": _clean(data.get("vatNumber")),
            })
    log.info("Pulled %d companies from cloud", len(docs))
    return len(docs)


def sync_all_unsynced_companies(conn: sqlite3.Connection, cloud) -> int:
    """Push every dirty company in full. Stops at the first remote failure; companies
    already pushed stay synced."""
    _require_online(cloud, "sync now")
    pushed = 0
    for company in dirty_companies(conn):
        cloud.set(COMPANIES, company["docId"], _company_remote_doc(company))
        db.update_fields(conn, COMPANIES, company["docId"], {"isSynced": 1})
        pushed += 1
    log.info("Pushed %d unsynced companies", pushed)
    return pushed


# ---------- NOTES ----------
def _note_day(day: Any) -> str:
    parsed = parse_datetime(day)
    if parsed is None:
        raise ValidationError(f"Invalid date: {day!r}")
    return parsed.date().isoformat()


def get_note(conn: sqlite3.Connection, day: Any) -> str:
    return db.get_note(conn, _note_day(day)) or ""


def set_note(conn: sqlite3.Connection, day: Any, note: Optional[str]) -> str:
    key = _note_day(day)
    db.set_note(conn, key, note or "")
    return key


def list_notes(conn: sqlite3.Connection) -> Dict[str, str]:
    return db.get_all_notes(conn)


def status(conn: sqlite3.Connection, cloud) -> Dict[str, Any]:
    counts = {table: db.count(conn, table) for table in ("companies", "prices", "bills", "receipts")}
    return {
        "online": cloud.is_online(),
        "unsynced_companies": len(dirty_companies(conn)),
        "counts": counts,
        "schema_version": db.schema_version(conn),
    }


# ---------- CLI ----------
def main(argv: Optional[List[str]] = None) -> int:
    import ledger_report
    import price_import
    from cloud_store import build_cloud_store

    ap = argparse.ArgumentParser(description="Billing core service")
    ap.add_argument("--init", action="store_true", help="Create or migrate the local database")
    ap.add_argument("--pull", action="store_true", help="Pull companies and prices from the cloud")
    ap.add_argument("--sync", action="store_true", help="Push unsynced companies to the cloud")
    ap.add_argument("--import-prices", metavar="FILE", help="Upload a .xlsx/.csv price sheet to the cloud")
    ap.add_argument("--ledger", metavar="COMPANY", help="Print the ledger of a company id")
    ap.add_argument("--start", help="Ledger start date (YYYY-MM-DD)")
    ap.add_argument("--end", help="Ledger end date (YYYY-MM-DD)")
    ap.add_argument("--db", default=cfg.DB_PATH, help="Path to SQLite DB")
    args = ap.parse_args(argv)

    cfg.setup_logging()
    conn = db.connect(args.db)
    cloud = build_cloud_store()
    try:
        if args.init:
            log.info("Local database ready at %s (schema v%d)", args.db, db.schema_version(conn))
        if args.sync:
            sync_all_unsynced_companies(conn, cloud)
        if args.pull:
            pull_companies_from_cloud(conn, cloud)
            pull_prices_from_cloud(conn, cloud)
        if args.import_prices:
            result = price_import.import_price_file(cloud, args.import_prices)
            print(json.dumps(result))
        if args.ledger:
            today = dt.date.today()
            start = dt.date.fromisoformat(args.start) if args.start else today.replace(day=1)
            end = dt.date.fromisoformat(args.end) if args.end else today
            report = ledger_report.build_ledger(conn, args.ledger, start, end)
            print(json.dumps(to_json_dict(report), indent=2))
    except (BillingError, RemoteStoreError) as exc:
        log.error("%s", exc)
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
