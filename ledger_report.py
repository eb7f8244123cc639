"""
Statement of account for one company over a date range.

Recomputed from the local bills/receipts on every call; nothing here is
cached or stored, and the live Company.outstanding is never consulted.
"""
import datetime as dt
import logging
import sqlite3
from decimal import Decimal
from typing import Any, Dict, List

import billing_config as cfg
import billing_db as db
from billing_models import ZERO, decode_invoice_row, decode_receipt_row, to_money, transaction_datetime
from billing_service import ValidationError

log = logging.getLogger("billing.ledger")

TYPE_INVOICE = "Sales Invoice"
TYPE_RECEIPT = "Receipt"


def _as_date(value: Any, label: str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"Invalid {label} date: {value!r}")


def _invoice_row(invoice: Dict[str, Any], when: dt.datetime) -> Dict[str, Any]:
    total = invoice["total"]
    credit_sale = invoice["isCredit"]
    return {
        "date": when,
        "particulars": "By credit Sales" if credit_sale else "By cash Sales",
        "type": TYPE_INVOICE,
        "referenceNo": invoice["invoiceNumber"] or "UNKNOWN",
        "amount": total,
        "debit": total if credit_sale else ZERO,
        "credit": ZERO,
    }


def _receipt_row(receipt: Dict[str, Any], when: dt.datetime) -> Dict[str, Any]:
    amount = receipt["amount"]
    return {
        "date": when,
        "particulars": "By payment",
        "type": TYPE_RECEIPT,
        "referenceNo": receipt["receiptNumber"] or "UNKNOWN",
        "amount": amount,
        "debit": ZERO,
        "credit": amount,
    }


def _company_rows(conn: sqlite3.Connection, company_id: str) -> List[Dict[str, Any]]:
    rows = []
    for raw in db.get_all(conn, "bills", companyDocId=company_id):
        invoice = decode_invoice_row(raw)
        rows.append(_invoice_row(invoice, transaction_datetime(invoice["date"], invoice["docId"])))
    for raw in db.get_all(conn, "receipts", companyDocId=company_id):
        receipt = decode_receipt_row(raw)
        rows.append(_receipt_row(receipt, transaction_datetime(receipt["date"], receipt["docId"])))
    return rows


def build_ledger(conn: sqlite3.Connection, company_id: str, start: Any, end: Any) -> Dict[str, Any]:
    """Opening balance, window rows with running balance, and closing balance.

    The window is [start, end] in whole days: rows dated before start fold
    into the opening balance, rows up to (not including) end + 1 day are listed.
    """
    start_day = _as_date(start, "start")
    end_day = _as_date(end, "end")
    if end_day < start_day:
        raise ValidationError("End date is before start date.")
    window_start = dt.datetime.combine(start_day, dt.time.min)
    window_end = dt.datetime.combine(end_day + dt.timedelta(days=1), dt.time.min)

    opening = Decimal("0")
    window = []
    for row in _company_rows(conn, company_id):
        if row["date"] < window_start:
            opening += row["debit"] - row["credit"]
        elif row["date"] < window_end:
            window.append(row)
    opening = to_money(opening)

    # stable: invoices were collected before receipts, so same-instant debits come first
    window.sort(key=lambda r: r["date"])
    balance = opening
    total_debit = total_credit = ZERO
    for row in window:
        balance = to_money(balance + row["debit"] - row["credit"])
        total_debit += row["debit"]
        total_credit += row["credit"]
        row["balance"] = balance
        row["date"] = row["date"].isoformat()

    company = db.get_row(conn, "companies", company_id)
    report = {
        "companyDocId": company_id,
        "companyName": company["name"] if company else None,
        "currency": cfg.CURRENCY,
        "start": start_day.isoformat(),
        "end": end_day.isoformat(),
        "openingBalance": opening,
        "rows": window,
        "totalDebit": to_money(total_debit),
        "totalCredit": to_money(total_credit),
        "closingBalance": balance,
    }
    log.debug("Ledger for %s %s..%s: %d rows", company_id, report["start"], report["end"], len(window))
    return report
