"""
Invoice / receipt transaction model.

Bills and receipts keep their details in an embedded JSON blob next to the
indexed columns (bills.lineItemsJson, receipts.extraJson). Reading never
fails on a bad blob: the record comes back with default fields and an
UNKNOWN pay mode instead.
"""
import datetime as dt
import json
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import billing_config as cfg

log = logging.getLogger("billing.models")

MONEY_QUANT = Decimal(1).scaleb(-cfg.MONEY_PLACES)
ZERO = Decimal("0").quantize(MONEY_QUANT)
VAT_MULTIPLIER = Decimal(cfg.VAT_MULTIPLIER)

PAY_MODE_CREDIT = "Credit"
PAY_MODE_CASH = "Cash"
PAY_MODE_UNKNOWN = "UNKNOWN"


# ---------- MONEY ----------
_NO_DEFAULT = object()


def to_money(value: Any, default: Any = _NO_DEFAULT) -> Decimal:
    """Decimal quantized to 3 places. Raises ValueError on junk unless a default is given."""
    try:
        if isinstance(value, bool) or value is None or value == "":
            raise InvalidOperation
        dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not dec.is_finite():
            raise InvalidOperation
        return dec.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        if default is _NO_DEFAULT:
            raise ValueError(f"Not a valid amount: {value!r}")
        return default


def money_str(value: Decimal) -> str:
    """Storage form of a money value ('300.000')."""
    return str(to_money(value))


def money_json(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(to_money(value))


# ---------- DATES ----------
def iso_now() -> str:
    return dt.datetime.now().replace(microsecond=0).isoformat()


def parse_datetime(value: Any) -> Optional[dt.datetime]:
    """Parse an ISO date/datetime into a naive local datetime (aware values are converted to local time)."""
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, dt.date):
        parsed = dt.datetime.combine(value, dt.time.min)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def transaction_datetime(value: Any, doc_id: str = "") -> dt.datetime:
    """Date of a stored transaction; unparseable values fall back to now."""
    parsed = parse_datetime(value)
    if parsed is None:
        log.warning("Unparseable date %r on %s; treating it as now", value, doc_id or "record")
        return dt.datetime.now()
    return parsed


def normalize_date(value: Any) -> str:
    """ISO string for a user-supplied transaction date. Raises ValueError when unparseable."""
    if value in (None, ""):
        return iso_now()
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed.isoformat()


# ---------- FLAGS ----------
def to_flag(value: Any, label: str = "flag") -> bool:
    """Strict boolean: real bools and 'true'/'false' strings; None means False."""
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Invalid {label}: {value!r}")


# ---------- NUMBERING ----------
def format_number(prefix: str, counter: int) -> str:
    return f"{prefix}{str(counter).zfill(cfg.NUMBER_WIDTH)}"


# ---------- LINE ITEMS / TOTALS ----------
def normalize_line_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Validate one invoice line. Raises ValueError with a user-facing message."""
    if not isinstance(item, dict):
        raise ValueError("Line item must be an object")
    name = str(item.get("name") or "").strip()
    if not name:
        raise ValueError("Line item name is required")
    qty_raw = item.get("quantity", 1)
    if isinstance(qty_raw, bool):
        raise ValueError(f"Invalid quantity for {name}")
    try:
        quantity = int(qty_raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid quantity for {name}")
    if quantity < 1 or quantity != Decimal(str(qty_raw)):
        raise ValueError(f"Quantity for {name} must be a whole number of at least 1")
    unit_price = to_money(item.get("unitPrice"))
    if unit_price < 0:
        raise ValueError(f"Unit price for {name} cannot be negative")
    return {
        "docId": item.get("docId") or "",
        "name": name,
        "unitPrice": unit_price,
        "quantity": quantity,
        "vatApplied": to_flag(item.get("vatApplied"), f"VAT flag for {name}"),
    }


def line_total(item: Dict[str, Any]) -> Decimal:
    base = Decimal(str(item["unitPrice"])) * int(item["quantity"])
    return base * VAT_MULTIPLIER if item.get("vatApplied") else base


def invoice_total(items: List[Dict[str, Any]]) -> Decimal:
    total = Decimal("0")
    for item in items:
        total += line_total(item)
    return to_money(total)


def credit_contribution(invoice: Optional[Dict[str, Any]]) -> Decimal:
    """What an invoice adds to its company's outstanding (0 for cash or no invoice)."""
    if not invoice or not invoice.get("isCredit"):
        return ZERO
    return to_money(invoice.get("total"), ZERO)


# ---------- INVOICE PAYLOAD ----------
def encode_invoice_payload(invoice: Dict[str, Any]) -> str:
    data = {
        "invoiceNumber": invoice.get("invoiceNumber"),
        "isCredit": bool(invoice.get("isCredit")),
        "companyName": invoice.get("companyName"),
        "companyAddress": invoice.get("companyAddress"),
        "companyCr": invoice.get("companyCr"),
        "companyVat": invoice.get("companyVat"),
        "createdAt": invoice.get("createdAt"),
        "updatedAt": invoice.get("updatedAt"),
        "items": [
            {
                "docId": it.get("docId") or "",
                "name": it["name"],
                "unitPrice": money_json(it["unitPrice"]),
                "quantity": int(it["quantity"]),
                "vatApplied": bool(it.get("vatApplied")),
            }
            for it in invoice.get("items") or []
        ],
    }
    return json.dumps(data, separators=(",", ":"))


def _invoice_defaults(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "docId": row.get("docId"),
        "companyDocId": row.get("companyDocId"),
        "total": to_money(row.get("total"), ZERO),
        "date": row.get("date"),
        "invoiceNumber": None,
        "isCredit": False,
        "payMode": PAY_MODE_UNKNOWN,
        "companyName": None,
        "companyAddress": None,
        "companyCr": None,
        "companyVat": None,
        "createdAt": None,
        "updatedAt": None,
        "items": [],
    }


def decode_invoice_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Bill row -> invoice dict. A missing or corrupt blob degrades to defaults."""
    invoice = _invoice_defaults(row)
    raw = row.get("lineItemsJson")
    if not raw:
        return invoice
    try:
        decoded = json.loads(raw)
        if not isinstance(decoded, dict):
            raise ValueError("payload is not an object")
        items = []
        for it in decoded.get("items") or []:
            items.append({
                "docId": it.get("docId") or "",
                "name": it["name"],
                "unitPrice": to_money(it["unitPrice"]),
                "quantity": int(it["quantity"]),
                "vatApplied": bool(it.get("vatApplied")),
            })
        is_credit = decoded.get("isCredit") is True
        invoice.update({
            "invoiceNumber": decoded.get("invoiceNumber"),
            "isCredit": is_credit,
            "payMode": PAY_MODE_CREDIT if is_credit else PAY_MODE_CASH,
            "companyName": decoded.get("companyName"),
            "companyAddress": decoded.get("companyAddress"),
            "companyCr": decoded.get("companyCr"),
            "companyVat": decoded.get("companyVat"),
            "createdAt": decoded.get("createdAt"),
            "updatedAt": decoded.get("updatedAt"),
            "items": items,
        })
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        log.warning("Malformed invoice payload on bill %s: %s", row.get("docId"), exc)
        return _invoice_defaults(row)
    return invoice


# ---------- RECEIPT PAYLOAD ----------
def encode_receipt_payload(receipt: Dict[str, Any]) -> str:
    data = {
        "receiptNumber": receipt.get("receiptNumber"),
        "companyName": receipt.get("companyName"),
        "amount": money_json(receipt.get("amount")),
        "description": receipt.get("description") or "",
        "createdAt": receipt.get("createdAt"),
        "updatedAt": receipt.get("updatedAt"),
        "osAfterThisReceipt": money_json(receipt.get("osAfterThisReceipt")),
    }
    return json.dumps(data, separators=(",", ":"))


def _receipt_defaults(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "docId": row.get("docId"),
        "companyDocId": row.get("companyDocId"),
        "amount": to_money(row.get("amount"), ZERO),
        "date": row.get("date"),
        "receiptNumber": None,
        "companyName": None,
        "description": None,
        "createdAt": None,
        "updatedAt": None,
        "osAfterThisReceipt": None,
    }


def decode_receipt_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Receipt row -> receipt dict. The amount column stays authoritative."""
    receipt = _receipt_defaults(row)
    raw = row.get("extraJson")
    if not raw:
        return receipt
    try:
        decoded = json.loads(raw)
        if not isinstance(decoded, dict):
            raise ValueError("payload is not an object")
        os_after = decoded.get("osAfterThisReceipt")
        receipt.update({
            "receiptNumber": decoded.get("receiptNumber"),
            "companyName": decoded.get("companyName"),
            "description": decoded.get("description"),
            "createdAt": decoded.get("createdAt"),
            "updatedAt": decoded.get("updatedAt"),
            "osAfterThisReceipt": to_money(os_after) if os_after is not None else None,
        })
    except (ValueError, TypeError, AttributeError) as exc:
        log.warning("Malformed receipt payload on receipt %s: %s", row.get("docId"), exc)
        return _receipt_defaults(row)
    return receipt


def to_json_dict(record: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of an entity with Decimals turned into JSON numbers (API / CLI output)."""
    out: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, Decimal):
            out[key] = float(value)
        elif isinstance(value, list):
            out[key] = [to_json_dict(v) if isinstance(v, dict) else v for v in value]
        elif isinstance(value, dict):
            out[key] = to_json_dict(value)
        elif isinstance(value, (dt.datetime, dt.date)):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out
