#!/usr/bin/env python3
# Local store: SQLite tables keyed by document id + settings counters + notes
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import billing_config as cfg

log = logging.getLogger("billing.db")

# table -> key column
TABLE_KEYS = {
    "prices": "docId",
    "companies": "docId",
    "bills": "docId",
    "receipts": "docId",
    "app_settings": "key",
    "notes": "date",
}

TABLE_COLUMNS = {
    "prices": ("docId", "itemName", "price"),
    "companies": ("docId", "name", "phone", "address", "description", "outstanding",
                  "isSynced", "crNumber", "vatNumber"),
    "bills": ("docId", "companyDocId", "total", "date", "lineItemsJson"),
    "receipts": ("docId", "companyDocId", "amount", "date", "extraJson"),
    "app_settings": ("key", "value"),
    "notes": ("date", "note"),
}


def connect(db_path: str = cfg.DB_PATH) -> sqlite3.Connection:
    """Open the local store and bring its schema up to date.

    The connection runs in autocommit mode so a single adapter call is atomic
    for its own row; multi-row writes go through transaction().
    """
    conn = sqlite3.connect(db_path, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    migrate(conn)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """BEGIN IMMEDIATE ... COMMIT, rolled back on error. Nested use joins the outer one."""
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


# ---------- SCHEMA MIGRATIONS ----------
def _columns(conn: sqlite3.Connection, table: str) -> set:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _add_column(conn: sqlite3.Connection, table: str, column: str, decl: str):
    if column not in _columns(conn, table):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")


def _v1_prices(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS prices (
      docId TEXT PRIMARY KEY,
      itemName TEXT NOT NULL,
      price REAL NOT NULL
    )
    """)


def _v2_companies_bills_receipts(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS companies (
      docId TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      phone TEXT NOT NULL,
      address TEXT,
      description TEXT,
      outstanding REAL NOT NULL
    )
    """)
    conn.execute("""
    CREATE TABLE IF NOT EXISTS bills (
      docId TEXT PRIMARY KEY,
      companyDocId TEXT NOT NULL,
      total REAL NOT NULL,
      date TEXT NOT NULL
    )
    """)
    conn.execute("""
    CREATE TABLE IF NOT EXISTS receipts (
      docId TEXT PRIMARY KEY,
      companyDocId TEXT NOT NULL,
      amount REAL NOT NULL,
      date TEXT NOT NULL
    )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_bills_company ON bills(companyDocId)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_receipts_company ON receipts(companyDocId)")


def _v3_company_synced_flag(conn):
    _add_column(conn, "companies", "isSynced", "INTEGER NOT NULL DEFAULT 1")


def _v4_bill_payload(conn):
    _add_column(conn, "bills", "lineItemsJson", "TEXT")


def _v5_settings(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS app_settings (
      key TEXT PRIMARY KEY,
      value TEXT
    )
    """)


def _v6_receipt_payload(conn):
    _add_column(conn, "receipts", "extraJson", "TEXT")


def _v7_company_registration(conn):
    _add_column(conn, "companies", "crNumber", "TEXT")
    _add_column(conn, "companies", "vatNumber", "TEXT")


def _v8_notes(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS notes (
      date TEXT PRIMARY KEY,
      note TEXT
    )
    """)


MIGRATIONS: List[Callable[[sqlite3.Connection], None]] = [
    _v1_prices,
    _v2_companies_bills_receipts,
    _v3_company_synced_flag,
    _v4_bill_payload,
    _v5_settings,
    _v6_receipt_payload,
    _v7_company_registration,
    _v8_notes,
]
SCHEMA_VERSION = len(MIGRATIONS)


def schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def migrate(conn: sqlite3.Connection) -> int:
    """Apply every additive step above the stored user_version. Returns the new version."""
    current = schema_version(conn)
    for version, step in enumerate(MIGRATIONS, start=1):
        if version <= current:
            continue
        with transaction(conn):
            step(conn)
            conn.execute(f"PRAGMA user_version = {version}")
        log.info("Local schema migrated to version %d", version)
    return max(current, SCHEMA_VERSION)


# ---------- GENERIC ROW ACCESS ----------
def _check_table(table: str) -> str:
    if table not in TABLE_KEYS:
        raise ValueError(f"Unknown table: {table}")
    return TABLE_KEYS[table]


def _check_columns(table: str, names) -> None:
    allowed = TABLE_COLUMNS[table]
    for name in names:
        if name not in allowed:
            raise ValueError(f"Unknown column {name} for table {table}")


def upsert(conn: sqlite3.Connection, table: str, key: str, row: Dict[str, Any]):
    """Insert the row or overwrite the existing one with the same key."""
    key_col = _check_table(table)
    data = dict(row)
    data[key_col] = key
    cols = list(data.keys())
    _check_columns(table, cols)
    updates = ", ".join(f"{c}=excluded.{c}" for c in cols if c != key_col)
    sql = (
        f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(':' + c for c in cols)}) "
        f"ON CONFLICT({key_col}) DO "
        + (f"UPDATE SET {updates}" if updates else "NOTHING")
    )
    conn.execute(sql, data)


def update_fields(conn: sqlite3.Connection, table: str, key: str, fields: Dict[str, Any]) -> bool:
    """Update only the given columns of an existing row. Returns False when no row matched."""
    key_col = _check_table(table)
    if not fields:
        return get_row(conn, table, key) is not None
    _check_columns(table, fields.keys())
    assignments = ", ".join(f"{c}=:{c}" for c in fields)
    params = dict(fields)
    params["_key"] = key
    cur = conn.execute(f"UPDATE {table} SET {assignments} WHERE {key_col}=:_key", params)
    return cur.rowcount > 0


def get_row(conn: sqlite3.Connection, table: str, key: str) -> Optional[Dict[str, Any]]:
    key_col = _check_table(table)
    row = conn.execute(f"SELECT * FROM {table} WHERE {key_col}=?", (key,)).fetchone()
    return dict(row) if row else None


def get_all(conn: sqlite3.Connection, table: str, **where: Any) -> List[Dict[str, Any]]:
    key_col = _check_table(table)
    _check_columns(table, where.keys())
    sql = f"SELECT * FROM {table}"
    if where:
        sql += " WHERE " + " AND ".join(f"{c}=:{c}" for c in where)
    sql += f" ORDER BY {key_col}"
    return [dict(r) for r in conn.execute(sql, where).fetchall()]


def count(conn: sqlite3.Connection, table: str) -> int:
    _check_table(table)
    return int(conn.execute(f"SELECT COUNT(*) AS c FROM {table}").fetchone()["c"])


def delete(conn: sqlite3.Connection, table: str, key: str) -> bool:
    key_col = _check_table(table)
    cur = conn.execute(f"DELETE FROM {table} WHERE {key_col}=?", (key,))
    return cur.rowcount > 0


def clear(conn: sqlite3.Connection, table: str):
    _check_table(table)
    conn.execute(f"DELETE FROM {table}")


# ---------- SETTINGS / COUNTERS ----------
def get_setting(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM app_settings WHERE key=?", (key,)).fetchone()
    return row["value"] if row else None


def set_setting(conn: sqlite3.Connection, key: str, value: str):
    upsert(conn, "app_settings", key, {"value": str(value)})


def next_counter(conn: sqlite3.Connection, key: str) -> int:
    """Read-increment-write a persistent counter in one transaction; returns the new value."""
    with transaction(conn):
        raw = get_setting(conn, key)
        try:
            current = int(raw) if raw is not None else 0
        except ValueError:
            log.warning("Counter %s held non-integer value %r; restarting from 0", key, raw)
            current = 0
        value = current + 1
        set_setting(conn, key, str(value))
    return value


# ---------- NOTES ----------
def get_note(conn: sqlite3.Connection, day: str) -> Optional[str]:
    row = conn.execute("SELECT note FROM notes WHERE date=?", (day,)).fetchone()
    return row["note"] if row else None


def set_note(conn: sqlite3.Connection, day: str, note: str):
    upsert(conn, "notes", day, {"note": note})


def get_all_notes(conn: sqlite3.Connection) -> Dict[str, str]:
    return {r["date"]: r["note"] or "" for r in conn.execute("SELECT date, note FROM notes ORDER BY date")}
