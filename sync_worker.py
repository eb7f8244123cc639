#!/usr/bin/env python3
"""
Billing Sync Worker

One pass per run (no loop); schedule it externally if needed.

Modes:
  - push: push every unsynced company to the cloud
  - pull: pull companies and prices from the cloud (remote wins)
  - full: push, then pull

Env vars:
  BILLING_DB_PATH  SQLite DB path (default: billing.db)
  SYNC_MODE        'push' | 'pull' | 'full' (default: 'full')

Run:
  python sync_worker.py
"""
import logging
import os
import sqlite3
import sys

import billing_config as cfg
import billing_db as db
import billing_service as bs
from cloud_store import RemoteStoreError, build_cloud_store

log = logging.getLogger("billing.sync")

SYNC_MODE = os.environ.get('SYNC_MODE') or 'full'


def run_push(conn: sqlite3.Connection, cloud) -> int:
    return bs.sync_all_unsynced_companies(conn, cloud)


def run_pull(conn: sqlite3.Connection, cloud) -> int:
    companies = bs.pull_companies_from_cloud(conn, cloud)
    prices = bs.pull_prices_from_cloud(conn, cloud)
    return companies + prices


def run_once(conn: sqlite3.Connection, cloud, mode: str) -> dict:
    mode = (mode or '').strip().lower() or 'full'
    if mode not in ('push', 'pull', 'full'):
        raise bs.ValidationError(f"Unknown SYNC_MODE: {mode}")
    result = {'mode': mode, 'pushed': 0, 'pulled': 0}
    if mode in ('push', 'full'):
        result['pushed'] = run_push(conn, cloud)
    if mode in ('pull', 'full'):
        result['pulled'] = run_pull(conn, cloud)
    return result


def main() -> int:
    cfg.setup_logging()
    log.info("Starting sync pass in mode=%s, db=%s", SYNC_MODE, cfg.DB_PATH)
    conn = db.connect(cfg.DB_PATH)
    try:
        result = run_once(conn, build_cloud_store(), SYNC_MODE)
    except bs.OfflineError as exc:
        log.error("Sync skipped: %s", exc)
        return 2
    except (bs.BillingError, RemoteStoreError) as exc:
        log.error("Sync failed: %s", exc)
        return 1
    finally:
        conn.close()
    log.info("Sync pass done: pushed=%d pulled=%d", result['pushed'], result['pulled'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
