from flask import Flask, request, jsonify
import datetime as dt
import logging
from contextlib import contextmanager
from typing import Any, Dict, List

import billing_config as cfg
import billing_db as db
import billing_service as bs
import ledger_report
from billing_models import to_json_dict
from cloud_store import RemoteStoreError, build_cloud_store

app = Flask(__name__)

app.logger.setLevel(getattr(logging, cfg.LOG_LEVEL, logging.INFO))
logging.getLogger('werkzeug').setLevel(getattr(logging, cfg.LOG_LEVEL, logging.INFO))

DB_PATH = cfg.DB_PATH
CLOUD = build_cloud_store()


@contextmanager
def _db():
    conn = db.connect(DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _dump(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_json_dict(r) for r in records]


def _fail(exc: Exception):
    if isinstance(exc, bs.ValidationError):
        code = 400
    elif isinstance(exc, bs.NotFoundError):
        code = 404
    elif isinstance(exc, bs.OfflineError):
        code = 503
    elif isinstance(exc, RemoteStoreError):
        app.logger.warning('Remote store call failed: %s', exc)
        code = 502
    else:
        app.logger.exception('Unhandled error in %s %s', request.method, request.path)
        code = 500
    return jsonify({'status': 'error', 'message': str(exc)}), code


# ---------- companies ----------
@app.route('/api/companies')
def api_companies():
    try:
        with _db() as conn:
            return jsonify({'status': 'success', 'companies': _dump(bs.list_companies(conn))})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies', methods=['POST'])
def api_company_create():
    data = _body()
    try:
        with _db() as conn:
            company = bs.create_company(
                conn, CLOUD, data.get('name'), data.get('phone'),
                address=data.get('address'), description=data.get('description'),
                cr_number=data.get('crNumber'), vat_number=data.get('vatNumber'),
                doc_id=data.get('docId'),
            )
            return jsonify({'status': 'success', 'company': to_json_dict(company)}), 201
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/<doc_id>')
def api_company_get(doc_id):
    try:
        with _db() as conn:
            company = bs.get_company(conn, doc_id)
            if company is None:
                raise bs.NotFoundError(f'Company {doc_id} not found.')
            return jsonify({'status': 'success', 'company': to_json_dict(company)})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/<doc_id>', methods=['PUT'])
def api_company_update(doc_id):
    data = _body()
    try:
        with _db() as conn:
            company = bs.update_company_details(
                conn, CLOUD, doc_id, data.get('name'), data.get('phone'),
                address=data.get('address'), description=data.get('description'),
                cr_number=data.get('crNumber'), vat_number=data.get('vatNumber'),
            )
            return jsonify({'status': 'success', 'company': to_json_dict(company)})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/<doc_id>', methods=['DELETE'])
def api_company_delete(doc_id):
    try:
        with _db() as conn:
            if not bs.delete_company(conn, CLOUD, doc_id):
                raise bs.NotFoundError(f'Company {doc_id} not found.')
            return jsonify({'status': 'success', 'message': 'Company deleted'})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/<doc_id>/outstanding', methods=['PUT'])
def api_company_outstanding(doc_id):
    data = _body()
    try:
        with _db() as conn:
            bs.set_company_outstanding(conn, CLOUD, doc_id, data.get('outstanding'))
            return jsonify({'status': 'success', 'company': to_json_dict(bs.get_company(conn, doc_id))})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/<doc_id>/transactions')
def api_company_transactions(doc_id):
    try:
        with _db() as conn:
            found = bs.company_transactions(conn, doc_id)
            return jsonify({
                'status': 'success',
                'invoices': _dump(found['invoices']),
                'receipts': _dump(found['receipts']),
            })
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/pull', methods=['POST'])
def api_companies_pull():
    try:
        with _db() as conn:
            pulled = bs.pull_companies_from_cloud(conn, CLOUD)
            return jsonify({'status': 'success', 'message': f'Pulled {pulled} companies', 'count': pulled})
    except Exception as e:
        return _fail(e)


@app.route('/api/companies/sync', methods=['POST'])
def api_companies_sync():
    try:
        with _db() as conn:
            pushed = bs.sync_all_unsynced_companies(conn, CLOUD)
            return jsonify({'status': 'success', 'message': f'Synced {pushed} companies', 'count': pushed})
    except Exception as e:
        return _fail(e)


# ---------- prices ----------
@app.route('/api/prices')
def api_prices():
    try:
        with _db() as conn:
            prices = bs.search_prices(conn, request.args.get('q'))
            return jsonify({'status': 'success', 'prices': _dump(prices)})
    except Exception as e:
        return _fail(e)


@app.route('/api/prices', methods=['POST'])
def api_price_create():
    data = _body()
    try:
        with _db() as conn:
            price = bs.create_price(conn, CLOUD, data.get('itemName'), data.get('price'), doc_id=data.get('docId'))
            return jsonify({'status': 'success', 'price': to_json_dict(price)}), 201
    except Exception as e:
        return _fail(e)


@app.route('/api/prices/<doc_id>', methods=['PUT'])
def api_price_update(doc_id):
    data = _body()
    try:
        with _db() as conn:
            price = bs.update_price(conn, CLOUD, doc_id, data.get('itemName'), data.get('price'))
            return jsonify({'status': 'success', 'price': to_json_dict(price)})
    except Exception as e:
        return _fail(e)


@app.route('/api/prices/<doc_id>', methods=['DELETE'])
def api_price_delete(doc_id):
    try:
        with _db() as conn:
            bs.delete_price(conn, CLOUD, doc_id)
            return jsonify({'status': 'success', 'message': 'Item deleted'})
    except Exception as e:
        return _fail(e)


@app.route('/api/prices/pull', methods=['POST'])
def api_prices_pull():
    try:
        with _db() as conn:
            pulled = bs.pull_prices_from_cloud(conn, CLOUD)
            return jsonify({'status': 'success', 'message': f'Pulled {pulled} prices', 'count': pulled})
    except Exception as e:
        return _fail(e)


# ---------- invoices ----------
@app.route('/api/invoices')
def api_invoices():
    try:
        with _db() as conn:
            invoices = bs.list_invoices(conn, company_id=request.args.get('company'), query=request.args.get('q'))
            return jsonify({'status': 'success', 'invoices': _dump(invoices)})
    except Exception as e:
        return _fail(e)


@app.route('/api/invoices', methods=['POST'])
def api_invoice_save():
    try:
        with _db() as conn:
            invoice = bs.save_invoice(conn, CLOUD, _body())
            return jsonify({'status': 'success', 'invoice': to_json_dict(invoice)})
    except Exception as e:
        return _fail(e)


@app.route('/api/invoices/number', methods=['POST'])
def api_invoice_number():
    try:
        with _db() as conn:
            return jsonify({'status': 'success', 'invoiceNumber': bs.reserve_invoice_number(conn)})
    except Exception as e:
        return _fail(e)


@app.route('/api/invoices/<doc_id>')
def api_invoice_get(doc_id):
    try:
        with _db() as conn:
            invoice = bs.get_invoice(conn, doc_id)
            if invoice is None:
                raise bs.NotFoundError(f'Invoice {doc_id} not found.')
            return jsonify({'status': 'success', 'invoice': to_json_dict(invoice)})
    except Exception as e:
        return _fail(e)


@app.route('/api/invoices/<doc_id>', methods=['DELETE'])
def api_invoice_delete(doc_id):
    try:
        with _db() as conn:
            bs.delete_invoice(conn, CLOUD, doc_id)
            return jsonify({'status': 'success', 'message': 'Invoice deleted'})
    except Exception as e:
        return _fail(e)


# ---------- receipts ----------
@app.route('/api/receipts')
def api_receipts():
    try:
        with _db() as conn:
            receipts = bs.list_receipts(conn, company_id=request.args.get('company'), query=request.args.get('q'))
            return jsonify({'status': 'success', 'receipts': _dump(receipts)})
    except Exception as e:
        return _fail(e)


@app.route('/api/receipts', methods=['POST'])
def api_receipt_create():
    data = _body()
    try:
        with _db() as conn:
            receipt = bs.create_receipt(
                conn, CLOUD, data.get('companyDocId'), data.get('amount'),
                date=data.get('date'), description=data.get('description'),
                receipt_number=data.get('receiptNumber'), doc_id=data.get('docId'),
            )
            return jsonify({'status': 'success', 'receipt': to_json_dict(receipt)}), 201
    except Exception as e:
        return _fail(e)


@app.route('/api/receipts/number', methods=['POST'])
def api_receipt_number():
    try:
        with _db() as conn:
            return jsonify({'status': 'success', 'receiptNumber': bs.reserve_receipt_number(conn)})
    except Exception as e:
        return _fail(e)


@app.route('/api/receipts/<doc_id>')
def api_receipt_get(doc_id):
    try:
        with _db() as conn:
            receipt = bs.get_receipt(conn, doc_id)
            if receipt is None:
                raise bs.NotFoundError(f'Receipt {doc_id} not found.')
            return jsonify({'status': 'success', 'receipt': to_json_dict(receipt)})
    except Exception as e:
        return _fail(e)


@app.route('/api/receipts/<doc_id>', methods=['DELETE'])
def api_receipt_delete(doc_id):
    try:
        with _db() as conn:
            bs.delete_receipt(conn, CLOUD, doc_id)
            return jsonify({'status': 'success', 'message': 'Receipt deleted'})
    except Exception as e:
        return _fail(e)


# ---------- ledger / notes / status ----------
@app.route('/api/ledger/<company_id>')
def api_ledger(company_id):
    today = dt.date.today()
    start = request.args.get('start') or today.replace(day=1).isoformat()
    end = request.args.get('end') or today.isoformat()
    try:
        with _db() as conn:
            report = ledger_report.build_ledger(conn, company_id, start, end)
            return jsonify({'status': 'success', 'ledger': to_json_dict(report)})
    except Exception as e:
        return _fail(e)


@app.route('/api/notes')
def api_notes():
    try:
        with _db() as conn:
            return jsonify({'status': 'success', 'notes': bs.list_notes(conn)})
    except Exception as e:
        return _fail(e)


@app.route('/api/notes/<day>')
def api_note_get(day):
    try:
        with _db() as conn:
            return jsonify({'status': 'success', 'date': day, 'note': bs.get_note(conn, day)})
    except Exception as e:
        return _fail(e)


@app.route('/api/notes/<day>', methods=['PUT'])
def api_note_set(day):
    data = _body()
    try:
        with _db() as conn:
            key = bs.set_note(conn, day, data.get('note'))
            return jsonify({'status': 'success', 'date': key, 'note': bs.get_note(conn, key)})
    except Exception as e:
        return _fail(e)


@app.route('/api/status')
def api_status():
    try:
        with _db() as conn:
            info = bs.status(conn, CLOUD)
            info.update({'status': 'success', 'db_path': DB_PATH})
            return jsonify(info)
    except Exception as e:
        return _fail(e)
