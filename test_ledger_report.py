import datetime as dt
import json
import unittest
from decimal import Decimal

import billing_db as db
import billing_service as bs
import ledger_report
from cloud_store import MemoryCloudStore


class LedgerReportTest(unittest.TestCase):
    def setUp(self):
        self.conn = db.connect(":memory:")
        self.cloud = MemoryCloudStore()
        bs.create_company(self.conn, self.cloud, "Acme Trading", "99112233", doc_id="c-1")

    def tearDown(self):
        self.conn.close()

    def _invoice(self, price, date, is_credit=True):
        return bs.save_invoice(self.conn, self.cloud, {
            "companyDocId": "c-1",
            "isCredit": is_credit,
            "date": date,
            "items": [{"docId": "p-1", "name": "Crate", "unitPrice": price, "quantity": 1}],
        })

    def _receipt(self, amount, date):
        return bs.create_receipt(self.conn, self.cloud, "c-1", amount, date=date)

    def _seed_march(self):
        self._invoice(100, "2025-03-09T23:59:59")
        self._invoice(50, "2025-03-10T00:00:00")
        self._receipt(30, "2025-03-12T18:00:00")
        self._invoice(15, "2025-03-11T09:00:00", is_credit=False)
        self._receipt(20, "2025-03-13T00:00:00")

    def test_window_boundaries(self):
        self._seed_march()
        report = ledger_report.build_ledger(self.conn, "c-1", "2025-03-10", "2025-03-12")

        self.assertEqual(Decimal("100.000"), report["openingBalance"])
        self.assertEqual(
            ["2025-03-10T00:00:00", "2025-03-11T09:00:00", "2025-03-12T18:00:00"],
            [r["date"] for r in report["rows"]],
        )
        self.assertEqual(["INV-00002", "INV-00003", "REC-00001"], [r["referenceNo"] for r in report["rows"]])

    def test_rows_and_running_balance(self):
        self._seed_march()
        report = ledger_report.build_ledger(self.conn, "c-1", dt.date(2025, 3, 10), dt.date(2025, 3, 12))
        credit_sale, cash_sale, payment = report["rows"]

        self.assertEqual(("By credit Sales", "Sales Invoice"), (credit_sale["particulars"], credit_sale["type"]))
        self.assertEqual((Decimal("50.000"), Decimal("0.000")), (credit_sale["debit"], credit_sale["credit"]))
        self.assertEqual(Decimal("150.000"), credit_sale["balance"])

        self.assertEqual("By cash Sales", cash_sale["particulars"])
        self.assertEqual(Decimal("15.000"), cash_sale["amount"])
        self.assertEqual((Decimal("0.000"), Decimal("0.000")), (cash_sale["debit"], cash_sale["credit"]))
        self.assertEqual(Decimal("150.000"), cash_sale["balance"])

        self.assertEqual(("By payment", "Receipt"), (payment["particulars"], payment["type"]))
        self.assertEqual(Decimal("30.000"), payment["credit"])
        self.assertEqual(Decimal("120.000"), payment["balance"])

    def test_closing_equals_opening_plus_window_movement(self):
        self._seed_march()
        for start, end in (("2025-03-01", "2025-03-31"), ("2025-03-10", "2025-03-12"), ("2025-03-13", "2025-03-13")):
            report = ledger_report.build_ledger(self.conn, "c-1", start, end)
            self.assertEqual(
                report["openingBalance"] + report["totalDebit"] - report["totalCredit"],
                report["closingBalance"],
            )
        full = ledger_report.build_ledger(self.conn, "c-1", "2025-01-01", "2025-12-31")
        self.assertEqual(bs.get_company(self.conn, "c-1")["outstanding"], full["closingBalance"])

    def test_empty_window_keeps_opening_as_closing(self):
        self._seed_march()
        report = ledger_report.build_ledger(self.conn, "c-1", "2025-04-01", "2025-04-30")
        self.assertEqual([], report["rows"])
        self.assertEqual(Decimal("100.000"), report["openingBalance"])
        self.assertEqual(report["openingBalance"], report["closingBalance"])

    def test_offset_date_lands_on_its_local_day(self):
        early = dt.datetime(2025, 3, 10, 1, 0).astimezone().isoformat()
        invoice = self._invoice(40, early)
        self.assertEqual("2025-03-10T01:00:00", invoice["date"])

        report = ledger_report.build_ledger(self.conn, "c-1", "2025-03-10", "2025-03-10")
        self.assertEqual(Decimal("0.000"), report["openingBalance"])
        self.assertEqual([invoice["invoiceNumber"]], [r["referenceNo"] for r in report["rows"]])
        self.assertEqual(Decimal("40.000"), report["closingBalance"])

        previous = ledger_report.build_ledger(self.conn, "c-1", "2025-03-09", "2025-03-09")
        self.assertEqual([], previous["rows"])

    def test_corrupt_bill_shows_as_unknown_cash_row(self):
        db.upsert(self.conn, "bills", "b-bad", {
            "companyDocId": "c-1", "total": "9.000", "date": "2025-03-10T12:00:00", "lineItemsJson": "{oops",
        })
        with self.assertLogs("billing.models", level="WARNING"):
            report = ledger_report.build_ledger(self.conn, "c-1", "2025-03-10", "2025-03-10")
        row = report["rows"][0]
        self.assertEqual("UNKNOWN", row["referenceNo"])
        self.assertEqual(Decimal("0.000"), row["debit"])

    def test_unknown_company_gives_empty_report(self):
        report = ledger_report.build_ledger(self.conn, "ghost", "2025-03-01", "2025-03-31")
        self.assertIsNone(report["companyName"])
        self.assertEqual([], report["rows"])
        self.assertEqual(Decimal("0.000"), report["closingBalance"])

    def test_bad_range(self):
        with self.assertRaises(bs.ValidationError):
            ledger_report.build_ledger(self.conn, "c-1", "2025-03-31", "2025-03-01")
        with self.assertRaises(bs.ValidationError):
            ledger_report.build_ledger(self.conn, "c-1", "March", "2025-03-01")

    def test_cli_prints_ledger(self):
        import contextlib
        import io
        import os
        import tempfile

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "billing.db")
            conn = db.connect(path)
            try:
                bs.create_company(conn, self.cloud, "Acme Trading", "99112233", doc_id="c-1")
                bs.save_invoice(conn, self.cloud, {
                    "companyDocId": "c-1", "isCredit": True, "date": "2025-03-10",
                    "items": [{"name": "Crate", "unitPrice": 5, "quantity": 2}],
                })
            finally:
                conn.close()
            out = io.StringIO()
            with contextlib.redirect_stdout(out):
                code = bs.main(["--db", path, "--ledger", "c-1", "--start", "2025-03-01", "--end", "2025-03-31"])
            self.assertEqual(0, code)
            self.assertEqual(10.0, json.loads(out.getvalue())["closingBalance"])


if __name__ == "__main__":
    unittest.main()
