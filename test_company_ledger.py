import unittest
from decimal import Decimal

import billing_db as db
import billing_service as bs
from cloud_store import MemoryCloudStore, RemoteStoreError


class FailingCloudStore(MemoryCloudStore):
    """Reports online but rejects every write."""

    def set(self, collection, key, fields, merge=False):
        raise RemoteStoreError("write rejected")

    def delete(self, collection, key):
        raise RemoteStoreError("delete rejected")


def _line(price, qty=1, vat=False, name="Crate"):
    return {"docId": "p-1", "name": name, "unitPrice": price, "quantity": qty, "vatApplied": vat}


class CompanyLedgerTest(unittest.TestCase):
    def setUp(self):
        self.conn = db.connect(":memory:")
        self.cloud = MemoryCloudStore()
        bs.create_company(self.conn, self.cloud, "Acme Trading", "99112233", doc_id="c-1")
        bs.create_company(self.conn, self.cloud, "Beta Supplies", "99445566", doc_id="c-2")

    def tearDown(self):
        self.conn.close()

    def _outstanding(self, company_id="c-1"):
        return bs.get_company(self.conn, company_id)["outstanding"]

    def _save(self, price, is_credit=True, doc_id=None, company_id="c-1", **extra):
        invoice = {"companyDocId": company_id, "isCredit": is_credit, "items": [_line(price)]}
        if doc_id:
            invoice["docId"] = doc_id
        invoice.update(extra)
        return bs.save_invoice(self.conn, self.cloud, invoice)

    def test_walkthrough_invoice_receipt_reject_delete(self):
        invoice = self._save(300)
        self.assertEqual("INV-00001", invoice["invoiceNumber"])
        self.assertEqual(Decimal("300.000"), self._outstanding())

        receipt = bs.create_receipt(self.conn, self.cloud, "c-1", 100)
        self.assertEqual("REC-00001", receipt["receiptNumber"])
        self.assertEqual(Decimal("200.000"), receipt["osAfterThisReceipt"])
        self.assertEqual(Decimal("200.000"), self._outstanding())

        with self.assertRaises(bs.ValidationError):
            bs.create_receipt(self.conn, self.cloud, "c-1", 250)
        self.assertEqual(Decimal("200.000"), self._outstanding())
        self.assertEqual(1, db.count(self.conn, "receipts"))

        bs.delete_invoice(self.conn, self.cloud, invoice["docId"])
        self.assertEqual(Decimal("-100.000"), self._outstanding())

    def test_credit_to_cash_edit_reverses_exactly(self):
        invoice = self._save(100)
        before = self._outstanding()
        self._save(100, is_credit=False, doc_id=invoice["docId"])
        self.assertEqual(before - Decimal("100"), self._outstanding())

    def test_cash_to_credit_edit_adds_exactly(self):
        invoice = self._save(50, is_credit=False)
        before = self._outstanding()
        self._save(50, is_credit=True, doc_id=invoice["docId"])
        self.assertEqual(before + Decimal("50"), self._outstanding())

    def test_credit_edit_applies_net_difference(self):
        invoice = self._save(100)
        self._save(80, doc_id=invoice["docId"])
        self.assertEqual(Decimal("80.000"), self._outstanding())
        self.assertEqual(1, db.count(self.conn, "bills"))
        self.assertEqual(invoice["invoiceNumber"], bs.get_invoice(self.conn, invoice["docId"])["invoiceNumber"])

    def test_moving_invoice_to_another_company(self):
        invoice = self._save(40)
        moved = self._save(40, doc_id=invoice["docId"], company_id="c-2")
        self.assertEqual(Decimal("0.000"), self._outstanding("c-1"))
        self.assertEqual(Decimal("40.000"), self._outstanding("c-2"))
        self.assertEqual("Beta Supplies", moved["companyName"])

    def test_snapshot_survives_company_rename(self):
        invoice = self._save(10)
        bs.update_company_details(self.conn, self.cloud, "c-1", "Acme Renamed", "99112233")
        resaved = self._save(12, doc_id=invoice["docId"])
        self.assertEqual("Acme Trading", resaved["companyName"])

    def test_balance_matches_transactions_after_mixed_operations(self):
        a = self._save(120)
        b = self._save(30, is_credit=False)
        c = self._save(75.5)
        r1 = bs.create_receipt(self.conn, self.cloud, "c-1", "20.250")
        bs.create_receipt(self.conn, self.cloud, "c-1", 50)
        self._save(30, is_credit=True, doc_id=b["docId"])
        self._save(60, doc_id=a["docId"])
        bs.delete_receipt(self.conn, self.cloud, r1["docId"])
        bs.delete_invoice(self.conn, self.cloud, c["docId"])

        credit = sum(i["total"] for i in bs.list_invoices(self.conn, company_id="c-1") if i["isCredit"])
        paid = sum(r["amount"] for r in bs.list_receipts(self.conn, company_id="c-1"))
        self.assertEqual(credit - paid, self._outstanding())
        self.assertEqual(Decimal("40.000"), self._outstanding())

    def test_string_flags_are_read_strictly(self):
        invoice = bs.save_invoice(self.conn, self.cloud, {
            "companyDocId": "c-1",
            "isCredit": "false",
            "items": [{"name": "Crate", "unitPrice": 10, "quantity": 1, "vatApplied": "false"}],
        })
        self.assertFalse(invoice["isCredit"])
        self.assertEqual(Decimal("10.000"), invoice["total"])
        self.assertEqual(Decimal("0.000"), self._outstanding())

        invoice = bs.save_invoice(self.conn, self.cloud, {
            "companyDocId": "c-1",
            "isCredit": "true",
            "items": [{"name": "Crate", "unitPrice": 10, "quantity": 1, "vatApplied": "true"}],
        })
        self.assertEqual(Decimal("10.500"), invoice["total"])
        self.assertEqual(Decimal("10.500"), self._outstanding())

        for bad in ({"isCredit": "no"}, {"items": [_line(5, vat="on")]}):
            payload = {"companyDocId": "c-1", "isCredit": False, "items": [_line(5)]}
            payload.update(bad)
            with self.assertRaises(bs.ValidationError):
                bs.save_invoice(self.conn, self.cloud, payload)
        self.assertEqual(2, db.count(self.conn, "bills"))
        self.assertEqual(Decimal("10.500"), self._outstanding())

    def test_detail_update_keeps_omitted_optional_fields(self):
        bs.update_company_details(self.conn, self.cloud, "c-1", "Acme Trading", "99112233",
                                  address="Ruwi", description="Wholesale", cr_number="CR-1", vat_number="VAT-1")
        bs.update_company_details(self.conn, self.cloud, "c-1", "Acme Trading", "99112234")
        company = bs.get_company(self.conn, "c-1")
        self.assertEqual(("Ruwi", "Wholesale", "CR-1", "VAT-1"),
                         (company["address"], company["description"], company["crNumber"], company["vatNumber"]))
        self.assertEqual("99112234", company["phone"])

        bs.update_company_details(self.conn, self.cloud, "c-1", "Acme Trading", "99112234", address="", cr_number="")
        company = bs.get_company(self.conn, "c-1")
        self.assertEqual(("", "Wholesale", "", "VAT-1"),
                         (company["address"], company["description"], company["crNumber"], company["vatNumber"]))
        self.assertEqual("", self.cloud.collections["companies"]["c-1"]["address"])

    def test_receipt_bounds(self):
        self._save(10)
        for amount in (0, -5, "0.0001", "10.001", "abc"):
            with self.assertRaises(bs.ValidationError):
                bs.create_receipt(self.conn, self.cloud, "c-1", amount)
        self.assertEqual(Decimal("10.000"), self._outstanding())
        self.assertIsNone(db.get_setting(self.conn, "receiptCounter"))

        bs.create_receipt(self.conn, self.cloud, "c-1", "10.000")
        self.assertEqual(Decimal("0.000"), self._outstanding())

    def test_receipt_for_missing_company(self):
        with self.assertRaises(bs.NotFoundError):
            bs.create_receipt(self.conn, self.cloud, "ghost", 5)

    def test_deleting_receipt_restores_balance(self):
        self._save(10)
        receipt = bs.create_receipt(self.conn, self.cloud, "c-1", 10)
        bs.delete_receipt(self.conn, self.cloud, receipt["docId"])
        self.assertEqual(Decimal("10.000"), self._outstanding())
        with self.assertRaises(bs.NotFoundError):
            bs.delete_receipt(self.conn, self.cloud, receipt["docId"])

    def test_invoice_validation_writes_nothing(self):
        with self.assertRaises(bs.ValidationError):
            bs.save_invoice(self.conn, self.cloud, {"companyDocId": "", "items": [_line(1)]})
        with self.assertRaises(bs.ValidationError):
            bs.save_invoice(self.conn, self.cloud, {"companyDocId": "c-1", "items": []})
        with self.assertRaises(bs.ValidationError):
            bs.save_invoice(self.conn, self.cloud, {"companyDocId": "c-1", "items": [_line(1, qty=0)]})
        self.assertEqual(0, db.count(self.conn, "bills"))
        self.assertIsNone(db.get_setting(self.conn, "invoiceCounter"))

    def test_reserved_numbers_leave_gaps(self):
        self.assertEqual("INV-00001", bs.reserve_invoice_number(self.conn))
        invoice = self._save(5)
        self.assertEqual("INV-00002", invoice["invoiceNumber"])
        self.assertEqual("REC-00001", bs.reserve_receipt_number(self.conn))

    def test_invoice_for_deleted_company_is_kept(self):
        bs.delete_company(self.conn, self.cloud, "c-2")
        with self.assertLogs("billing.service", level="WARNING"):
            invoice = self._save(20, company_id="c-2", companyName="Beta Supplies")
        self.assertEqual("Beta Supplies", invoice["companyName"])
        self.assertIsNone(bs.get_company(self.conn, "c-2"))
        with self.assertLogs("billing.service", level="WARNING"):
            bs.delete_invoice(self.conn, self.cloud, invoice["docId"])
        self.assertEqual(0, db.count(self.conn, "bills"))

    def test_balance_push_marks_company_synced(self):
        self._save(300)
        company = bs.get_company(self.conn, "c-1")
        self.assertTrue(company["isSynced"])
        self.assertEqual(300.0, self.cloud.collections["companies"]["c-1"]["outstanding"])

    def test_failed_push_leaves_company_dirty(self):
        failing = FailingCloudStore()
        with self.assertLogs("billing.service", level="WARNING"):
            bs.save_invoice(self.conn, failing, {"companyDocId": "c-1", "isCredit": True, "items": [_line(70)]})
        company = bs.get_company(self.conn, "c-1")
        self.assertEqual(Decimal("70.000"), company["outstanding"])
        self.assertFalse(company["isSynced"])
        self.assertEqual(0.0, self.cloud.collections["companies"]["c-1"]["outstanding"])

    def test_offline_change_stays_dirty_until_next_push(self):
        offline = MemoryCloudStore(online=False)
        offline.collections = self.cloud.collections
        bs.save_invoice(self.conn, offline, {"companyDocId": "c-1", "isCredit": True, "items": [_line(70)]})
        self.assertFalse(bs.get_company(self.conn, "c-1")["isSynced"])

        bs.update_company_details(self.conn, self.cloud, "c-1", "Acme Trading", "99000000")
        remote = self.cloud.collections["companies"]["c-1"]
        self.assertEqual(70.0, remote["outstanding"])
        self.assertEqual("99000000", remote["phone"])
        self.assertTrue(bs.get_company(self.conn, "c-1")["isSynced"])

    def test_set_company_outstanding(self):
        self._save(30)
        self.assertEqual(Decimal("12.500"), bs.set_company_outstanding(self.conn, self.cloud, "c-1", "12.5"))
        self.assertEqual(Decimal("12.500"), self._outstanding())
        self.assertEqual(12.5, self.cloud.collections["companies"]["c-1"]["outstanding"])
        with self.assertRaises(bs.ValidationError):
            bs.set_company_outstanding(self.conn, self.cloud, "c-1", "lots")
        with self.assertRaises(bs.NotFoundError):
            bs.set_company_outstanding(self.conn, self.cloud, "ghost", 1)

    def test_company_transactions_and_listing_order(self):
        self._save(1, date="2025-01-01T10:00:00", createdAt="2025-01-01T10:00:00")
        self._save(2, date="2025-01-02T10:00:00")
        self._save(3, company_id="c-2")
        found = bs.company_transactions(self.conn, "c-1")
        self.assertEqual(2, len(found["invoices"]))
        self.assertEqual(Decimal("2.000"), found["invoices"][0]["total"])
        self.assertEqual([], found["receipts"])
        self.assertEqual(1, len(bs.list_invoices(self.conn, query="inv-00003")))


if __name__ == "__main__":
    unittest.main()
