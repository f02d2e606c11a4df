from __future__ import annotations

import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sales_doctor.detection import detect_data_type, infer_data_type
from sales_doctor.models import DataType


class DetectDataTypeTests(unittest.TestCase):
    def test_marker_columns(self):
        self.assertEqual(detect_data_type(["receipt_date", "product_name", "chain"]), DataType.SALES)
        self.assertEqual(detect_data_type(["Hit_ID", "created_at"]), DataType.OFFERS)
        self.assertEqual(detect_data_type(["offer_id"]), DataType.OFFERS)
        self.assertEqual(detect_data_type(["user_id", "gender"]), DataType.DEMOGRAPHICS)

    def test_sales_needs_both_markers(self):
        self.assertEqual(detect_data_type(["receipt_date", "chain"]), DataType.UNKNOWN)
        self.assertEqual(detect_data_type(["receipt_date", "gender"]), DataType.DEMOGRAPHICS)

    def test_sales_wins_over_later_types(self):
        headers = ["receipt_date", "product_name", "created_at", "gender"]
        self.assertEqual(detect_data_type(headers), DataType.SALES)

    def test_unrecognised_headers(self):
        self.assertEqual(detect_data_type(["foo", "bar"]), DataType.UNKNOWN)
        self.assertEqual(detect_data_type([]), DataType.UNKNOWN)


class InferDataTypeTests(unittest.TestCase):
    def test_alias_headers_are_inferred(self):
        headers = ["purchase_date", "item", "store"]
        self.assertEqual(detect_data_type(headers), DataType.UNKNOWN)
        self.assertEqual(infer_data_type(headers), DataType.SALES)

    def test_alias_headers_for_other_types(self):
        self.assertEqual(infer_data_type(["timestamp", "id"]), DataType.OFFERS)
        self.assertEqual(infer_data_type(["Sex", "Age"]), DataType.DEMOGRAPHICS)

    def test_strict_detection_takes_precedence(self):
        self.assertEqual(infer_data_type(["hit_id", "item", "purchase_date"]), DataType.OFFERS)

    def test_nothing_recognisable(self):
        self.assertEqual(infer_data_type(["alpha", "beta"]), DataType.UNKNOWN)


if __name__ == "__main__":
    unittest.main()
