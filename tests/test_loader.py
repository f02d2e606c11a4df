from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sales_doctor.loader import detect_delimiter, load_table, read_text_safely


class LoaderTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name: str, content: str | bytes) -> Path:
        path = self.tmp / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    def test_csv_keeps_values_as_text(self):
        path = self._write("sales.csv", "receipt_date,receipt_total,user_id\n2025-02-24,007,\n")
        table = load_table(path)
        self.assertEqual(table.headers, ["receipt_date", "receipt_total", "user_id"])
        self.assertEqual(table.rows, [{"receipt_date": "2025-02-24", "receipt_total": "007", "user_id": ""}])
        self.assertEqual(table.detected_format, "csv")
        self.assertEqual(table.delimiter, ",")

    def test_semicolon_delimiter_is_detected(self):
        path = self._write("sales.csv", "a;b\n1;2\n3;4\n")
        table = load_table(path)
        self.assertEqual(table.delimiter, ";")
        self.assertEqual(table.rows, [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}])

    def test_tsv(self):
        path = self._write("sales.tsv", "a\tb\nx y\tz\n")
        self.assertEqual(load_table(path).rows, [{"a": "x y", "b": "z"}])

    def test_undecodable_lines_fall_back_to_latin1(self):
        self.assertEqual(read_text_safely(b"chain\nCaf\xe9 Nero", "no-such-codec"), "chain\nCaf\xe9 Nero")

    def test_bom_is_stripped(self):
        self.assertEqual(read_text_safely(b"\xef\xbb\xbfa,b\n1,2", "utf-8"), "a,b\n1,2")

    def test_json_array_and_nested_object(self):
        path = self._write("rows.json", json.dumps([{"a": "1"}, {"a": "2"}]))
        self.assertEqual(load_table(path).rows, [{"a": "1"}, {"a": "2"}])

        nested = self._write("nested.json", json.dumps({"meta": 1, "data": [{"a": "1"}]}))
        table = load_table(nested)
        self.assertEqual(table.rows, [{"a": "1"}])
        self.assertEqual(table.warnings, ["Nested JSON: used array at top-level key 'data'"])

    def test_jsonl_skips_bad_lines(self):
        path = self._write("rows.jsonl", '{"a": "1"}\nnot json\n\n{"a": "2"}\n')
        with self.assertLogs("sales_doctor.loader", level="WARNING"):
            table = load_table(path)
        self.assertEqual(table.rows, [{"a": "1"}, {"a": "2"}])
        self.assertTrue(table.warnings[0].startswith("1 lines could not be parsed: line 2"))

    def test_over_long_rows_are_reported(self):
        path = self._write("sales.csv", "a,b\n1,2\n3,4,5\n6,7\n")
        with self.assertLogs("sales_doctor.loader", level="WARNING"):
            table = load_table(path)
        self.assertEqual(table.delimiter, ",")
        self.assertEqual(table.rows, [{"a": "1", "b": "2"}, {"a": "6", "b": "7"}])
        self.assertEqual(table.warnings, ["1 rows had more than 2 fields and were skipped: 3,4,5"])

    def test_errors(self):
        with self.assertRaises(FileNotFoundError):
            load_table(self.tmp / "missing.csv")
        with self.assertRaisesRegex(ValueError, "Unsupported format"):
            load_table(self._write("rows.xyz", "a\n1\n"))
        with self.assertRaisesRegex(ValueError, "is empty"):
            load_table(self._write("empty.csv", "  \n"))
        with self.assertRaisesRegex(ValueError, "Invalid JSON"):
            load_table(self._write("bad.json", "{"))

    def test_delimiter_fallback_prefers_consistent_width(self):
        self.assertEqual(detect_delimiter("a|b|c\n1|2|3\n4|5|6\n"), "|")


if __name__ == "__main__":
    unittest.main()
