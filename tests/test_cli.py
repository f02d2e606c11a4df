from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import openpyxl


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "sales_doctor.cli"]
FIXED_STAMP = "20260301T010203Z"
MESSY_SALES = "sample-data/messy_sales.csv"


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["SALES_DOCTOR_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env.pop("SALES_DOCTOR_CONFIG", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def write_csv(directory: str, name: str, content: str) -> Path:
    path = Path(directory) / name
    path.write_text(content, encoding="utf-8")
    return path


class ValidateCommandTests(unittest.TestCase):
    def test_messy_sales_returns_exit_5_and_writes_report(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("validate", MESSY_SALES, "--out", tmpdir)
            self.assertEqual(proc.returncode, 5, proc.stderr)
            self.assertIn("Report written:", proc.stderr)
            self.assertIn("Errors (2):", proc.stderr)
            report = json.loads((Path(tmpdir) / "report.json").read_text(encoding="utf-8"))
            self.assertEqual(report["contract"]["name"], "sales_doctor.validation")
            self.assertEqual(report["data_type"], "sales")
            self.assertEqual(report["mapping"]["mapped"]["purchase_date"], "receipt_date")
            stats = report["result"]["stats"]
            self.assertEqual(stats["total_rows"], 6)
            self.assertEqual(stats["errors_count"], 2)
            self.assertEqual(stats["empty_rows"], 1)
            self.assertEqual(report["run_summary"]["generated_at"], "1970-01-01T00:00:00Z")
            codes = [warning["code"] for warning in report["result"]["warnings"]]
            self.assertIn("consistency_near_duplicate_values", codes)

    def test_clean_csv_returns_exit_0(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(tmpdir, "clean.csv", "receipt_date,product_name,chain\n2025-02-24,Widget,Tesco\n")
            proc = run_cli("validate", str(path), "--json", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            report = json.loads(proc.stdout)
            self.assertTrue(report["result"]["is_valid"])
            self.assertEqual(report["result"]["data_quality_score"], 100.0)

    def test_warnings_only_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(
                tmpdir,
                "shops.csv",
                "receipt_date,product_name,chain\n2025-02-24,Widget,Tesco\n2025-02-25,Gadget,Teso\n",
            )
            proc = run_cli("validate", str(path), "--out", tmpdir, "--quiet")
            self.assertEqual(proc.returncode, 3, proc.stderr)
            self.assertNotIn("Report written:", proc.stderr)

    def test_explicit_report_path_and_type(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(tmpdir, "people.csv", "user_id,age_group\nu1,27\n")
            report_path = Path(tmpdir) / "nested" / "people-report.json"
            proc = run_cli("validate", str(path), "--type", "demographics", "--output", str(report_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            report = json.loads(report_path.read_text(encoding="utf-8"))
            self.assertEqual(report["normalization"]["transformed_fields"], ["age_group"])

    def test_config_can_disable_advisory_rules(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(
                tmpdir,
                "shops.csv",
                "receipt_date,product_name,chain\n2025-02-24,Widget,Tesco\n2025-02-25,Gadget,Teso\n",
            )
            config = Path(tmpdir) / "settings.json"
            config.write_text(
                json.dumps({"disabled_rules": ["consistency_retailer_spelling", "consistency_near_duplicate_values"]}),
                encoding="utf-8",
            )
            proc = run_cli("validate", str(path), "--out", tmpdir, "--config", str(config))
            self.assertEqual(proc.returncode, 0, proc.stderr)

            proc = run_cli("validate", str(path), "--out", tmpdir, env={"SALES_DOCTOR_CONFIG": str(config)})
            self.assertEqual(proc.returncode, 0, proc.stderr)

    def test_yaml_config_is_a_command_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = write_csv(tmpdir, "settings.yaml", "disabled_rules: []\n")
            proc = run_cli("validate", MESSY_SALES, "--out", tmpdir, "--config", str(config))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("YAML configs are not supported yet", proc.stderr)

    def test_over_long_rows_are_reported_in_run_summary(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(tmpdir, "ragged.csv", "a,b\n1,2\n3,4,5\n6,7\n")
            proc = run_cli("validate", str(path), "--json", "--out", tmpdir)
            report = json.loads(proc.stdout)
            self.assertEqual(report["result"]["stats"]["total_rows"], 2)
            self.assertEqual(report["run_summary"]["warnings_count"], 1)
            self.assertIn("were skipped: 3,4,5", report["run_summary"]["warnings"][0])

    def test_missing_file_returns_exit_1(self):
        proc = run_cli("validate", "sample-data/does-not-exist.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_invalid_type_returns_exit_1(self):
        proc = run_cli("validate", MESSY_SALES, "--type", "invoices")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("invalid choice", proc.stderr)

    def test_empty_file_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(tmpdir, "empty.csv", "")
            proc = run_cli("validate", str(path), "--out", tmpdir)
            self.assertEqual(proc.returncode, 2)
            self.assertIn("is empty", proc.stderr)


class FixCommandTests(unittest.TestCase):
    def test_auto_fix_writes_corrected_csv_and_summary(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_csv(
                tmpdir,
                "receipts.csv",
                "receipt_date,product_name,chain,receipt_total\n2025-02-24,Widget,Tesco,£12.50\n",
            )
            proc = run_cli("fix", str(path), "--no-normalize", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Fix summary:", proc.stderr)
            corrected = (Path(tmpdir) / "receipts-corrected.csv").read_text(encoding="utf-8")
            self.assertEqual(
                corrected.splitlines(),
                ["receipt_date,product_name,chain,receipt_total", "2025-02-24,Widget,Tesco,12.5"],
            )
            summary = json.loads((Path(tmpdir) / "fix-summary.json").read_text(encoding="utf-8"))
            self.assertEqual(summary["contract"]["name"], "sales_doctor.fix_summary")
            self.assertEqual(summary["corrections_applied"], 1)
            self.assertEqual(summary["quality"]["summary"], "80% → 100%")
            self.assertEqual(summary["run_summary"]["status"], "ok")

    def test_errors_remaining_returns_exit_4(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("fix", MESSY_SALES, "--out", tmpdir)
            self.assertEqual(proc.returncode, 4, proc.stderr)
            self.assertIn("Remaining errors:", proc.stderr)
            self.assertTrue((Path(tmpdir) / "messy_sales-corrected.csv").exists())

    def test_fail_on_errors_returns_exit_5(self):
        proc = run_cli("fix", MESSY_SALES, "--dry-run", "--fail-on-errors", "--json")
        self.assertEqual(proc.returncode, 5, proc.stderr)
        summary = json.loads(proc.stdout)
        self.assertIsNone(summary["run_summary"]["output_file"])
        self.assertEqual(summary["after"]["errors_count"], 2)

    def test_drop_empty_rows_removes_blank_rows_from_output(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("fix", MESSY_SALES, "--drop-empty-rows", "--out", tmpdir, "--json")
            self.assertEqual(proc.returncode, 4, proc.stderr)
            summary = json.loads(proc.stdout)
            self.assertEqual(summary["empty_rows_dropped"], 1)
            self.assertEqual(summary["before"]["empty_rows"], 1)
            self.assertEqual(summary["after"]["empty_rows"], 0)
            self.assertEqual(summary["after"]["total_rows"], 5)
            corrected = (Path(tmpdir) / "messy_sales-corrected.csv").read_text(encoding="utf-8")
            self.assertEqual(len(corrected.splitlines()), 6)

    def test_suggested_tier_fixes_retailer_spellings(self):
        proc = run_cli("fix", MESSY_SALES, "--dry-run", "--tier", "auto", "--tier", "suggested", "--json")
        self.assertEqual(proc.returncode, 4, proc.stderr)
        summary = json.loads(proc.stdout)
        self.assertEqual(summary["accepted_tiers"], ["auto", "suggested"])
        self.assertEqual(summary["corrections_applied"], 3)
        self.assertLess(summary["after"]["warnings_count"], summary["before"]["warnings_count"])

    def test_xlsx_output_has_review_sheets(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("fix", MESSY_SALES, "--all", "--format", "xlsx", "--out", tmpdir)
            self.assertEqual(proc.returncode, 4, proc.stderr)
            workbook = openpyxl.load_workbook(Path(tmpdir) / "messy_sales-corrected.xlsx")
            self.assertEqual(workbook.sheetnames, ["Corrected Data", "Issues", "Corrections"])
            self.assertEqual(workbook["Corrected Data"]["C3"].value, "Tesco")

    def test_refuses_to_overwrite_outputs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            first = run_cli("fix", MESSY_SALES, "--out", tmpdir)
            self.assertEqual(first.returncode, 4, first.stderr)
            second = run_cli("fix", MESSY_SALES, "--out", tmpdir)
            self.assertEqual(second.returncode, 1)
            self.assertIn("Refusing to overwrite", second.stderr)


class OtherCommandTests(unittest.TestCase):
    def test_detect_json(self):
        proc = run_cli("detect", MESSY_SALES, "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "sales_doctor.detection")
        self.assertEqual(payload["data_type"], "sales")
        self.assertEqual(payload["detected_by"], "aliases")
        self.assertEqual(payload["mapping"]["mapped"]["store"], "chain")
        self.assertEqual(payload["loader"]["delimiter"], ",")

    def test_detect_text(self):
        proc = run_cli("detect", MESSY_SALES)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Type: sales", proc.stdout)
        self.assertIn("- item -> product_name", proc.stdout)

    def test_explain(self):
        proc = run_cli("explain", "data_empty_row")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Rule: data_empty_row", proc.stdout)
        self.assertIn("Advisory: yes", proc.stdout)

        proc = run_cli("explain", "columns_missing_required", "--json")
        self.assertEqual(json.loads(proc.stdout)["severity"], "error")

        proc = run_cli("explain", "no_such_rule")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown rule id", proc.stderr)

    def test_config_init_refuses_to_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sales-doctor.json"
            proc = run_cli("config", "init", "--path", str(path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertEqual(json.loads(path.read_text(encoding="utf-8"))["long_value_threshold"], 500)

            proc = run_cli("config", "init", "--path", str(path))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Refusing to overwrite", proc.stderr)

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), "0.1.0")


if __name__ == "__main__":
    unittest.main()
