from __future__ import annotations

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sales_doctor.config import (
    CONFIG_ENV_VAR,
    ConfigError,
    ValidationSettings,
    default_config_payload,
    load_settings,
    settings_from_mapping,
)
from sales_doctor.issue_taxonomy import explain


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = ValidationSettings()
        self.assertEqual(settings.long_value_threshold, 500)
        self.assertEqual(settings.near_duplicate_max_distance, 2)
        self.assertEqual(settings.near_duplicate_max_distinct, 500)
        self.assertEqual(default_config_payload()["disabled_rules"], [])
        self.assertFalse(default_config_payload()["skip_known_retailer_pairs"])

    def test_only_advisory_rules_can_be_disabled(self):
        settings = ValidationSettings(disabled_rules=("data_empty_row", "columns_missing_required"))
        self.assertFalse(settings.rule_enabled("data_empty_row"))
        self.assertTrue(settings.rule_enabled("columns_missing_required"))
        self.assertTrue(settings.rule_enabled("data_long_value"))

    def test_mapping_is_validated(self):
        settings = settings_from_mapping({"long_value_threshold": 80, "disabled_rules": ["data_long_value"]})
        self.assertEqual(settings.long_value_threshold, 80)
        self.assertEqual(settings.disabled_rules, ("data_long_value",))
        self.assertTrue(settings_from_mapping({"skip_known_retailer_pairs": True}).skip_known_retailer_pairs)

        bad_payloads = [
            {"unknown_key": 1},
            {"long_value_threshold": -1},
            {"long_value_threshold": True},
            {"improvement_confidence_threshold": 2},
            {"disabled_rules": "data_long_value"},
            {"skip_known_retailer_pairs": "yes"},
            {"disabled_rules": ["no_such_rule"]},
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(ConfigError):
                    settings_from_mapping(payload)


class LoadSettingsTests(unittest.TestCase):
    def test_no_path_and_no_env_gives_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop(CONFIG_ENV_VAR, None)
            self.assertEqual(load_settings(), ValidationSettings())

    def test_json_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sales-doctor.json"
            path.write_text(json.dumps({"near_duplicate_max_distance": 1}), encoding="utf-8")
            self.assertEqual(load_settings(path).near_duplicate_max_distance, 1)

    def test_env_var_names_the_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.json"
            path.write_text(json.dumps({"long_value_threshold": 42}), encoding="utf-8")
            with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(path)}):
                self.assertEqual(load_settings().long_value_threshold, 42)

    def test_yaml_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.yaml"
            path.write_text("long_value_threshold: 10\n", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "YAML configs are not supported yet"):
                load_settings(path)

    def test_bad_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "broken.json").write_text("{not json", encoding="utf-8")
            (tmp / "list.json").write_text("[]", encoding="utf-8")
            (tmp / "settings.toml").write_text("", encoding="utf-8")
            for name in ("missing.json", "broken.json", "list.json", "settings.toml"):
                with self.subTest(name=name):
                    with self.assertRaises(ConfigError):
                        load_settings(tmp / name)


class ExplainTests(unittest.TestCase):
    def test_known_rule(self):
        payload = explain("consistency_near_duplicate_values")
        self.assertEqual(payload["severity"], "warning")
        self.assertEqual(payload["category"], "consistency")
        self.assertTrue(payload["advisory"])

    def test_unknown_rule(self):
        self.assertIsNone(explain("nope"))


if __name__ == "__main__":
    unittest.main()
