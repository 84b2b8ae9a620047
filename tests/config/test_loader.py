"""
Tests for configuration sets: the shipped default set, YAML parsing into
the module configs, and threshold validation.
"""

from decimal import Decimal

import pytest
import yaml

from dairy_config import get_active_config
from dairy_config.loader import compute_checksum, load_config_set, parse_config_set
from dairy_engines.inventory_control import DEFAULT_TOLERANCES, ToleranceCategory
from dairy_kernel.exceptions import ThresholdInvalidError
from dairy_modules.appro.config import ApproConfig
from dairy_modules.stock.config import StockConfig


def _write_set(directory, name, data):
    path = directory / f"{name}.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSet:

    def test_matches_code_defaults(self):
        config = get_active_config()

        assert config.name == "default"
        assert config.version == 1
        assert config.stock.tolerances == DEFAULT_TOLERANCES
        assert config.stock.critical_value == Decimal("50000")
        assert config.stock.cooldown_hours == 4
        assert config.stock.max_loss_quantity == Decimal("100000")
        assert config.appro.min_proof_note_length == 20
        assert config.appro.default_unit_price == Decimal("0")

    def test_trace_logged(self, captured_logs):
        config = get_active_config()

        (trace,) = [r for r in captured_logs() if r["message"] == "DAIRY_CONFIG_TRACE"]
        assert trace["config_set_name"] == "default"
        assert trace["checksum"] == config.checksum

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("plant-b", config_dir=tmp_path)


class TestParseConfigSet:

    def test_site_overrides(self, tmp_path):
        _write_set(tmp_path, "plant-b", {
            "name": "plant-b",
            "version": 3,
            "appro": {"default_unit_price": "1.50", "critical_delay_days": 5},
            "stock": {
                "cooldown_hours": 8,
                "tolerances": {"PF": {"auto_approve_percent": "0.5", "single_validation_percent": "2"}},
            },
        })
        config = get_active_config("plant-b", config_dir=tmp_path)

        assert config.version == 3
        assert config.appro.default_unit_price == Decimal("1.50")
        assert config.appro.critical_delay_days == 5
        assert config.stock.cooldown_hours == 8
        pf = config.stock.thresholds_for(ToleranceCategory.PF)
        assert pf.auto_approve_percent == Decimal("0.5")
        # categories left out keep their defaults
        assert config.stock.thresholds_for(ToleranceCategory.MP_PERISHABLE) == (
            DEFAULT_TOLERANCES[ToleranceCategory.MP_PERISHABLE]
        )

    def test_empty_sections_use_defaults(self):
        config = parse_config_set({"name": "bare"})
        assert config.appro == ApproConfig()
        assert config.stock == StockConfig()

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="sotck"):
            parse_config_set({"name": "typo", "sotck": {}})

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            parse_config_set({"stock": {"cooldown_minutes": 30}})

    def test_inverted_thresholds_rejected(self, tmp_path):
        path = _write_set(tmp_path, "bad", {
            "stock": {
                "tolerances": {
                    "MP_PERISHABLE": {"auto_approve_percent": "5", "single_validation_percent": "5"},
                },
            },
        })
        with pytest.raises(ThresholdInvalidError) as exc_info:
            load_config_set(path)
        assert exc_info.value.threshold_category == "MP_PERISHABLE"


class TestChecksum:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": {"c": 2}}) == compute_checksum({"b": {"c": 2}, "a": 1})

    def test_value_change_detected(self):
        assert compute_checksum({"stock": {"cooldown_hours": 4}}) != compute_checksum(
            {"stock": {"cooldown_hours": 5}}
        )


class TestModuleConfigValidation:

    def test_negative_default_price(self):
        with pytest.raises(ValueError):
            ApproConfig.from_dict({"default_unit_price": "-1"})

    def test_critical_delay_must_be_positive(self):
        with pytest.raises(ValueError):
            ApproConfig(critical_delay_days=0)

    def test_stock_from_dict_converts_decimals(self):
        config = StockConfig.from_dict({"critical_value": 1000, "max_loss_quantity": "50"})
        assert config.critical_value == Decimal("1000")
        assert config.max_loss_quantity == Decimal("50")
