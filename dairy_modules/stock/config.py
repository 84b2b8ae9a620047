"""
Stock Configuration Schema.

Tolerance thresholds for inventory counts, anti-fraud windows and input
limits for adjustments and losses.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from dairy_engines.inventory_control import (
    DEFAULT_TOLERANCES,
    ToleranceCategory,
    ToleranceThresholds,
)
from dairy_kernel.exceptions import ThresholdInvalidError
from dairy_kernel.logging_config import get_logger

logger = get_logger("modules.stock.config")


@dataclass
class StockConfig:
    """
    Configuration schema for the stock module.

    ``tolerances`` maps each tolerance category to its auto-approve and
    single-validation drift percentages; single validation must be the
    higher of the two.
    """

    tolerances: dict[ToleranceCategory, ToleranceThresholds] = field(
        default_factory=lambda: dict(DEFAULT_TOLERANCES)
    )
    critical_value: Decimal = Decimal("50000")

    # Anti-fraud
    cooldown_hours: int = 4
    suspicious_lookback_days: int = 30
    suspicious_threshold: int = 3

    # Input limits
    max_physical_quantity: Decimal = Decimal("10000000")
    reason_min_length: int = 10
    reason_max_length: int = 500
    loss_description_min_length: int = 20
    loss_description_max_length: int = 1000
    max_loss_quantity: Decimal = Decimal("100000")

    def __post_init__(self):
        for category in ToleranceCategory:
            if category not in self.tolerances:
                self.tolerances[category] = DEFAULT_TOLERANCES[category]
        logger.info(
            "stock_config_initialized",
            extra={
                "tolerances": {
                    c.value: [str(t.auto_approve_percent), str(t.single_validation_percent)]
                    for c, t in self.tolerances.items()
                },
                "critical_value": str(self.critical_value),
                "cooldown_hours": self.cooldown_hours,
                "suspicious_lookback_days": self.suspicious_lookback_days,
            },
        )

    def thresholds_for(self, category: ToleranceCategory) -> ToleranceThresholds:
        return self.tolerances[category]

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("stock_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create config from a dictionary (e.g. a YAML config set).

        Raises:
            ThresholdInvalidError: a category's single-validation threshold
                is not above its auto-approve threshold.
        """
        logger.info(
            "stock_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "tolerances" in data:
            data["tolerances"] = {
                ToleranceCategory(name): _thresholds(name, values)
                for name, values in data["tolerances"].items()
            }
        for key in ("critical_value", "max_physical_quantity", "max_loss_quantity"):
            if key in data:
                data[key] = Decimal(str(data[key]))
        return cls(**data)


def _thresholds(category: str, values: dict) -> ToleranceThresholds:
    auto = Decimal(str(values["auto_approve_percent"]))
    single = Decimal(str(values["single_validation_percent"]))
    if single <= auto:
        logger.warning(
            "stock_config_threshold_invalid",
            extra={"category": category, "auto_approve": str(auto), "single_validation": str(single)},
        )
        raise ThresholdInvalidError(
            category, "auto_approve_percent", auto, "single_validation_percent", single,
        )
    return ToleranceThresholds(auto_approve_percent=auto, single_validation_percent=single)
