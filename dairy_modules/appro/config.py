"""
Procurement (appro) Configuration Schema.

Defines the structure and defaults for purchase-order generation, sending
and delay tracking.  Actual values are loaded from a config set at runtime
(see ``dairy_config.loader``).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from dairy_kernel.logging_config import get_logger

logger = get_logger("modules.appro.config")


@dataclass
class ApproConfig:
    """
    Configuration schema for the appro module.

    Override at instantiation with site-specific values:

        config = ApproConfig(
            default_unit_price=Decimal("1.00"),
            critical_delay_days=5,
        )
    """

    # Purchase-order generation
    default_unit_price: Decimal = Decimal("0")
    request_reference_width: int = 3
    purchase_order_reference_width: int = 5

    # Sending
    min_proof_note_length: int = 20

    # Receiving
    reception_reference_width: int = 3

    # Delay tracking
    critical_delay_days: int = 3

    def __post_init__(self):
        if self.default_unit_price < 0:
            raise ValueError(f"default_unit_price cannot be negative: {self.default_unit_price}")
        if self.critical_delay_days < 1:
            raise ValueError(f"critical_delay_days must be >= 1, got {self.critical_delay_days}")
        logger.info(
            "appro_config_initialized",
            extra={
                "default_unit_price": str(self.default_unit_price),
                "min_proof_note_length": self.min_proof_note_length,
                "critical_delay_days": self.critical_delay_days,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("appro_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. a YAML config set)."""
        logger.info(
            "appro_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "default_unit_price" in data:
            data["default_unit_price"] = Decimal(str(data["default_unit_price"]))
        return cls(**data)
