"""
Stock configuration schema.

Defines the structure and defaults for the stock kernel's runtime
settings.  Values come from a YAML file (``stock_config.loader``) or a
plain dict; every dataclass validates itself in ``__post_init__``.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Self

from stock_engines.price_variance import VarianceThresholds
from stock_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///stock.db"
DATABASE_URL_ENV = "STOCK_DATABASE_URL"


def _optional_decimal(value: Any, name: str) -> Decimal | None:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{name} must be finite")
    if result < 0:
        raise ValueError(f"{name} cannot be negative")
    return result


@dataclass
class VarianceThresholdConfig:
    """Price variance tolerance.  None or 0 means "not configured"."""

    threshold_percent: Decimal | None = None
    threshold_amount: Decimal | None = None

    def __post_init__(self):
        self.threshold_percent = _optional_decimal(self.threshold_percent, "threshold_percent")
        self.threshold_amount = _optional_decimal(self.threshold_amount, "threshold_amount")

    def to_thresholds(self) -> VarianceThresholds:
        return VarianceThresholds(
            threshold_percent=self.threshold_percent,
            threshold_amount=self.threshold_amount,
        )


@dataclass
class DatabaseConfig:
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False

    def __post_init__(self):
        if not self.url:
            raise ValueError("database url is required")

    @classmethod
    def from_env(cls, default: str = DEFAULT_DATABASE_URL) -> Self:
        return cls(url=os.environ.get(DATABASE_URL_ENV, default))


@dataclass
class StockConfig:
    """
    Runtime settings for the stock kernel.

        config = StockConfig.from_dict({
            "currency": "SAR",
            "variance": {"threshold_percent": "2.5"},
        })
    """

    currency: str = "SAR"
    variance: VarianceThresholdConfig = field(default_factory=VarianceThresholdConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    # Document number prefixes (<PREFIX>-<YYYY>-<NNN>)
    ncr_prefix: str = "NCR"
    delivery_prefix: str = "DEL"
    issue_prefix: str = "ISS"
    transfer_prefix: str = "TRF"

    copy_prices_on_roll_forward: bool = True
    notifications_enabled: bool = True
    notification_max_attempts: int = 3

    def __post_init__(self):
        if isinstance(self.variance, dict):
            self.variance = VarianceThresholdConfig(**self.variance)
        if isinstance(self.database, dict):
            self.database = DatabaseConfig(**self.database)

        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got '{self.currency}'")
        self.currency = self.currency.upper()

        prefixes = (self.ncr_prefix, self.delivery_prefix, self.issue_prefix, self.transfer_prefix)
        for prefix in prefixes:
            if not prefix or not prefix.isalnum():
                raise ValueError(f"document prefix must be alphanumeric, got '{prefix}'")
        if len(set(prefixes)) != len(prefixes):
            raise ValueError("document prefixes must be distinct")

        if self.notification_max_attempts < 1:
            raise ValueError("notification_max_attempts must be at least 1")

        logger.info(
            "stock_config_initialized",
            extra={
                "currency": self.currency,
                "threshold_percent": self.variance.threshold_percent,
                "threshold_amount": self.variance.threshold_amount,
                "copy_prices_on_roll_forward": self.copy_prices_on_roll_forward,
                "notifications_enabled": self.notifications_enabled,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Any variance raises an NCR; prices roll forward; SAR."""
        logger.info("stock_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        logger.info(
            "stock_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
