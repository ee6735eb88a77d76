"""
Stock configuration.

    from stock_config import load_config
    config = load_config("config/stock.yaml")
"""

from stock_config.loader import load_config, load_yaml_file
from stock_config.schema import (
    DatabaseConfig,
    StockConfig,
    VarianceThresholdConfig,
)

__all__ = [
    "DatabaseConfig",
    "StockConfig",
    "VarianceThresholdConfig",
    "load_config",
    "load_yaml_file",
]
