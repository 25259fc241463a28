"""Configuration module for Business Spark."""

from business_spark.config.logging import configure_logging
from business_spark.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
