"""Configuration management."""

from .manager import ConfigManager, ReconciliationConfig, DatasetSource, ExportPolicy

__all__ = ["ConfigManager", "ReconciliationConfig", "DatasetSource", "ExportPolicy"]
