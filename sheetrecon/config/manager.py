"""
Configuration management.
Single responsibility: load, validate, and save reconciliation configuration.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, fields

from ..core.errors import ValidationError
from ..core.key_builder import KeyPolicy
from ..core.models import ColumnMapping, parse_flag
from ..pipeline.chunked_processor import DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE, TARGET_CHUNK_BYTES
from ..utils.logger import get_logger


logger = get_logger()


TOP_LEVEL_SECTIONS = {"file1", "file2", "mappings", "duplicates", "processing", "export"}


@dataclass
class DatasetSource:
    """Where one side of the reconciliation is read from."""
    
    path: str
    sheet: Optional[str] = None
    
    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.path or not isinstance(self.path, str):
            raise ValidationError("Dataset path is required")


@dataclass
class ProcessingConfig:
    """Chunking for duplicate detection and matching."""
    
    chunk_size: int = DEFAULT_CHUNK_SIZE
    
    def __post_init__(self):
        if not isinstance(self.chunk_size, int) or self.chunk_size < 1:
            raise ValidationError(f"chunk_size must be >= 1, got {self.chunk_size!r}")


@dataclass
class ExportPolicy:
    """Ceilings and naming for workbook export."""
    
    output_dir: str = "reports"
    base_name: str = "reconciliation"
    max_rows_per_sheet: int = 50_000
    max_output_bytes: int = 500 * 1024 * 1024
    target_chunk_bytes: int = TARGET_CHUNK_BYTES
    max_chunk_size: int = MAX_CHUNK_SIZE
    max_item_errors: int = 10
    include_duplicate_groups: bool = True
    split_max_rows_per_sheet: int = 100_000
    split_max_sheets_per_workbook: int = 10
    
    def __post_init__(self):
        for name in ("max_rows_per_sheet", "max_output_bytes", "target_chunk_bytes",
                     "max_chunk_size", "split_max_rows_per_sheet",
                     "split_max_sheets_per_workbook"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValidationError(f"export.{name} must be a positive integer, got {value!r}")
        if not isinstance(self.max_item_errors, int) or self.max_item_errors < 0:
            raise ValidationError(
                f"export.max_item_errors must be >= 0, got {self.max_item_errors!r}"
            )
        if not self.base_name:
            raise ValidationError("export.base_name is required")
        self.include_duplicate_groups = parse_flag(self.include_duplicate_groups,
                                                   "export.include_duplicate_groups")


def _build_section(cls, data: Any, section: str):
    """Instantiate a config dataclass from a YAML mapping, rejecting unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValidationError(f"'{section}' must be a mapping, got {type(data).__name__}")
    
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValidationError(f"Unknown keys in '{section}': {', '.join(unknown)}")
    
    try:
        return cls(**data)
    except TypeError as e:
        raise ValidationError(f"Invalid '{section}' section: {e}") from e


@dataclass
class ReconciliationConfig:
    """Complete configuration for one reconciliation."""
    
    mappings: List[ColumnMapping] = field(default_factory=list)
    file1: Optional[DatasetSource] = None
    file2: Optional[DatasetSource] = None
    duplicates: KeyPolicy = field(default_factory=KeyPolicy.exact)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    export: ExportPolicy = field(default_factory=ExportPolicy)
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconciliationConfig":
        """
        Build configuration from a parsed YAML document.
        
        Raises:
            ValidationError: On unknown sections or malformed values
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError("Configuration root must be a mapping")
        
        unknown = sorted(set(data) - TOP_LEVEL_SECTIONS)
        if unknown:
            raise ValidationError(f"Unknown configuration sections: {', '.join(unknown)}")
        
        raw_mappings = data.get("mappings") or []
        if not isinstance(raw_mappings, list):
            raise ValidationError("'mappings' must be a list")
        
        sources = {}
        for side in ("file1", "file2"):
            raw = data.get(side)
            sources[side] = _build_section(DatasetSource, raw, side) if raw is not None else None
        
        duplicates = (_build_section(KeyPolicy, data["duplicates"], "duplicates")
                      if data.get("duplicates") is not None else KeyPolicy.exact())
        
        return cls(
            mappings=[ColumnMapping.from_dict(m) for m in raw_mappings],
            file1=sources["file1"],
            file2=sources["file2"],
            duplicates=duplicates,
            processing=_build_section(ProcessingConfig, data.get("processing"), "processing"),
            export=_build_section(ExportPolicy, data.get("export"), "export"),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert back to a YAML-ready dictionary."""
        config_dict: Dict[str, Any] = {}
        
        for side, source in (("file1", self.file1), ("file2", self.file2)):
            if source is not None:
                config_dict[side] = {"path": source.path, "sheet": source.sheet}
        
        config_dict["mappings"] = [m.to_dict() for m in self.mappings]
        config_dict["duplicates"] = {
            "case_sensitive": self.duplicates.case_sensitive,
            "trim_whitespace": self.duplicates.trim_whitespace,
            "ignore_empty_values": self.duplicates.ignore_empty_values,
        }
        config_dict["processing"] = {"chunk_size": self.processing.chunk_size}
        config_dict["export"] = {f.name: getattr(self.export, f.name)
                                 for f in fields(ExportPolicy)}
        
        return config_dict


class ConfigManager:
    """
    Manage reconciliation configuration files.
    """
    
    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config manager.
        
        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path) if config_path else Path("reconcile.yaml")
        self.config: Optional[ReconciliationConfig] = None
    
    def load(self) -> ReconciliationConfig:
        """
        Load configuration from file.
        
        Returns:
            Parsed configuration
            
        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If the YAML is malformed or holds invalid values
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        
        logger.info("config.loading", file=str(self.config_path))
        
        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error("config.invalid_yaml", file=str(self.config_path), error=str(e))
            raise ValidationError(f"Invalid YAML in {self.config_path}", details=str(e)) from e
        
        try:
            self.config = ReconciliationConfig.from_dict(raw)
        except ValidationError as e:
            logger.error("config.invalid", file=str(self.config_path), error=e.message)
            raise
        
        logger.info("config.loaded",
                    mappings=len(self.config.mappings),
                    file1=self.config.file1.path if self.config.file1 else None,
                    file2=self.config.file2.path if self.config.file2 else None)
        
        return self.config
    
    def save(self, config: Optional[ReconciliationConfig] = None,
             path: Optional[Path] = None) -> Path:
        """
        Save configuration to file.
        
        Args:
            config: Configuration to write (defaults to the loaded one)
            path: Output path (uses original path if not specified)
            
        Returns:
            Path written
        """
        config = config or self.config
        if config is None:
            raise ValueError("No configuration to save")
        
        output_path = Path(path) if path else self.config_path
        
        logger.info("config.saving", file=str(output_path))
        
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        
        logger.info("config.saved", file=str(output_path))
        return output_path
