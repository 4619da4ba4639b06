"""
Structured logging utility.
Single responsibility: provide consistent logging across application.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import json


LEVELS = {
    "DEBUG": 10,
    "INFO": 20,
    "WARN": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}


class StructuredLogger:
    """
    Structured logger for consistent application logging.
    """
    
    def __init__(self, name: str = "sheet-recon",
                 log_file: Optional[Path] = None,
                 level: str = "INFO"):
        """
        Initialize logger.
        
        Args:
            name: Logger name
            log_file: Optional file path for JSON-lines logging
            level: Minimum level written (DEBUG, INFO, WARN, ERROR, CRITICAL)
        """
        self.name = name
        self.log_file = Path(log_file) if log_file else None
        self.level = level.upper()
    
    def is_enabled(self, level: str) -> bool:
        """Check whether a level passes the configured threshold."""
        return LEVELS.get(level, 0) >= LEVELS.get(self.level, 20)
        
    def _format_message(self, level: str, message: str, 
                       **kwargs) -> Dict[str, Any]:
        """
        Format log message with metadata.
        
        Args:
            level: Log level (INFO, DEBUG, ERROR, etc.)
            message: Dotted event name
            **kwargs: Additional context fields
            
        Returns:
            Formatted log entry
        """
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "logger": self.name,
            "message": message
        }
        
        if kwargs:
            entry["context"] = kwargs
            
        return entry
    
    def _output(self, entry: Dict[str, Any]):
        """
        Output log entry to console and optionally file.
        
        Args:
            entry: Log entry dictionary
        """
        # Console output - human readable
        timestamp = entry["timestamp"].split("T")[1][:8]
        level = entry["level"]
        msg = entry["message"]
        
        print(f"[{timestamp}] {level:5} | {msg}", file=sys.stderr)
        
        if "context" in entry:
            for key, value in entry["context"].items():
                print(f"  {key}={value}", file=sys.stderr)
        
        # File output - JSON for parsing
        if self.log_file:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
    
    def _log(self, level: str, message: str, **kwargs):
        if not self.is_enabled(level):
            return
        self._output(self._format_message(level, message, **kwargs))
    
    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log("INFO", message, **kwargs)
    
    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log("DEBUG", message, **kwargs)
    
    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._log("WARN", message, **kwargs)
    
    def error(self, message: str, **kwargs):
        """Log error message."""
        self._log("ERROR", message, **kwargs)
    
    def critical(self, message: str, **kwargs):
        """Log critical message."""
        self._log("CRITICAL", message, **kwargs)


# Global logger instance
_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "sheet-recon") -> StructuredLogger:
    """
    Get or create logger instance.
    
    Args:
        name: Logger name
        
    Returns:
        Logger instance
    """
    global _logger
    if _logger is None:
        _logger = StructuredLogger(name)
    return _logger


def configure_logger(level: str = "INFO",
                     log_file: Optional[Path] = None) -> StructuredLogger:
    """
    Reconfigure the shared logger in place.
    
    Existing module-level references keep working because the
    instance is mutated rather than replaced.
    """
    logger = get_logger()
    logger.level = level.upper()
    logger.log_file = Path(log_file) if log_file else None
    return logger
