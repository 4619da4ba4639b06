"""
Scalar conversion utilities.
Single responsibility: turn loosely typed cell values into key text and writable cells.
"""

import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional


def is_null(val: Any) -> bool:
    """
    Check whether a cell value counts as missing.
    
    None, float NaN and pandas' NaT/NA markers are all missing.
    
    Examples:
        >>> is_null(None)
        True
        >>> is_null(float("nan"))
        True
        >>> is_null("")
        False
    """
    if val is None:
        return True
    if isinstance(val, float):
        return math.isnan(val)
    if type(val).__name__ in ("NAType", "NaTType"):
        return True
    # numpy NaN scalars compare unequal to themselves
    try:
        return bool(val != val)
    except (TypeError, ValueError):
        return False


def coerce_to_text(val: Any) -> Optional[str]:
    """
    Convert a scalar cell value to the text used in composite keys.
    
    Args:
        val: Cell value (string, number, bool, date or null)
        
    Returns:
        Text form, or None for missing values
        
    Examples:
        >>> coerce_to_text(10.0)
        '10'
        >>> coerce_to_text(True)
        'true'
        >>> coerce_to_text(None) is None
        True
    """
    if is_null(val):
        return None
    
    if isinstance(val, str):
        return val
    
    if isinstance(val, bool):
        return "true" if val else "false"
    
    if isinstance(val, float):
        if math.isinf(val):
            return "Infinity" if val > 0 else "-Infinity"
        # Spreadsheet readers hand back whole numbers as floats
        if val.is_integer():
            return str(int(val))
        return repr(val)
    
    if isinstance(val, Decimal):
        if val == val.to_integral_value():
            return str(val.to_integral_value())
        return str(val.normalize())
    
    if isinstance(val, (datetime, date, time)):
        return val.isoformat()
    
    return str(val)


def to_cell_value(val: Any) -> Any:
    """
    Convert a value into something a worksheet cell can hold.
    
    Args:
        val: Any record value
        
    Returns:
        None, bool, int, float, str, date or datetime
        
    Raises:
        TypeError: If the value cannot be represented as text
    """
    if is_null(val):
        return None
    
    if isinstance(val, (str, bool, int, float)):
        return val
    
    if isinstance(val, Decimal):
        return float(val)
    
    if isinstance(val, datetime):
        # Timezone-aware datetimes are not supported by worksheet writers
        if val.tzinfo is not None:
            return val.isoformat()
        return val
    
    if isinstance(val, (date, time)):
        return val.isoformat()
    
    if isinstance(val, (bytes, bytearray)):
        return val.decode("utf-8", errors="replace")
    
    if isinstance(val, (dict, list, tuple, set)):
        raise TypeError(f"Unsupported cell value type: {type(val).__name__}")
    
    return str(val)
