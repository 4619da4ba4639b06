"""
Composite key derivation.
Single responsibility: turn a row record into a canonical grouping key.

Two key flavours exist:

* duplicate keys, built from every data column of a record (sorted by
  column name) as ``column:value`` parts joined by ``|``;
* match keys, built from the mapped columns of one side in mapping order,
  normalized per mapping (``is_exact_match``).

An empty key means "no key": such records are never grouped or matched.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..utils.converters import coerce_to_text
from .models import ColumnMapping, parse_flag


KEY_SEPARATOR = "|"
INTERNAL_PREFIX = "_"

FILE1 = 1
FILE2 = 2


@dataclass(frozen=True)
class KeyPolicy:
    """Normalization rules applied to each value before it joins a key."""
    
    case_sensitive: bool = False
    trim_whitespace: bool = True
    ignore_empty_values: bool = True
    
    def __post_init__(self):
        for name in ("case_sensitive", "trim_whitespace", "ignore_empty_values"):
            object.__setattr__(self, name, parse_flag(getattr(self, name), name))
    
    @classmethod
    def exact(cls) -> "KeyPolicy":
        """Policy for exact-duplicate detection: only surrounding whitespace is ignored."""
        return cls(case_sensitive=True, trim_whitespace=True, ignore_empty_values=False)


DEFAULT_POLICY = KeyPolicy()


def is_internal_column(name: Any) -> bool:
    """Bookkeeping fields (``_``-prefixed or non-string names) are never data columns."""
    return not isinstance(name, str) or name.startswith(INTERNAL_PREFIX)


def data_columns(record: Mapping[str, Any], sort: bool = False) -> List[str]:
    """
    List the data columns of a record.
    
    Args:
        record: Row record
        sort: Sort by name instead of keeping insertion order
        
    Returns:
        Column names, internal fields excluded
    """
    columns = [name for name in record.keys() if not is_internal_column(name)]
    return sorted(columns) if sort else columns


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace(KEY_SEPARATOR, "\\" + KEY_SEPARATOR)


def _escape_column(name: str) -> str:
    return _escape(name).replace(":", "\\:")


def normalize_value(value: Any, case_sensitive: bool,
                    trim_whitespace: bool) -> Optional[str]:
    """Coerce a value to key text and apply case/whitespace rules. None stays None."""
    text = coerce_to_text(value)
    if text is None:
        return None
    if not case_sensitive:
        text = text.lower()
    if trim_whitespace:
        text = text.strip()
    return text


def build_key(record: Mapping[str, Any],
              columns: Optional[Sequence[str]] = None,
              policy: Optional[KeyPolicy] = None,
              sort_columns: bool = False) -> str:
    """
    Build a composite key from selected columns of a record.
    
    Args:
        record: Row record
        columns: Columns to include; all data columns when empty or None
        policy: Normalization policy (defaults to case-insensitive, trimmed,
            empty values ignored)
        sort_columns: Order parts by column name rather than by ``columns``
            / record insertion order
            
    Returns:
        ``col:value|col:value`` key, or ``""`` when nothing contributes
    """
    if not isinstance(record, Mapping):
        return ""
    
    policy = policy or DEFAULT_POLICY
    
    if columns:
        selected = sorted(columns) if sort_columns else list(columns)
    else:
        selected = data_columns(record, sort=sort_columns)
    
    parts = []
    for column in selected:
        text = normalize_value(record.get(column),
                               policy.case_sensitive,
                               policy.trim_whitespace)
        if text is None:
            if policy.ignore_empty_values:
                continue
            text = ""
        parts.append(f"{_escape_column(column)}:{_escape(text)}")
    
    return KEY_SEPARATOR.join(parts)


def build_duplicate_key(record: Mapping[str, Any],
                        policy: Optional[KeyPolicy] = None) -> str:
    """All-columns key with columns sorted by name, independent of field order."""
    return build_key(record, None, policy, sort_columns=True)


def build_match_key(record: Mapping[str, Any],
                    mappings: Iterable[ColumnMapping],
                    side: int) -> str:
    """
    Build the cross-dataset match key for one side of the mappings.
    
    Exact mappings compare the raw text form of the value; the others are
    lower-cased and trimmed. Parts are values only (column names differ
    between the two files) in mapping order.
    
    Args:
        record: Row record from File 1 or File 2
        mappings: Ordered column mappings
        side: ``FILE1`` or ``FILE2``
        
    Returns:
        Match key, or ``""`` if every mapped column is empty
    """
    if not isinstance(record, Mapping):
        return ""
    if side not in (FILE1, FILE2):
        raise ValueError(f"side must be FILE1 or FILE2, got {side!r}")
    
    parts = []
    has_value = False
    for mapping in mappings:
        column = mapping.file1_column if side == FILE1 else mapping.file2_column
        exact = mapping.is_exact_match
        text = normalize_value(record.get(column),
                               case_sensitive=exact,
                               trim_whitespace=not exact)
        if text is None:
            text = ""
        if text:
            has_value = True
        parts.append(_escape(text))
    
    if not has_value:
        return ""
    return KEY_SEPARATOR.join(parts)
