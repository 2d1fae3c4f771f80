import re
import json
from enum import Enum
from typing import Any, Dict, List


class QueryType(Enum):
    """Execution path for a generated statement, chosen by its leading keyword."""
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    DDL = "DDL"
    UNKNOWN = "UNKNOWN"

    @property
    def is_read(self) -> bool:
        return self is QueryType.SELECT


_KEYWORD_TYPES = {
    "select": QueryType.SELECT,
    "insert": QueryType.INSERT,
    "update": QueryType.UPDATE,
    "delete": QueryType.DELETE,
    "create": QueryType.DDL,
    "drop": QueryType.DDL,
    "alter": QueryType.DDL,
}

_SQL_TAGS = ("sql", "sqlite", "sqlite3", "postgresql", "postgres", "mysql")

# ```sql\n ... \n```  (any tag before a line break, SQL dialect tags also before a space)
_FENCE_RE = re.compile(
    r"^```(?:(?:" + "|".join(_SQL_TAGS) + r")[ \t]+|[A-Za-z0-9_+-]*[ \t]*\r?\n)?(.*?)\s*```$",
    re.DOTALL | re.IGNORECASE,
)


def sanitize_sql(sql: str) -> str:
    """
    Strip markdown code fences wrapped around a generated statement.

    Only a fence that opens at the very start and closes at the very end of
    the (trimmed) text is removed; nested wrappers are peeled until none is
    left. Anything else is returned trimmed.
    """
    text = sql.strip()
    match = _FENCE_RE.match(text)
    while match:
        text = match.group(1).strip()
        match = _FENCE_RE.match(text)
    return text


def classify_query(sql: str) -> QueryType:
    text = sql.strip().lower()
    for keyword, query_type in _KEYWORD_TYPES.items():
        if text.startswith(keyword):
            return query_type
    return QueryType.UNKNOWN


def truncate_string(s: str, max_len: int = 80, suffix: str = "...") -> str:
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def format_rows(rows: List[Dict[str, Any]]) -> str:
    """Serialize result rows for the summarizer prompt."""
    return json.dumps(rows, default=str, ensure_ascii=False)


def format_duration(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    elif milliseconds < 60000:
        return f"{milliseconds / 1000:.2f}s"
    else:
        minutes = milliseconds // 60000
        seconds = (milliseconds % 60000) / 1000
        return f"{minutes}m {seconds:.1f}s"
