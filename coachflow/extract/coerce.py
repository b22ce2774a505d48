"""Coercion helpers shared by the insight and action-plan normalizers.

Everything here takes untrusted JSON values and returns a plain value of the
expected type, falling back to a default instead of raising.
"""
import json
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

CONTENT_FRAGMENT_RE = re.compile(r'"content":\s*"([^"]+)"')
DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|minutes?|mins?|h|m)\b", re.IGNORECASE)


def safe_json_loads(raw: str) -> Optional[Any]:
    """Parse raw LLM text as JSON; if that fails, try the first {...} block. Returns None when neither parses."""
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        start = raw.find("{")
        end = raw.rfind("}")
        if start != -1 and end != -1 and end > start:
            try:
                return json.loads(raw[start : end + 1])
            except ValueError:
                pass
    return None


def content_fragments(text: str, min_length: int = 10) -> List[str]:
    """Quoted "content": "..." values longer than min_length, in order of appearance."""
    return [m for m in CONTENT_FRAGMENT_RE.findall(text or "") if len(m) > min_length]


def short_title(text: str, limit: int = 50) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


def first(data: Dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-empty value, else None."""
    for key in keys:
        val = data.get(key)
        if val is not None and val != "":
            return val
    return None


def as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, (int, float)):
        return str(value)
    return default


def as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        out = []
        for v in value:
            if isinstance(v, dict):
                v = first(v, "description", "text", "name", "title")
            s = as_text(v)
            if s:
                out.append(s)
        return out
    return []


def as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(f) or math.isinf(f) else f


def clamp01(value: Any, default: float) -> float:
    """Numeric value clamped into [0, 1]; default when not a number."""
    return min(1.0, max(0.0, as_float(value, default)))


def as_int(value: Any, default: int, lo: Optional[int] = None, hi: Optional[int] = None) -> int:
    n = int(round(as_float(value, default)))
    if lo is not None:
        n = max(lo, n)
    if hi is not None:
        n = min(hi, n)
    return n


def as_choice(value: Any, allowed: Iterable[str], default: str, aliases: Optional[Dict[str, str]] = None) -> str:
    """Lower-cased value if it is one of allowed (directly or via aliases), else default."""
    if not isinstance(value, str):
        return default
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    if aliases and key in aliases:
        key = aliases[key]
    return key if key in allowed else default


def minutes_from(value: Any, default: int = 60) -> int:
    """Positive minutes from a number or a phrase like '2 hours' / '30 min'."""
    if isinstance(value, str):
        m = DURATION_RE.search(value)
        if m:
            amount = float(m.group(1))
            unit = m.group(2).lower()
            minutes = amount * 60 if unit.startswith("h") else amount
            return max(1, int(round(minutes)))
    n = as_float(value, default)
    return max(1, int(round(n))) if n > 0 else default


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO date or datetime (string or datetime) as an aware UTC datetime; None if unparsable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def due_date_from(value: Any, now: Optional[datetime] = None, default_days: int = 7) -> datetime:
    """Parsed due date, or now + default_days when missing, unparsable, or already past."""
    now = now or utcnow()
    dt = parse_datetime(value)
    if dt is None or dt < now:
        return now + timedelta(days=default_days)
    return dt


def start_date_from(value: Any, now: Optional[datetime] = None) -> datetime:
    return parse_datetime(value) or (now or utcnow())
