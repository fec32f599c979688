import math
import re
from datetime import date, datetime, time

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\Z")
_HEX_RE = re.compile(r"0[xX][0-9a-fA-F]+\Z")
_FLOAT_PREFIX_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")

NAN = float("nan")


def to_number(value) -> float:
    """Permissive conversion with the same rules as JavaScript's ``Number()``."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    if isinstance(value, date):
        return datetime.combine(value, time()).timestamp() * 1000
    text = str(value).strip()
    if not text:
        return 0.0
    if _NUMBER_RE.match(text):
        return float(text)
    if _HEX_RE.match(text):
        return float(int(text, 16))
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    return NAN


def parse_float_prefix(value) -> float:
    """``parseFloat``: reads the longest numeric prefix, NaN when there is none."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = "" if value is None else str(value)
    m = _FLOAT_PREFIX_RE.match(text)
    if m:
        return float(m.group(1))
    stripped = text.lstrip()
    if stripped.startswith(("Infinity", "+Infinity")):
        return math.inf
    if stripped.startswith("-Infinity"):
        return -math.inf
    return NAN


def parse_int_prefix(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(math.trunc(value)) if math.isfinite(value) else NAN
    m = _INT_PREFIX_RE.match("" if value is None else str(value))
    return float(int(m.group(1))) if m else NAN


def number_to_string(n: float) -> str:
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "Infinity" if n > 0 else "-Infinity"
    if n == int(n) and abs(n) < 1e21:
        return str(int(n))
    return repr(n)
