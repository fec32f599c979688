import re
from datetime import date, datetime
from typing import Optional, Union

DateValue = Union[date, datetime]

ISO_PATTERN = "YYYY-MM-DD"
US_PATTERN = "MM/DD/YYYY"

_FALLBACK_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)

_PATTERN_TOKENS = re.compile(r"YYYY|YY|MM|DD|HH|mm|ss")


def parse_date(value) -> Optional[DateValue]:
    """Parse the date formats authors and signers actually type.

    Returns a ``date`` for date-only input, a ``datetime`` when a time part is
    present and ``None`` when nothing matches.
    """
    if isinstance(value, (date, datetime)):
        return value
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed if "%H" in fmt else parsed.date()
    return None


def format_date(value: DateValue, pattern: str = ISO_PATTERN) -> str:
    if isinstance(value, datetime):
        hour, minute, second = value.hour, value.minute, value.second
    else:
        hour = minute = second = 0
    parts = {
        "YYYY": f"{value.year:04d}",
        "YY": f"{value.year % 100:02d}",
        "MM": f"{value.month:02d}",
        "DD": f"{value.day:02d}",
        "HH": f"{hour:02d}",
        "mm": f"{minute:02d}",
        "ss": f"{second:02d}",
    }
    return _PATTERN_TOKENS.sub(lambda m: parts[m.group(0)], pattern)
