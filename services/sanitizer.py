"""Value repair helpers used by every importer.

Kreate exports are loosely typed: identifiers arrive with stray control
characters, titles with escaped quotes, durations as seconds, milliseconds or
``m:ss`` text.  The helpers here turn such raw values into clean canonical
strings and describe every alteration as a :class:`CleaningReportEntry` so the
user can audit what was changed.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, List, Optional, Tuple

import pytz
from dateutil.parser import parse as dateutil_parse

from .music_library import CleaningReportEntry

LOGGER = logging.getLogger(__name__)

CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")
ESCAPED_QUOTES = re.compile(r"\\+([\"'])")
MINUTES_SECONDS = re.compile(r"^(\d+):(\d{2})$")

REPORT_VALUE_LIMIT = 100
# Anything above this many "seconds" (roughly 27 hours) is taken to be a
# millisecond value.
DURATION_MS_THRESHOLD = 100000

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

ISSUE_CONTROL = "control characters removed"
ISSUE_WHITESPACE = "whitespace trimmed"
ISSUE_QUOTES = "escaped quotes fixed"
ISSUE_MILLISECONDS = "converted from milliseconds"
ISSUE_MINUTES_SECONDS = "parsed from mm:ss format"
ISSUE_INVALID_DURATION = "invalid duration set to 0"


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _truncate(value: str) -> str:
    if len(value) > REPORT_VALUE_LIMIT:
        return value[:REPORT_VALUE_LIMIT] + "..."
    return value


def sanitize(raw: Any, field: str = "value") -> Tuple[str, Optional[CleaningReportEntry]]:
    """Return ``raw`` as a clean string plus a change record when it was altered."""

    if raw is None:
        return "", None

    original = _stringify(raw)
    cleaned = original
    issues: List[str] = []

    if CONTROL_CHARACTERS.search(cleaned):
        cleaned = CONTROL_CHARACTERS.sub("", cleaned)
        issues.append(ISSUE_CONTROL)

    stripped = cleaned.strip()
    if stripped != cleaned:
        cleaned = stripped
        issues.append(ISSUE_WHITESPACE)

    if ESCAPED_QUOTES.search(cleaned):
        cleaned = ESCAPED_QUOTES.sub(r"\1", cleaned)
        issues.append(ISSUE_QUOTES)

    if not issues or cleaned == original:
        return cleaned, None

    entry = CleaningReportEntry(
        field=field,
        original=_truncate(original),
        cleaned=_truncate(cleaned),
        issue=", ".join(issues),
    )
    return cleaned, entry


def _parse_number(text: str) -> Optional[float]:
    if text == "":
        return 0.0
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_duration(raw: Any) -> Tuple[str, Optional[CleaningReportEntry]]:
    """Convert seconds, milliseconds or ``m:ss`` text into whole seconds."""

    if raw is None:
        return "0", None

    original = _stringify(raw).strip()
    issue = ""
    number = _parse_number(original)

    if number is not None and number >= 0:
        if number > DURATION_MS_THRESHOLD:
            seconds = math.floor(number / 1000)
            issue = ISSUE_MILLISECONDS
        else:
            seconds = math.floor(number)
    else:
        match = MINUTES_SECONDS.match(original)
        if match:
            seconds = int(match.group(1)) * 60 + int(match.group(2))
            issue = ISSUE_MINUTES_SECONDS
        else:
            seconds = 0
            issue = ISSUE_INVALID_DURATION

    # A canonical value above the threshold would be read back as
    # milliseconds, so it cannot be represented. Zeroing it gives up
    # "200000000 ms -> 200000" in exchange for idempotent normalisation.
    if seconds > DURATION_MS_THRESHOLD:
        seconds = 0
        issue = ISSUE_INVALID_DURATION

    cleaned = str(seconds)
    if issue and original != cleaned:
        return cleaned, CleaningReportEntry(
            field="duration",
            original=_truncate(original),
            cleaned=cleaned,
            issue=issue,
        )
    return cleaned, None


class Cleaner:
    """Apply :func:`sanitize` / :func:`normalize_duration` and collect the report."""

    def __init__(self, report: List[CleaningReportEntry]):
        self.report = report

    def text(self, value: Any, field: str) -> str:
        cleaned, entry = sanitize(value, field)
        if entry is not None:
            self.report.append(entry)
        return cleaned

    def optional_text(self, value: Any, field: str) -> Optional[str]:
        if value is None:
            return None
        return self.text(value, field)

    def duration(self, value: Any) -> int:
        cleaned, entry = normalize_duration(value)
        if entry is not None:
            self.report.append(entry)
        return int(cleaned)


# ---------------------------------------------------------------------------
# Numeric coercion
# ---------------------------------------------------------------------------


def _int64(number: int, default: Optional[int]) -> Optional[int]:
    # SQLite INTEGER is a signed 64-bit value.
    if INT64_MIN <= number <= INT64_MAX:
        return number
    return default


def coerce_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return _int64(value, default)
    if isinstance(value, float):
        return _int64(int(value), default) if math.isfinite(value) else default
    text = _stringify(value).strip()
    try:
        return _int64(int(text), default)
    except ValueError:
        try:
            number = float(text)
        except ValueError:
            return default
        return _int64(int(number), default) if math.isfinite(number) else default


def coerce_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(_stringify(value).strip())
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coerce_timestamp(value: Any) -> Optional[int]:
    """Return an epoch timestamp in milliseconds.

    Numeric values are taken as-is.  Text such as ``2024-03-01T10:00:00`` is
    parsed with dateutil; naive values are assumed to be UTC.
    """

    if value in (None, ""):
        return None
    number = coerce_int(value)
    if number is not None:
        return number
    text = _stringify(value).strip()
    if not text:
        return None
    if _parse_number(text) is not None:
        # Numeric but outside the INTEGER range.
        return None
    try:
        parsed = dateutil_parse(text)
    except (OverflowError, TypeError, ValueError):
        LOGGER.debug("Could not interpret %r as a timestamp", text)
        return None
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return int(parsed.timestamp() * 1000)


__all__ = [
    "Cleaner",
    "DURATION_MS_THRESHOLD",
    "coerce_float",
    "coerce_int",
    "coerce_timestamp",
    "normalize_duration",
    "sanitize",
]
