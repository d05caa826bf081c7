from __future__ import annotations

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Optional, Tuple, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

SALARY_NUMBER_REGEX = re.compile(r"(\d+(?:\.\d+)?)\s*(k)?")
RELATIVE_DAYS_REGEX = re.compile(r"(\d+)\s*day", re.IGNORECASE)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())


def html_to_text(text: str) -> str:
    if not text:
        return ""
    if "<" not in text:
        return normalize_text(text)
    soup = BeautifulSoup(text, "html.parser")
    return normalize_text(soup.get_text(" "))


def trim_description(text: str, max_chars: int) -> str:
    if not text:
        return ""
    return html_to_text(text)[:max_chars]


def slugify(value: Optional[str], limit: int = 30) -> str:
    text = (value or "unknown").lower()
    text = re.sub(r"[^a-z0-9]", "-", text)
    text = re.sub(r"-+", "-", text)
    return text[:limit]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601, RFC 2822, dd/mm/yyyy or epoch values into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        ts = float(value)
        if ts > 10_000_000_000:
            ts = ts / 1000
        try:
            dt = datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, ValueError, OSError):
            return None
    else:
        text = str(value).strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = datetime.strptime(text, "%d/%m/%Y")
            except ValueError:
                try:
                    dt = parsedate_to_datetime(text)
                except (TypeError, ValueError):
                    return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def age_in_days(posted: Optional[datetime], now: datetime) -> Optional[int]:
    if posted is None:
        return None
    return (now - posted).days


def extract_relative_days(text: str) -> Optional[int]:
    if not text:
        return None
    match = RELATIVE_DAYS_REGEX.search(text)
    if not match:
        return None
    return int(match.group(1))


def parse_salary_bounds(value: Union[str, int, float, None]) -> Tuple[Optional[float], Optional[float]]:
    """Return (min, max) salary from free text.

    Every number in the text is a candidate, a trailing ``k`` multiplies by 1000
    and only positive values count. Numeric input is used as both bounds.
    """
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, (int, float)):
        if value > 0:
            return float(value), float(value)
        return None, None
    text = str(value).lower().replace(",", "")
    numbers = []
    for match in SALARY_NUMBER_REGEX.finditer(text):
        amount = float(match.group(1))
        if match.group(2):
            amount *= 1000
        if amount > 0:
            numbers.append(amount)
    if not numbers:
        return None, None
    return min(numbers), max(numbers)


def salary_max(value: Union[str, int, float, None]) -> Optional[float]:
    return parse_salary_bounds(value)[1]


def format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def canonicalize_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError:
        return None
    if not host:
        return None
    path = re.sub(r"/+$", "", parsed.path or "")
    return f"{host.lower()}{path}"


def normalize_dedupe_text(value: Optional[str]) -> str:
    text = (value or "").lower()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def contains_word(text: str, term: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])", text) is not None


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
