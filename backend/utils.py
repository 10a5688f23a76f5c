# utils.py: ids, dates and text normalization shared by the engine and importer
import math
import numbers
import re
import unicodedata
import uuid
from datetime import date, datetime, timedelta
from typing import Optional

import pandas as pd

EXCEL_EPOCH = datetime(1970, 1, 1)
EXCEL_UNIX_OFFSET_DAYS = 25569  # 1970-01-01 counted from day 0 = 1899-12-30
EXCEL_SERIAL_RANGE = (20000, 60000)

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DMY_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")


def new_id() -> str:
    return str(uuid.uuid4())


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == ""


def clean_text(value) -> str:
    return "" if is_blank(value) else str(value).strip()


def to_date(value) -> Optional[date]:
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def iso_or_empty(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def excel_serial_to_iso(serial: float) -> str:
    # Excel epoch is 1899-12-30; 25569 is the serial of 1970-01-01
    seconds = round((serial - EXCEL_UNIX_OFFSET_DAYS) * 86400)
    return (EXCEL_EPOCH + timedelta(seconds=seconds)).date().isoformat()


def _valid_iso(year: int, month: int, day: int) -> str:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return ""


def parse_date_to_iso(value) -> str:
    """Normalize a spreadsheet cell to YYYY-MM-DD.

    Accepts date objects, spreadsheet serial numbers, ISO strings and
    D/M/YYYY strings. Anything that can't be read becomes "" instead of
    raising, so one bad cell never aborts an import.
    """
    if is_blank(value):
        return ""
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return ""
    if isinstance(value, numbers.Real):
        lo, hi = EXCEL_SERIAL_RANGE
        return excel_serial_to_iso(value) if lo < value < hi else ""

    s = str(value).strip()
    if _ISO_RE.match(s):
        return _valid_iso(int(s[:4]), int(s[5:7]), int(s[8:10]))
    m = _DMY_RE.match(s)
    if m:
        return _valid_iso(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    parsed = pd.to_datetime(s, errors="coerce", dayfirst=True)
    if pd.isna(parsed):
        return ""
    return parsed.date().isoformat()


def normalize_phone(value) -> str:
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return re.sub(r"\s+", "", str(value).strip())


def norm_header(text) -> str:
    s = re.sub(r"\s+", " ", str(text or "").strip().lower())
    return re.sub(r"[._-]", " ", s)


# Vietnamese alphabet order; tones are weighed after letters
_VI_ALPHABET = "aăâbcdđeêghiklmnoôơpqrstuưvxy"
_VI_RANK = {ch: i for i, ch in enumerate(_VI_ALPHABET)}
_VI_TONES = ["", "\u0300", "\u0309", "\u0303", "\u0301", "\u0323"]
_LETTER_MARKS = {
    ("a", "\u0306"): "ă",
    ("a", "\u0302"): "â",
    ("e", "\u0302"): "ê",
    ("o", "\u0302"): "ô",
    ("o", "\u031b"): "ơ",
    ("u", "\u031b"): "ư",
}


def vi_sort_key(text: str):
    """Collation key following Vietnamese alphabet rules (đ after d, tones secondary)."""
    primary, tones = [], []
    for ch in (text or "").strip().lower():
        decomposed = unicodedata.normalize("NFD", ch)
        base, marks = decomposed[0], decomposed[1:]
        tone = 0
        for mark in marks:
            if (base, mark) in _LETTER_MARKS:
                base = _LETTER_MARKS[(base, mark)]
            elif mark in _VI_TONES:
                tone = _VI_TONES.index(mark)
        primary.append(_VI_RANK.get(base, len(_VI_ALPHABET) + ord(base)))
        tones.append(tone)
    return tuple(primary), tuple(tones), text or ""
