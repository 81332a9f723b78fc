"""Capture-date extraction from well-known filename patterns."""

from __future__ import annotations

import datetime as dt
import re
from typing import Callable, Optional

from .models import ExtractedDate

MIN_YEAR = 1990
MAX_YEAR = 2100
NOON = dt.time(12, 0, 0)

_WHATSAPP_ANDROID = re.compile(r"IMG-(\d{4})(\d{2})(\d{2})-WA")
_WHATSAPP_IOS = re.compile(
    r"WhatsApp.*?(\d{4})-(\d{2})-(\d{2})(?:\s+at\s+(\d{2})\.(\d{2})\.(\d{2}))?"
)
_SCREENSHOT_MAC = re.compile(
    r"Screenshot\s+(\d{4})-(\d{2})-(\d{2})\s+at\s+(\d{2})\.(\d{2})\.(\d{2})"
)
_CAMERA = re.compile(r"(?:IMG_)?(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})")
_GENERIC = re.compile(r"(\d{4})[-_]?(\d{2})[-_]?(\d{2})")


def _build_date(year: str, month: str, day: str, *, validate: bool) -> Optional[dt.date]:
    try:
        value = dt.date(int(year), int(month), int(day))
    except ValueError:
        return None
    if validate and not MIN_YEAR <= value.year <= MAX_YEAR:
        return None
    return value


def _build_time(hour: str | None, minute: str | None, second: str | None) -> Optional[dt.time]:
    if hour is None or minute is None or second is None:
        return None
    try:
        return dt.time(int(hour), int(minute), int(second))
    except ValueError:
        return None


def _whatsapp_android(name: str) -> Optional[ExtractedDate]:
    match = _WHATSAPP_ANDROID.search(name)
    if not match:
        return None
    date = _build_date(*match.groups(), validate=False)
    return ExtractedDate(date=date, label="WhatsApp") if date else None


def _whatsapp_ios(name: str) -> Optional[ExtractedDate]:
    match = _WHATSAPP_IOS.search(name)
    if not match:
        return None
    groups = match.groups()
    date = _build_date(*groups[:3], validate=False)
    if date is None:
        return None
    return ExtractedDate(date=date, time=_build_time(*groups[3:]), label="WhatsApp")


def _screenshot_mac(name: str) -> Optional[ExtractedDate]:
    match = _SCREENSHOT_MAC.search(name)
    if not match:
        return None
    groups = match.groups()
    date = _build_date(*groups[:3], validate=False)
    if date is None:
        return None
    return ExtractedDate(date=date, time=_build_time(*groups[3:]), label="Screenshot")


def _camera(name: str) -> Optional[ExtractedDate]:
    match = _CAMERA.search(name)
    if not match:
        return None
    groups = match.groups()
    date = _build_date(*groups[:3], validate=True)
    if date is None:
        return None
    return ExtractedDate(date=date, time=_build_time(*groups[3:]), label="Camera")


def _generic(name: str) -> Optional[ExtractedDate]:
    match = _GENERIC.search(name)
    if not match:
        return None
    date = _build_date(*match.groups(), validate=True)
    return ExtractedDate(date=date, label="Filename") if date else None


_PATTERNS: tuple[Callable[[str], Optional[ExtractedDate]], ...] = (
    _whatsapp_android,
    _whatsapp_ios,
    _screenshot_mac,
    _camera,
    _generic,
)


def extract_date_from_filename(name: str) -> Optional[ExtractedDate]:
    """Return the capture date encoded in a filename, if any pattern matches.

    Supported patterns, tried in order:

    - WhatsApp Android: ``IMG-20240115-WA0042.jpg``
    - WhatsApp iOS: ``WhatsApp Image 2024-01-15 at 10.30.45.jpeg``
    - macOS screenshot: ``Screenshot 2024-01-15 at 14.30.00.png``
    - Camera: ``20240115_143000.jpg`` or ``IMG_20240115_143000.jpg``
    - Generic: ``YYYY-MM-DD``, ``YYYY_MM_DD`` or ``YYYYMMDD`` anywhere in the name

    Camera and generic matches must fall between 1990 and 2100 and form a real
    calendar date.

    Args:
        name: File name (not a full path).

    Returns:
        Optional[ExtractedDate]: The extracted date, sourced from the filename.
    """
    for pattern in _PATTERNS:
        extracted = pattern(name)
        if extracted is not None:
            return extracted
    return None


def exif_timestamp(extracted: ExtractedDate) -> str:
    """Format ``extracted`` the way ExifTool stores capture dates.

    Dates without a clock time are pinned to noon so the day survives any
    timezone shift applied later.
    """
    moment = dt.datetime.combine(extracted.date, extracted.time or NOON)
    return moment.strftime("%Y:%m:%d %H:%M:%S")


__all__ = ["extract_date_from_filename", "exif_timestamp", "MIN_YEAR", "MAX_YEAR", "NOON"]
