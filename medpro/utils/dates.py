"""
Date helpers for converting between ISO and Brazilian display formats.
"""

from datetime import datetime
from typing import Optional


def convert_iso_to_display_date(iso_date: Optional[str]) -> str:
    """YYYY-MM-DD (optionally with a time part) to DD/MM/YYYY, or '' if invalid."""
    if not iso_date:
        return ""

    parts = iso_date.split("T")[0].split("-")
    if len(parts) != 3:
        return ""
    try:
        year, month, day = (int(p) for p in parts)
    except ValueError:
        return ""

    if not (1 <= day <= 31 and 1 <= month <= 12 and 1900 <= year <= 2100):
        return ""
    return f"{day:02d}/{month:02d}/{year}"


def convert_display_date_to_iso(display_date: Optional[str]) -> str:
    """DD/MM/YYYY to YYYY-MM-DD, or '' if invalid."""
    if not display_date:
        return ""

    parts = display_date.split("/")
    if len(parts) != 3:
        return ""
    try:
        day, month, year = (int(p.strip()) for p in parts)
    except ValueError:
        return ""

    if not (1 <= day <= 31 and 1 <= month <= 12):
        return ""
    return f"{year}-{month:02d}-{day:02d}"


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp as sent by the backend (accepts a trailing Z)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Optional[str]) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        return "-"
    return parsed.strftime("%d/%m/%Y")


def format_datetime(value: Optional[str]) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        return "-"
    return parsed.strftime("%d/%m/%Y %H:%M:%S")
