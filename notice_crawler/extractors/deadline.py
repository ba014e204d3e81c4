"""
Heuristic deadline detection over a notice's plain text.

Looks for full calendar dates near a deadline keyword and keeps the latest one
that is not before the notice was published.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import List, Optional

_HINT = re.compile(r"(마감|기한|까지|deadline|due|until|no later than)", re.IGNORECASE)
_FULL_DATE = re.compile(r"(\d{4})\s*(?:[-./]|년)\s*(\d{1,2})\s*(?:[-./]|월)\s*(\d{1,2})")
_WINDOW = 60


def detect_deadline(text: str, published_at: datetime) -> Optional[datetime]:
    candidates: List[date] = []
    for hint in _HINT.finditer(text or ""):
        window = text[max(0, hint.start() - _WINDOW): hint.end() + _WINDOW]
        for match in _FULL_DATE.finditer(window):
            try:
                candidates.append(date(*(int(part) for part in match.groups())))
            except ValueError:
                continue
    candidates = [day for day in candidates if day >= published_at.date()]
    if not candidates:
        return None
    return datetime.combine(max(candidates), time(23, 59, 59), tzinfo=published_at.tzinfo)
