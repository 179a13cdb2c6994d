# booking/services/clock.py
from __future__ import annotations
from datetime import datetime, time

import pytz

from ..config import settings

def _local_tz():
    return pytz.timezone(settings.TIMEZONE or "UTC")

def local_now() -> datetime:
    """
    "Ahora" en la TZ de la agenda, sin tzinfo: las citas guardan fecha y hora
    de pared, así que se comparan contra un datetime naive local.
    """
    return datetime.now(_local_tz()).replace(tzinfo=None)

def parse_hhmm(value: str) -> time:
    """'09:30' → time(9, 30). Acepta también 'HH:MM:SS'."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Hora inválida: {value!r}")
    return time(int(parts[0]), int(parts[1]))
