# booking/services/slots.py
from __future__ import annotations
import logging
from datetime import date, time
from typing import Iterable, List, Optional

from ..records import AppointmentRecord, Slot, WorkingHours

logger = logging.getLogger(__name__)

# ====== Utilidades de tiempo ======
def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute

def _to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)

def _overlaps(a_start, a_end, b_start, b_end):
    """Intervalos semiabiertos [start, end): tocarse en el borde no es choque."""
    return not (a_end <= b_start or b_end <= a_start)

def _busy_windows(
    day: date,
    existing: Iterable[AppointmentRecord],
    exclude_id: Optional[int] = None,
) -> List[tuple[int, int]]:
    """
    Ventanas ocupadas [(start_min, end_min)] de ese día. Sólo bloquean las
    citas pending/approved; rejected/completed liberan el horario.
    """
    out = []
    for ap in existing:
        if ap.date != day or not ap.is_blocking:
            continue
        if exclude_id is not None and ap.id == exclude_id:
            continue
        out.append((_minutes(ap.start_time), _minutes(ap.end_time)))
    return out

# ====== Slots disponibles ======
def compute_available_slots(
    day: date,
    config: WorkingHours,
    existing: Iterable[AppointmentRecord],
) -> List[Slot]:
    """
    Genera slots de config.slot_minutes entre day_start y day_end, contiguos y
    sin solaparse, y elimina los que tocan el descanso o una cita ocupada.

    Config mal formada (day_start >= day_end o slot <= 0) → lista vacía.
    """
    if config.slot_minutes <= 0 or config.day_start >= config.day_end:
        logger.warning("Horario inválido, sin slots: %s", config)
        return []

    start = _minutes(config.day_start)
    end = _minutes(config.day_end)
    break_start = _minutes(config.break_start)
    break_end = _minutes(config.break_end)
    busy_windows = _busy_windows(day, existing)

    slots = []
    cur = start
    delta = config.slot_minutes

    while cur + delta <= end:
        slot_start = cur
        slot_end = cur + delta
        cur += delta
        # Descanso de longitud cero no excluye nada
        if break_start < break_end and _overlaps(slot_start, slot_end, break_start, break_end):
            continue
        if any(_overlaps(slot_start, slot_end, b0, b1) for (b0, b1) in busy_windows):
            continue
        slots.append(Slot(_to_time(slot_start), _to_time(slot_end)))

    logger.debug("slots day=%s busy=%s → %s", day, busy_windows, [s.label() for s in slots])
    return slots

def window_is_free(
    day: date,
    start_time: time,
    end_time: time,
    config: WorkingHours,
    existing: Iterable[AppointmentRecord],
    exclude_id: Optional[int] = None,
) -> bool:
    """
    Valida una ventana arbitraria (reprogramaciones): dentro del horario, fuera
    del descanso y sin chocar con otra cita ocupada (excepto `exclude_id`).
    """
    ws, we = _minutes(start_time), _minutes(end_time)
    if ws >= we:
        return False
    if ws < _minutes(config.day_start) or we > _minutes(config.day_end):
        return False
    bs, be = _minutes(config.break_start), _minutes(config.break_end)
    if bs < be and _overlaps(ws, we, bs, be):
        return False
    return not any(
        _overlaps(ws, we, b0, b1) for (b0, b1) in _busy_windows(day, existing, exclude_id)
    )

def slot_end(start_time: time, config: WorkingHours) -> time:
    """end_time derivado = start_time + slot_minutes."""
    return _to_time(_minutes(start_time) + config.slot_minutes)
