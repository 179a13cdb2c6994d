# booking/scripts/show_slots.py
import sys
from datetime import date, timedelta

from booking.config import settings
from booking.database import SessionLocal, init_db
from booking.services import store
from booking.services.slots import compute_available_slots

def show_slots(d: date):
    print(f"\n=== Slots para {d.strftime('%Y-%m-%d')} | TZ={settings.TIMEZONE} ===")
    db = SessionLocal()
    try:
        config = store.get_working_hours(db)
        slots = compute_available_slots(d, config, store.appointments_for_date(db, d))
    finally:
        db.close()
    if not slots:
        print("No hay slots disponibles.")
        return
    for s in slots:
        print(f" - {s.start_time:%H:%M}-{s.end_time:%H:%M}")

if __name__ == "__main__":
    init_db()
    start = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today()
    show_slots(start)
    show_slots(start + timedelta(days=1))     # mañana
    show_slots(start + timedelta(days=2))     # pasado mañana
