# booking/main.py
import os
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import SessionLocal, init_db
from .errors import BookingError
from .jobs.scheduler import start_scheduler
from .services import store

# Routers
from .routers.appointments import router as appointments_router
from .routers.admin import router as admin_router
from .routers.meetings import router as meetings_router
from .routers.messages import router as messages_router

# ──────────────────────────────────────────────────────────────────────────────
# LOGGING
# Controla niveles con variables de entorno:
#   LOG_LEVEL, SQLA_LOG_LEVEL, UVICORN_LOG_LEVEL
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logging.getLogger("sqlalchemy.engine").setLevel(
    getattr(logging, os.getenv("SQLA_LOG_LEVEL", "WARNING"), logging.WARNING)
)
logging.getLogger("uvicorn.error").setLevel(
    getattr(logging, os.getenv("UVICORN_LOG_LEVEL", "INFO"), logging.INFO)
)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────
app = FastAPI(title=settings.APP_NAME)

app.include_router(appointments_router)
app.include_router(meetings_router)
app.include_router(messages_router)
app.include_router(admin_router, prefix="/admin")  # ← admin.py NO repite /admin

@app.exception_handler(BookingError)
def booking_error_handler(request: Request, exc: BookingError):
    logger.info("%s %s → %s: %s", request.method, request.url.path, type(exc).__name__, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )

# ──────────────────────────────────────────────────────────────────────────────
# Ciclo de vida
# ──────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def on_startup():
    init_db()
    db = SessionLocal()
    try:
        store.get_working_hours(db)  # siembra el horario por defecto
    finally:
        db.close()
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    logger.info("Startup completo: %s (%s)", settings.APP_NAME, settings.ENV)

@app.get("/")
def root():
    return {"ok": True, "app": settings.APP_NAME, "env": settings.ENV}
