# clinicdesk/main.py
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .core.logging import setup_logging
from .database import SessionLocal, create_tables
from .exceptions import register_exception_handlers
from .limiter import limiter
from .routers import (
    auth, clinics, clients, sessions, appointments, invoices, subscriptions,
    plans, notifications, reports, ai_assistant, payments, health, dashboard,
)
from .services.plan_service import PlanService

settings = get_settings()
setup_logging(logging.DEBUG if settings.debug else logging.INFO, json_output=settings.is_production)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)


@app.on_event("startup")
def on_startup():
    create_tables()
    db = SessionLocal()
    try:
        result = PlanService(db).seed_default_plans()
        logger.info(f"Plan catalog ready: {result['created']} created, {result['existing']} existing")
    finally:
        db.close()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(clinics.router, prefix="/api/v1")
app.include_router(clients.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(dashboard.router, prefix="/api/v1")
app.include_router(invoices.router, prefix="/api/v1")
app.include_router(invoices.public_router, prefix="/api/v1")
app.include_router(subscriptions.router, prefix="/api/v1")
app.include_router(plans.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(ai_assistant.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


def run():
    uvicorn.run("clinicdesk.main:app", host="0.0.0.0", port=8000, reload=settings.debug)


if __name__ == "__main__":
    run()
