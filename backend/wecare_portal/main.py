import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wecare_portal.core.settings import settings, validate_settings
from wecare_portal.db.session import SessionLocal, engine
from wecare_portal.models import Base
from wecare_portal.routers.appointments import router as appointments_router
from wecare_portal.routers.auth import router as auth_router
from wecare_portal.routers.documents import router as documents_router
from wecare_portal.routers.health_history import router as health_history_router
from wecare_portal.routers.invoices import router as invoices_router
from wecare_portal.services.users import seed_initial_admin

app = FastAPI(title="WeCare Portal API", version="0.1.0")
logger = logging.getLogger("wecare_portal.startup")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)

    admin_email = str(settings.admin_email)
    db: Session = SessionLocal()
    try:
        created = seed_initial_admin(db, email=admin_email, password=settings.admin_password.strip())
        if created:
            logger.info("Initial admin created for %s.", admin_email)
        else:
            logger.info("Initial admin not created (users already exist).")
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(health_history_router)
app.include_router(appointments_router)
app.include_router(invoices_router)
app.include_router(documents_router)
