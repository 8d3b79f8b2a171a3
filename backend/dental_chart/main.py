import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dental_chart.core.logging_config import configure_logging
from dental_chart.core.settings import settings, validate_settings
from dental_chart.db.session import engine
from dental_chart.models import Base
from dental_chart.routers.assessments import drafts_router
from dental_chart.routers.assessments import router as assessments_router
from dental_chart.services.drafts import DraftAutosaver, DraftCache

app = FastAPI(title="Dental Chart API", version="0.1.0")
logger = logging.getLogger("dental_chart.startup")

app.state.draft_cache = DraftCache()
app.state.draft_autosaver = DraftAutosaver(
    app.state.draft_cache, delay_seconds=settings.draft_debounce_seconds
)


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
    configure_logging(settings.log_level)
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Assessment tables ready (%s)", ", ".join(sorted(Base.metadata.tables)))


@app.on_event("shutdown")
def shutdown():
    # Pending debounced writes are in-memory only and die with the process.
    app.state.draft_autosaver.cancel_all()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(assessments_router)
app.include_router(drafts_router)
