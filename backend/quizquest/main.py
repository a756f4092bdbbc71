import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from . import telemetry_pipeline
from .billing_routes import router as billing_router
from .chat_routes import router as chat_router
from .community_routes import router as community_router
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine
from .errors import AuthRequired, BillingError, LearnerNotFound, TransientStoreError, WebhookSignatureError
from .learner_routes import router as learner_router
from .logging_config import configure_logging
from .record_store import learner_store
from .session_routes import router as session_router
from .session_routes import subscription_router


settings_snapshot = get_settings()
configure_logging(settings_snapshot)
logger = logging.getLogger(__name__)
app = FastAPI(title="QuizQuest Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("Backend starting with database configured: %s", bool(settings_snapshot.database_url))
logger.info("Stripe secret key configured: %s", bool(settings_snapshot.stripe_secret_key))


@app.on_event("startup")
def install_audit_trail() -> None:
    app.state.audit_trail = telemetry_pipeline.install(learner_store)


@app.on_event("shutdown")
def remove_audit_trail() -> None:
    trail = getattr(app.state, "audit_trail", None)
    if trail is not None:
        telemetry_pipeline.uninstall(trail)
        app.state.audit_trail = None


@app.exception_handler(AuthRequired)
async def auth_required_handler(request: Request, exc: AuthRequired) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(LearnerNotFound)
async def learner_not_found_handler(request: Request, exc: LearnerNotFound) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"detail": str(exc), "learner_id": exc.learner_id, "onboarding_required": True},
    )


@app.exception_handler(TransientStoreError)
async def transient_store_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    logger.warning("Record store unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Record store temporarily unavailable."})


@app.exception_handler(WebhookSignatureError)
async def webhook_signature_handler(request: Request, exc: WebhookSignatureError) -> JSONResponse:
    logger.warning("Rejected billing webhook: %s", exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    logger.error("Billing provider error for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "billing": "configured" if settings.stripe_secret_key else "disabled"}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {
        "status": "ok",
        "persistence_mode": "database",
        "pool": get_pool_snapshot(engine),
    }


app.include_router(learner_router)
app.include_router(session_router)
app.include_router(subscription_router)
app.include_router(chat_router)
app.include_router(community_router)
app.include_router(billing_router)
