"""
Ledger Risk Engine — FastAPI Application Entry Point

POST /v1/risk/documents/{id}/evaluate  → document scoring
POST /v1/risk/companies/{id}/evaluate  → client company scoring
POST /v1/risk/jobs                     → background risk calculation
GET  /v1/risk/health                   → health check
GET  /docs                             → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.api.admin_endpoint import router as admin_router
from app.api.risk_endpoint import router as risk_router
from app.core.config import get_settings
from app.core.errors import NotFoundError, RuleConfigError
from app.services.event_publisher import close_producer

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("risk_engine_starting", app_env=get_settings().app_env)
    yield
    await close_producer()
    logger.info("risk_engine_shutting_down")


app = FastAPI(
    title="Ledger Risk Engine",
    description="Tenant-scoped risk rule engine for documents and client companies",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["POST", "GET", "PUT", "DELETE"],
    allow_headers=["*"],
)


# ── Error mapping ──
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(RuleConfigError)
async def rule_config_handler(request: Request, exc: RuleConfigError):
    logger.warning("rule_config_error", rule_code=exc.rule_code, detail=exc.detail)
    return JSONResponse(status_code=422, content={"detail": str(exc), "rule_code": exc.rule_code})


# ── Prometheus metrics ──
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ──
app.include_router(risk_router)
app.include_router(admin_router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "ledger-risk-engine",
        "version": "1.0.0",
        "docs": "/docs",
        "evaluate": "POST /v1/risk/documents/{document_id}/evaluate",
    }
