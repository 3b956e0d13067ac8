from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..config import get_settings
from ..observability.metrics import metrics_middleware_factory
from ..services.model_router import ModelRouter
from ..services.scheduler import build_article_scheduler
from .routers.articles import router as articles_router
from .routers.auth import router as auth_router
from .routers.chat import router as chat_router
from .routers.conversations import router as conversations_router
from .routers.devices import router as devices_router
from .routers.tickets import router as tickets_router
from .routers.user_data import router as user_data_router

load_dotenv()  # JWT_SECRET, GEMINI_API_KEY, MONGO_URL, etc.

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("helpdesk.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    scheduler = build_article_scheduler(settings)
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()


app = FastAPI(title="IT Helpdesk API", version="0.1.0", lifespan=lifespan)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(chat_router)
app.include_router(conversations_router)
app.include_router(devices_router)
app.include_router(auth_router)
app.include_router(user_data_router)
app.include_router(articles_router)
app.include_router(tickets_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Device-Info-Missing"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Missing or invalid fields", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/")
def root():
    return {"name": "IT Helpdesk API", "version": "0.1.0"}


@app.get("/health")
def health(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    provider = ModelRouter().maybe_select_provider("conversation")
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": get_settings().store_impl,
            "scheduler": "running" if scheduler is not None and scheduler.started else "stopped",
            "generator": provider.name if provider else "unconfigured",
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
