import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent import get_assistant_service_async, reset_assistant_service
from .routes import register_exception_handlers, reset_rate_limiter, router
from .services.transcript_store import close_transcript_store
from .settings import get_settings


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("homico_assistant.server")
    if logger.handlers:
        return logger

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    # Module loggers under homico_assistant.* share the server handlers.
    package_logger = logging.getLogger("homico_assistant")
    package_logger.setLevel(level)
    for handler in logger.handlers:
        package_logger.addHandler(handler)
    logger.propagate = False

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the assistant (transcript store, marketplace, model client); close Redis on shutdown."""
    service = await get_assistant_service_async()
    LOGGER.info("Assistant ready (transcript store: %s)", type(service.store).__name__)
    if not settings.openai_api_key:
        LOGGER.warning("OPENAI_API_KEY is not set; chat replies will be the unavailable message")

    yield

    LOGGER.info("Shutting down...")
    await close_transcript_store()
    reset_assistant_service()
    reset_rate_limiter()


app = FastAPI(
    title="Homico AI Assistant",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(router)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
