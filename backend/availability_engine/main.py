# backend/availability_engine/main.py
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION
from .core.exceptions import DomainException
from .database import Base, engine
from .routes import prometheus
from .routes.v1 import availability as availability_v1, events as events_v1

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(
        f"Environment: {settings.environment}, cache backend: {settings.cache_backend}"
    )
    if settings.create_tables_on_startup:
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")

    yield

    logger.info(f"{API_TITLE} shutting down...")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Errors escaping a route keep the {"detail": {message, code, details}} envelope."""
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"Unhandled {exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(events_v1.router, prefix="/events")

app.include_router(api_v1)
app.include_router(prometheus.router)


@app.get("/health", include_in_schema=False)
def health_check() -> Dict[str, str]:
    return {"status": "healthy", "service": API_TITLE, "version": API_VERSION}
