"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ethereal.api.routes import roadmaps
from ethereal.core.config import get_settings
from ethereal.core.database import close_db, init_db
from ethereal.core.logging import configure_logging, get_logger
from ethereal.services.gateway import create_gateway
from ethereal.services.roadmap_store import RoadmapStore
from ethereal.services.roadmap_view import RoadmapView

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    configure_logging(debug=settings.DEBUG, app_name=settings.APP_NAME)
    logger.info(
        "Starting Ethereal",
        version=settings.APP_VERSION,
        env=settings.ENV,
        backend=settings.GATEWAY_BACKEND,
    )
    if settings.GATEWAY_BACKEND == "sql":
        await init_db()

    store = RoadmapStore(create_gateway(settings), collection=settings.ROADMAP_COLLECTION)
    await store.load()
    app.state.roadmap_store = store
    app.state.roadmap_view = RoadmapView(store)
    yield
    # Shutdown
    logger.info("Shutting down Ethereal")
    if settings.GATEWAY_BACKEND == "sql":
        await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Personal dashboard with learning roadmap tracking",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(roadmaps.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "env": settings.ENV,
    }


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("ethereal.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
