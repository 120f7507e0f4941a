"""FastAPI application for Xuanwu Factory."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from xuanwu.core.config import settings
from xuanwu.core.init_db import create_tables
from xuanwu.core.database import AsyncSessionLocal
from xuanwu.core.logging import logger
from xuanwu.core.runtime import RUNTIME_MODE
from xuanwu.core.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware

# Import models to register them with SQLAlchemy
from xuanwu.modules.projects.models import Project, Application
from xuanwu.modules.deployments.models import Deployment

# Import routers
from xuanwu.modules.projects.routes import router as projects_router
from xuanwu.modules.deployments.routes import router as deployments_router
from xuanwu.modules.deployments.dependencies import build_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    # Startup
    logger.info("Starting Xuanwu Factory...", runtime_mode=RUNTIME_MODE.value)
    await create_tables()
    logger.info("Database tables created/verified")

    app.state.orchestrator = build_orchestrator(settings, AsyncSessionLocal, RUNTIME_MODE)
    logger.info("Deployment orchestrator ready")

    yield

    # Shutdown
    logger.info("Shutting down Xuanwu Factory...")
    await app.state.orchestrator.shutdown()


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PLATFORM_VERSION,
    description="Xuanwu Factory - build and deploy applications onto a container cluster",
    lifespan=lifespan,
)

# Add CORS middleware
# Note: allow_credentials=True is incompatible with allow_origins=["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.cors_allows_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add custom middleware (order matters - first added = last executed)
app.add_middleware(RequestLoggingMiddleware)
# Correlation ID (must be first to generate ID for other middleware)
app.add_middleware(CorrelationIdMiddleware)

# Include routers
app.include_router(projects_router, prefix=settings.API_V1_PREFIX)
app.include_router(deployments_router, prefix=settings.API_V1_PREFIX)

# Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.PLATFORM_VERSION,
        "status": "running",
        "runtime_mode": RUNTIME_MODE.value,
        "modules": ["projects", "deployments"],
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", path=request.url.path, method=request.method)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if RUNTIME_MODE.value != "kubernetes" else "An error occurred",
        },
    )
