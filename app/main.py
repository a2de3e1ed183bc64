# Standard library imports
from contextlib import asynccontextmanager

# Third-party imports
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Local imports
from app.api.v1.routes.router import router as api_v1_router
from app.core.config import settings
from app.core.error_handlers import register_exception_handlers
from app.core.logging_config import get_logger, setup_logging
from app.services.pipeline.services import get_pipeline_services

# Initialize centralized logger
setup_logging()
logger = get_logger("main")

SHUTDOWN_DRAIN_SECONDS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline services on startup; let running jobs finish on shutdown."""
    services = get_pipeline_services()
    logger.info(f"Provider chain: {[a.name for a in services.chain.adapters]}")
    yield
    if len(services.runner):
        logger.info(f"Waiting for {len(services.runner)} background job(s) before shutdown")
    await services.runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await services.runner.cancel_all()


# Initialize FastAPI
app = FastAPI(
    title="Assessment Grading API",
    description="Question extraction, answer-sheet splitting and AI-assisted grading",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Include the router with prefix
app.include_router(
    api_v1_router,
    prefix="/api/v1",
)

register_exception_handlers(app)

# Add CORS middleware
logger.info(f"Configuring CORS middleware with origins: {settings.ALLOWED_ORIGINS}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS,
)


# Run the app
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
