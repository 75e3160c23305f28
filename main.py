"""
FastAPI Application Entry Point

Integrates:
  - Agent control endpoints (start / stop / status / token)
  - Stream Chat webhook handler
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --reload --host 0.0.0.0 --port 3000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api.agent_routes import router as agent_router
from webhook.stream_chat import router as stream_router
from infra.bootstrap import InfraBootstrap
from config import Config

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("AI Writing Assistant starting up...")
    logger.info(f"Environment: {Config.ENVIRONMENT}")
    logger.info(f"LLM Backend: {Config.LLM_BACKEND} ({Config.MODEL_NAME})")
    logger.info("=" * 60)

    Config.validate()
    bootstrap = InfraBootstrap.get_instance()
    logger.info(f"Infrastructure: {bootstrap!r}")
    await bootstrap.startup()

    yield

    # Shutdown
    logger.info("AI Writing Assistant shutting down...")
    await bootstrap.shutdown()


# Create FastAPI app
app = FastAPI(
    title="AI Writing Assistant API",
    description="Streaming writing assistant agents for Stream Chat channels",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[Config.WEB_ORIGIN],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cookie"],
)


# Middleware for logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.debug(f"{request.method} {request.url.path}")
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"Request error: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# Include routers
app.include_router(agent_router)
app.include_router(stream_router)


# Health check endpoints
@app.get("/health/live")
async def health_live():
    """Live health check (Kubernetes liveness check)."""
    return {"status": "alive"}


@app.get("/health/ready")
async def health_ready():
    """Readiness health check (Kubernetes readiness check)."""
    missing = Config.missing_keys(["STREAM_API_KEY", "STREAM_API_SECRET", "GEMINI_API_KEY"])
    if missing:
        return {"status": "not_ready", "reason": f"Missing configuration: {', '.join(missing)}"}
    return {"status": "ready"}


@app.get("/")
async def root():
    """Root endpoint with server info."""
    bootstrap = InfraBootstrap.get_instance()
    return {
        "message": "AI Writing Assistant Server is running",
        "api_key": bootstrap.chat_client.api_key,
        "active_agents": bootstrap.registry.active_count,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=Config.PORT,
        reload=Config.ENVIRONMENT == "development",
    )
