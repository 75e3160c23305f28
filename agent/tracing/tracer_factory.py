"""
Tracer factory and initialization logic.

Handles environment-based tracer selection and instantiation.

Implements TRACER_BACKEND setting:
- "noop" (default): No observability
- "langsmith": LangSmith runs (requires LANGSMITH_API_KEY)
- "logging": spans and events written to the application log
"""

import logging
import os

from agent.tracing.langsmith_tracer import DEFAULT_PROJECT, LangSmithTracer
from agent.tracing.tracer import Tracer, NoOpTracer, LoggingTracer

logger = logging.getLogger(__name__)

_VALID_BACKENDS = {"noop", "langsmith", "logging"}


def get_tracer_backend() -> str:
    """
    Get the configured tracer backend.

    Environment Variable:
        TRACER_BACKEND: "noop" (default), "langsmith" or "logging"

    Returns:
        Backend name (lowercase)
    """
    backend = os.getenv("TRACER_BACKEND", "noop").lower().strip()

    if backend not in _VALID_BACKENDS:
        # Unknown backend, default to noop
        return "noop"

    return backend


def create_tracer() -> Tracer:
    """
    Create a tracer instance based on environment configuration.

    Always returns a valid Tracer instance; failures downgrade to NoOpTracer.
    """
    backend = get_tracer_backend()

    try:
        if backend == "langsmith":
            tracer = LangSmithTracer()
            if not tracer.is_enabled():
                logger.warning("TRACER_BACKEND=langsmith but LANGSMITH_API_KEY is not set; tracing disabled")
            return tracer
        if backend == "logging":
            return LoggingTracer()
        return NoOpTracer()
    except Exception as e:
        # Tracer initialization failure is non-fatal
        logger.warning(f"Failed to initialize tracer backend '{backend}': {e}")
        return NoOpTracer()


def get_tracer_config() -> dict:
    """Get current tracer configuration for health/debug endpoints."""
    backend = get_tracer_backend()
    config = {
        "tracer_backend": backend,
        "enabled": backend != "noop",
    }

    if backend == "langsmith":
        config["langsmith_configured"] = bool(os.getenv("LANGSMITH_API_KEY", "").strip())
        config["langsmith_project"] = os.getenv("LANGSMITH_PROJECT", DEFAULT_PROJECT)

    return config
