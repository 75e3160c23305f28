"""
Configuration management for the Writing Assistant service.

Loads environment variables from .env file and provides typed access to configuration.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


class Config:
    """Configuration class for the Writing Assistant service."""

    # Model Backend Configuration
    LLM_BACKEND = os.getenv("LLM_BACKEND", "openai")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    MODEL_BASE_URL = os.getenv(
        "MODEL_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
    )
    MODEL_NAME = os.getenv("MODEL_NAME", "gemini-2.5-flash")

    # Web Search (Tavily)
    TAVILY_API_KEY = os.getenv("TAVILY_API_KEY", "")
    TAVILY_SEARCH_URL = os.getenv("TAVILY_SEARCH_URL", "https://api.tavily.com/search")
    SEARCH_TIMEOUT_S = float(os.getenv("SEARCH_TIMEOUT_S", "15"))

    # Stream Chat
    STREAM_API_KEY = os.getenv("STREAM_API_KEY", "")
    STREAM_API_SECRET = os.getenv("STREAM_API_SECRET", "")
    STREAM_BASE_URL = os.getenv("STREAM_BASE_URL", "https://chat.stream-io-api.com")

    # Agent lifecycle
    AGENT_INACTIVITY_THRESHOLD_S = float(os.getenv("AGENT_INACTIVITY_THRESHOLD_S", str(8 * 60 * 60)))
    AGENT_SWEEP_INTERVAL_S = float(os.getenv("AGENT_SWEEP_INTERVAL_S", "5"))
    HISTORY_MAX_MESSAGES = int(os.getenv("HISTORY_MAX_MESSAGES", "20"))

    # HTTP
    WEB_ORIGIN = os.getenv("WEB_ORIGIN", "http://localhost:5173")
    PORT = int(os.getenv("PORT", "3000"))

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Tracing
    TRACER_BACKEND = os.getenv("TRACER_BACKEND", "noop")   # noop | langsmith | logging
    LANGSMITH_API_KEY = os.getenv("LANGSMITH_API_KEY")
    LANGSMITH_PROJECT = os.getenv("LANGSMITH_PROJECT", "writing-assistant")

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is set."""
        required = ["STREAM_API_KEY", "STREAM_API_SECRET", "GEMINI_API_KEY"]
        missing = cls.missing_keys(required)

        if missing:
            print(f"⚠️  Missing required environment variables: {', '.join(missing)}")
            print(f"   Please set them in .env file")
            return False

        return True

    @classmethod
    def missing_keys(cls, keys) -> list:
        """Return the subset of ``keys`` that are unset."""
        return [key for key in keys if not getattr(cls, key)]


if __name__ == "__main__":
    # Test configuration loading
    print("Configuration loaded:")
    print(f"  Stream API Key: {'✓ Set' if Config.STREAM_API_KEY else '✗ Missing'}")
    print(f"  Gemini API Key: {'✓ Set' if Config.GEMINI_API_KEY else '✗ Missing'}")
    print(f"  Tavily API Key: {'✓ Set' if Config.TAVILY_API_KEY else '✗ Missing'}")
    print(f"  LLM Backend: {Config.LLM_BACKEND} ({Config.MODEL_NAME})")
    print(f"  Port: {Config.PORT}")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")
