import os
import logging
from typing import Optional, Protocol
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Centralized configuration management.

    Values are read from the environment when the instance is created.
    Keyword overrides win over the environment, which keeps tests isolated:

        config = Config(FINANCIAL_DATASETS_API_KEY="test-key", TOOL_CACHE_MAX_SIZE=10)
    """

    def __init__(self, **overrides):
        # Environment
        self.ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
        self.DEBUG = _env_bool("DEBUG")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if self.DEBUG else "INFO")

        # Financial data API
        self.FINANCIAL_API_BASE_URL = os.getenv(
            "FINANCIAL_API_BASE_URL", "https://api.financialdatasets.ai"
        )
        self.FINANCIAL_DATASETS_API_KEY = os.getenv("FINANCIAL_DATASETS_API_KEY")
        self.HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

        # LLM Configuration
        self.GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
        self.GEMINI_FLASH_LITE = "gemini-2.5-flash-lite"
        self.GEMINI_FLASH = "gemini-2.5-flash"
        self.GEMINI_PRO = "gemini-2.5-pro"
        self.CHAT_MODEL = os.getenv("CHAT_MODEL", self.GEMINI_FLASH)
        self.TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))
        self.MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "4096"))
        self.MAX_AGENT_STEPS = int(os.getenv("MAX_AGENT_STEPS", "8"))

        # Tool call cache
        self.TOOL_CACHE_MAX_SIZE = int(os.getenv("TOOL_CACHE_MAX_SIZE", "1000"))
        self.TOOL_CACHE_EVICT_FRACTION = float(os.getenv("TOOL_CACHE_EVICT_FRACTION", "0.2"))

        # Streaming
        self.STREAM_QUEUE_SIZE = int(os.getenv("STREAM_QUEUE_SIZE", "1000"))

        # Session Configuration
        self.SESSION_TTL_MINUTES = int(os.getenv("SESSION_TTL_MINUTES", "30"))
        self.MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "1000"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def validate(self, required_vars=("GOOGLE_API_KEY",)):
        """Validate configuration"""
        missing = [var for var in required_vars if not getattr(self, var)]

        if missing:
            raise ValueError(f"Missing required environment variables: {missing}")

        return True


class ApiKeyProvider(Protocol):
    """Given a provider name, return a decrypted API key or None."""

    def get_api_key(self, provider: str) -> Optional[str]:
        ...


class EnvApiKeyProvider:
    """API keys taken straight from the configuration."""

    _PROVIDER_KEYS = {
        "financial-datasets": "FINANCIAL_DATASETS_API_KEY",
        "google": "GOOGLE_API_KEY",
    }

    def __init__(self, config: Config):
        self._config = config

    def get_api_key(self, provider: str) -> Optional[str]:
        attr = self._PROVIDER_KEYS.get(provider)
        if attr is None:
            return None
        return getattr(self._config, attr) or None


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
