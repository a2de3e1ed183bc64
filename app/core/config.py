# app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,  # Environment vars are uppercase
        extra="ignore",      # Ignore unexpected vars instead of raising
    )

    # Core application settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./grader.db"
    HOST: str = "0.0.0.0"
    PORT: int = 8101
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "app.log"
    PIPELINE_LOG_FILE: str = "grading.log"

    # CORS settings
    ALLOWED_ORIGINS: list[str] = ["*"]  # In production, specify actual origins
    ALLOW_CREDENTIALS: bool = True
    ALLOWED_METHODS: list[str] = ["*"]
    ALLOWED_HEADERS: list[str] = ["*"]

    # JWT settings
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 43200  # 30 days

    # Provider chain. Lower priority number is tried first.
    PROVIDER_TIMEOUT_SECONDS: float = 120.0

    OPENROUTER_ENABLED: bool = True
    OPENROUTER_PRIORITY: int = 1
    OPENROUTER_API_KEY: str | None = None
    OPENROUTER_MODEL: str = "google/gemini-2.0-flash-exp:free"
    OPENROUTER_MAX_TOKENS: int = 16000
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_REFERER: str | None = None

    OPENAI_ENABLED: bool = True
    OPENAI_PRIORITY: int = 2
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_MAX_TOKENS: int = 16000

    GEMINI_ENABLED: bool = True
    GEMINI_PRIORITY: int = 3
    GOOGLE_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_MAX_TOKENS: int = 16384

    # Page rendering
    PDF_RENDERER: str = "local"  # 'local' | 'remote'
    PDF_SERVICE_URL: str | None = None
    PDF_SERVICE_TIMEOUT_SECONDS: int = 120
    PDF_RENDER_DPI: int = 150
    PAGE_CACHE_TTL_SECONDS: int = 900

    # Multi-student partitioning
    PARTITION_MIN_PAGES: int = 1
    PARTITION_MAX_PAGES: int = 20
    PARTITION_MIN_CONFIDENCE: float = 0.5
    NAME_MATCH_THRESHOLD: float = 0.5

    # External object storage (Cloudflare R2 / S3 compatible)
    STORAGE_BACKEND: str = "local"  # 'local' | 's3'
    LOCAL_STORAGE_PATH: str = "uploads"
    S3_BUCKET_NAME: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_PUBLIC_BASE_URL: str | None = None

    # Alternative naming variants for backward compatibility
    S3_BUCKET: str | None = None
    S3_ENDPOINT: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    R2_PUBLIC_BASE_URL: str | None = None


def _normalize_settings(settings: Settings) -> None:
    """Normalize alternative environment variable names into canonical ones."""
    # Bucket
    if not settings.S3_BUCKET_NAME and settings.S3_BUCKET:
        settings.S3_BUCKET_NAME = settings.S3_BUCKET
    # Endpoint
    if not settings.S3_ENDPOINT_URL and settings.S3_ENDPOINT:
        settings.S3_ENDPOINT_URL = settings.S3_ENDPOINT
    # Access key
    if not settings.S3_ACCESS_KEY_ID and settings.AWS_ACCESS_KEY_ID:
        settings.S3_ACCESS_KEY_ID = settings.AWS_ACCESS_KEY_ID
    # Secret key
    if not settings.S3_SECRET_ACCESS_KEY and settings.AWS_SECRET_ACCESS_KEY:
        settings.S3_SECRET_ACCESS_KEY = settings.AWS_SECRET_ACCESS_KEY
    # Public base URL
    if not settings.S3_PUBLIC_BASE_URL and settings.R2_PUBLIC_BASE_URL:
        settings.S3_PUBLIC_BASE_URL = settings.R2_PUBLIC_BASE_URL
    settings.PDF_RENDERER = settings.PDF_RENDERER.lower()
    settings.STORAGE_BACKEND = settings.STORAGE_BACKEND.lower()


def _validate_settings(settings: Settings) -> None:
    """Validate critical application settings."""
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL is required")
    if settings.PDF_RENDERER not in ("local", "remote"):
        raise ValueError("PDF_RENDERER must be 'local' or 'remote'")
    if settings.PDF_RENDERER == "remote" and not settings.PDF_SERVICE_URL:
        raise ValueError("PDF_SERVICE_URL is required when PDF_RENDERER=remote")
    if settings.PARTITION_MIN_PAGES > settings.PARTITION_MAX_PAGES:
        raise ValueError("PARTITION_MIN_PAGES cannot exceed PARTITION_MAX_PAGES")
    if settings.PROVIDER_TIMEOUT_SECONDS <= 0:
        raise ValueError("PROVIDER_TIMEOUT_SECONDS must be positive")

    # Environment-specific validations
    if settings.ENVIRONMENT == "production" and settings.DEBUG:
        print("WARNING: DEBUG is enabled in production. Consider setting DEBUG=False.")
    if settings.ENVIRONMENT == "production" and settings.JWT_SECRET == "change-me":
        raise ValueError("JWT_SECRET must be set in production")


# Initialize settings with error handling
try:
    settings = Settings()
    _normalize_settings(settings)
    _validate_settings(settings)
except Exception as e:
    print(f"Error initializing settings: {e}")
    raise
