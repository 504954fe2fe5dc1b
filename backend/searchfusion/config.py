"""pydantic-settings based application settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SearchFusion application settings.

    All values are loaded from environment variables.
    A .env file in the working directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database (retrieval backend + analytics store) ---
    DATABASE_URL: str = "postgresql+asyncpg://search:search@db:5432/search"

    # --- Language service ---
    OPENAI_API_KEY: str = ""
    GOOGLE_API_KEY: str = ""
    AI_MODEL: str | None = None  # None = first model of the first registered provider

    # --- Embeddings ---
    EMBEDDING_PROVIDER: str = "openai"  # "openai" | "google"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = 1536
    EMBEDDING_SERVICE_URL: str = ""  # local HTTP embedding server, overrides the provider

    # --- Fusion defaults ---
    RRF_K: int = 60
    LEXICAL_WEIGHT: float = 0.6
    VECTOR_WEIGHT: float = 0.4
    MIN_CANDIDATES: int = 20

    # --- Per-call time budgets (seconds) ---
    ENHANCE_TIMEOUT: float = 3.0
    LEXICAL_TIMEOUT: float = 5.0
    EMBEDDING_TIMEOUT: float = 5.0
    VECTOR_TIMEOUT: float = 5.0
    ENRICHMENT_TIMEOUT: float = 10.0

    # --- Analytics ---
    ANALYTICS_ENABLED: bool = True
    ANALYTICS_SINK: str = "database"  # "database" | "log"

    # --- HTTP ---
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    LOG_LEVEL: str = "INFO"

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
