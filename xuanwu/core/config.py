"""Application configuration."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (local development defaults)
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "xuanwu"
    POSTGRES_USER: str = "xuanwu"
    POSTGRES_PASSWORD: str = "xuanwu_dev_password"

    # Full SQLAlchemy URL; overrides the POSTGRES_* settings when set
    DATABASE_URL: str = ""

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Xuanwu Factory API"
    PLATFORM_VERSION: str = "0.1.0"

    # CORS - wildcard only safe for local dev
    CORS_ORIGINS: list[str] = ["*"]

    # Runtime Mode (auto, local, kubernetes)
    RUNTIME_MODE: str = "auto"

    # ==========================================================================
    # Logging
    # ==========================================================================

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==========================================================================
    # Image Registry
    # ==========================================================================

    REGISTRY_HOST: str = "registry.example.com"
    REGISTRY_NAMESPACE: str = "xuanwu"
    IMAGE_PULL_SECRET: str = "registry-secret"

    # ==========================================================================
    # Manifest Defaults
    # ==========================================================================

    MANAGED_BY: str = "xuanwu-factory"
    CLUSTER_DOMAIN: str = "cluster.local"
    DEFAULT_CPU_REQUEST: str = "100m"
    DEFAULT_MEMORY_REQUEST: str = "128Mi"
    DEFAULT_CPU_LIMIT: str = "500m"
    DEFAULT_MEMORY_LIMIT: str = "512Mi"

    # ==========================================================================
    # Orchestration
    # ==========================================================================

    # Per-stage deadlines in seconds; unset means no deadline
    BUILD_TIMEOUT_SECONDS: float | None = 1800
    DEPLOY_TIMEOUT_SECONDS: float | None = 300
    VERIFY_TIMEOUT_SECONDS: float | None = 300
    POD_POLL_INTERVAL_SECONDS: float = 2.0

    # Allow a second deployment of an application while one is still running
    ALLOW_CONCURRENT_DEPLOYMENTS: bool = False

    # ==========================================================================
    # Local Mode (simulated builder and cluster)
    # ==========================================================================

    LOCAL_BUILD_DELAY_SECONDS: float = 2.0
    LOCAL_APPLY_DELAY_SECONDS: float = 1.0

    @property
    def cors_allows_credentials(self) -> bool:
        """Only allow credentials if CORS is not wildcard (security requirement)."""
        return "*" not in self.CORS_ORIGINS

    @property
    def database_url(self) -> str:
        """Construct the async database connection URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
