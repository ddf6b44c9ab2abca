from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "storefront-query-engine"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str
    SQL_ECHO: bool = False

    QUERY_DEFAULT_PAGE: int = 1
    QUERY_DEFAULT_LIMIT: int = 10
    QUERY_SOFT_DELETE_COLUMN: str = "deleted_at"
    # Empty keeps count and rows outside a shared snapshot (read skew accepted).
    # REPEATABLE READ | SERIALIZABLE
    QUERY_PAGINATION_ISOLATION_LEVEL: str = ""

    @property
    def pagination_isolation_level(self) -> str | None:
        level = self.QUERY_PAGINATION_ISOLATION_LEVEL.strip().upper()
        return level or None

settings = Settings()
