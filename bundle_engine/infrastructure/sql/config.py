from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Resource store connection settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUNDLE_ENGINE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    url: str = "sqlite:///bundle_engine.db"

    # Connection pool (ignored for sqlite)
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 3600

    # SQLAlchemy
    echo_sql: bool = False


settings = DatabaseSettings()
