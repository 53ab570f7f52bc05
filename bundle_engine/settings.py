# bundle_engine/settings.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Engine configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUNDLE_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Polling
    job_poll_interval: float = 1.0
    rollout_poll_interval: float = 5.0
    job_grace_period: int = 1

    # Cluster layout
    default_namespace: str = "default"
    flavor_namespace: str = "default"
    secret_name: str = "global-secret"
    secret_namespace: str = "default"
    config_mount_path: str = "/config"

    # Orchestration
    layer_workers: int = 1
    secret_write_retries: int = 5


settings = EngineSettings()
