from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "tlsconf"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Telemetry (console exporters for logs, metrics and traces)
    OTEL_CONSOLE_EXPORT: bool = True
    METRICS_EXPORT_INTERVAL_SECONDS: int = 60

    # Peer certificate fetching (dial timeout in seconds, None = no timeout)
    PEER_FETCH_TIMEOUT_SECONDS: Optional[float] = 10.0

    # Demo HTTPS server
    DEMO_HOST: str = "127.0.0.1"
    DEMO_PORT: int = 8443
    DEMO_KEY_ALGORITHM: str = "default"
    DEMO_CERT_LIFETIME_HOURS: int = 24


settings = Settings()
