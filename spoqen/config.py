from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # VAPI settings
    VAPI_PRIVATE_KEY: str | None = None
    VAPI_API_URL: str = "https://api.vapi.ai"
    VAPI_CALLS_PATH: str = "/v1/calls"
    VAPI_PAGE_LIMIT: int = 100
    VAPI_REQUEST_TIMEOUT: float = 10.0  # seconds, per attempt
    VAPI_MAX_RETRIES: int = 2  # retries after the first attempt
    VAPI_BACKOFF_BASE_SECONDS: float = 0.5

    # =================================================================
    # RATE LIMITING - in-memory fixed windows
    # =================================================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_CLEANUP_INTERVAL_MS: int = 5 * 60 * 1000  # lazy sweep, 5 minutes
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 0.0  # background sweep, 0 = off

    DASHBOARD_METRICS_IP_LIMIT: int = 30
    DASHBOARD_METRICS_IP_WINDOW_MS: int = 60 * 1000
    DASHBOARD_METRICS_SESSION_LIMIT: int = 60
    DASHBOARD_METRICS_SESSION_WINDOW_MS: int = 60 * 1000

    # Proxy settings (client IP extraction)
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def vapi_calls_url(self) -> str:
        """Full URL of the upstream list-calls endpoint."""
        return f"{self.VAPI_API_URL.rstrip('/')}/{self.VAPI_CALLS_PATH.lstrip('/')}"

    def get_rate_limit_configs(self) -> dict[str, dict]:
        """
        Get rate limiter configuration by limiter name.

        Keys match the fields of RateLimitConfig so each entry can be
        splatted straight into it.
        """
        return {
            "dashboard_metrics_ip": {
                "window_ms": self.DASHBOARD_METRICS_IP_WINDOW_MS,
                "max_requests": self.DASHBOARD_METRICS_IP_LIMIT,
                "key_prefix": "dashboard_metrics_ip",
            },
            "dashboard_metrics_session": {
                "window_ms": self.DASHBOARD_METRICS_SESSION_WINDOW_MS,
                "max_requests": self.DASHBOARD_METRICS_SESSION_LIMIT,
                "key_prefix": "dashboard_metrics_session",
            },
        }


settings = Settings()
