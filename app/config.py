from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.services.remote_api_client import ApiClientConfig, RetryPolicy

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Dialpad settings
    DIALPAD_API_BASE_URL: str = "https://dialpad.com/api/v2"
    DIALPAD_BEARER_TOKEN: str | None = None

    # Microsoft Graph settings
    GRAPH_API_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_MAILBOXES: list[str] = []

    # =================================================================
    # OUTBOUND HTTP - exports and downloads are slow, keep timeouts long
    # =================================================================
    REQUEST_TIMEOUT_SECONDS: float = 120.0
    DOWNLOAD_TIMEOUT_SECONDS: float = 180.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BACKOFF_BASE_SECONDS: float = 0.5

    # Export job polling
    EXPORT_POLL_MAX_ATTEMPTS: int = 8
    EXPORT_POLL_BASE_DELAY_SECONDS: float = 0.5
    EXPORT_POLL_JITTER_SECONDS: float = 0.5

    # Aggregation pipeline
    FANOUT_CONCURRENCY: int = 5
    PAGINATION_MAX_ITEMS: int = 2000
    PAGINATION_MAX_PAGES: int = 200
    DIRECTORY_PAGE_SIZE: int = 100
    MAIL_PAGE_SIZE: int = 50
    DEFAULT_LOOKBACK_DAYS: int = 30

    # Export result cache
    STATS_CACHE_ENABLED: bool = True
    STATS_CACHE_MAX_ENTRIES: int = 500
    STATS_CACHE_TTL_SECONDS: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def http_retry_policy(self) -> RetryPolicy:
        """Retry policy for idempotent outbound API calls."""
        return RetryPolicy(
            max_attempts=self.HTTP_MAX_RETRIES + 1,
            base_delay=self.HTTP_BACKOFF_BASE_SECONDS,
            jitter=0.0,
        )

    def export_poll_policy(self) -> RetryPolicy:
        """Backoff schedule used while waiting for export jobs."""
        return RetryPolicy(
            max_attempts=self.EXPORT_POLL_MAX_ATTEMPTS,
            base_delay=self.EXPORT_POLL_BASE_DELAY_SECONDS,
            jitter=self.EXPORT_POLL_JITTER_SECONDS,
        )

    def dialpad_client_config(self) -> ApiClientConfig:
        return ApiClientConfig(
            base_url=self.DIALPAD_API_BASE_URL,
            bearer_token=self.DIALPAD_BEARER_TOKEN or "",
            timeout=self.REQUEST_TIMEOUT_SECONDS,
            retry_policy=self.http_retry_policy(),
        )

    def graph_client_config(self, access_token: str) -> ApiClientConfig:
        """
        Build a Graph client config for one caller.

        Graph tokens belong to the signed-in user, so the config is built per
        request instead of being shared process-wide.
        """
        return ApiClientConfig(
            base_url=self.GRAPH_API_BASE_URL,
            bearer_token=access_token,
            timeout=self.REQUEST_TIMEOUT_SECONDS,
            retry_policy=self.http_retry_policy(),
        )


settings = Settings()
