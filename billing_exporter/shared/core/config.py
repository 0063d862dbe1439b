from functools import lru_cache
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

# Chart wrapper field per billing API version ("data" was renamed to "array" in v2)
CHART_FIELD_BY_API_VERSION = {
    "v1": "data",
    "v2": "array",
}

MAX_ITEMS_PER_PAGE = 65535


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the exporter settings."""
    return Settings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """
    Main configuration for the billing exporter.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "cloud-billing-exporter"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Upstream API
    BASE_URL: str
    REQUEST_TIMEOUT_SECONDS: float = 60.0
    CONNECT_TIMEOUT_SECONDS: float = 10.0
    VERIFY_TLS: bool = True
    # Passed straight to httpx.DigestAuth when both are set
    API_USERNAME: Optional[str] = None
    API_KEY: Optional[str] = None

    # Collection
    COLLECTION_CONCURRENCY: int = 8
    ITEMS_PER_PAGE: int = 500
    COLLECTION_INTERVAL_SECONDS: int = 60
    COLLECT_BILLING: bool = True
    CHART_API_VERSION: Literal["v1", "v2"] = "v1"
    CHART_WINDOW_HOURS: int = 1
    CHART_BOUNDED_WINDOW: bool = Field(
        default=False,
        description="Query charts with an explicit 'to' bound instead of open-ended 'from'",
    )

    # Metrics endpoint
    METRICS_NAMESPACE: str = ""
    METRICS_ADDR: str = "0.0.0.0"
    METRICS_PORT: int = 9184

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Groups validation by concern for clarity and specificity."""
        self._validate_upstream_config()
        self._validate_collection_config()
        self._validate_metrics_config()
        return self

    def _validate_upstream_config(self) -> None:
        if not self.BASE_URL.strip():
            raise ValueError("BASE_URL must be set.")
        if not self.BASE_URL.startswith(("http://", "https://")):
            raise ValueError("BASE_URL must be an http(s) URL.")
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.CONNECT_TIMEOUT_SECONDS <= 0:
            raise ValueError("CONNECT_TIMEOUT_SECONDS must be > 0.")
        if bool(self.API_USERNAME) != bool(self.API_KEY):
            raise ValueError("API_USERNAME and API_KEY must be set together.")

    def _validate_collection_config(self) -> None:
        if self.COLLECTION_CONCURRENCY < 1:
            raise ValueError("COLLECTION_CONCURRENCY must be >= 1.")
        if not 1 <= self.ITEMS_PER_PAGE <= MAX_ITEMS_PER_PAGE:
            raise ValueError(
                f"ITEMS_PER_PAGE must be between 1 and {MAX_ITEMS_PER_PAGE}."
            )
        if self.COLLECTION_INTERVAL_SECONDS < 1:
            raise ValueError("COLLECTION_INTERVAL_SECONDS must be >= 1.")
        if self.CHART_WINDOW_HOURS < 1:
            raise ValueError("CHART_WINDOW_HOURS must be >= 1.")

    def _validate_metrics_config(self) -> None:
        if not 1 <= self.METRICS_PORT <= 65535:
            raise ValueError("METRICS_PORT must be a valid TCP port.")

    @property
    def has_credentials(self) -> bool:
        return bool(self.API_USERNAME and self.API_KEY)
