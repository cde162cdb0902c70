"""Centralized configuration for search-backend using Pydantic Settings."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every value is validated at startup. Engine selection, collator sources and
    scheduler timing are all resolved from here once and never re-read.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Engine selection
    search_engine: Literal["auto", "memory", "sqlite", "elasticsearch"] = Field(
        default="auto",
        description="Search engine backend; 'auto' probes elasticsearch, then sqlite, then in-memory",
    )
    sqlite_path: str = Field(default="", description="SQLite database file used by the sqlite engine")
    elasticsearch_url: str = Field(default="", description="Base URL of the Elasticsearch cluster")
    elasticsearch_index_prefix: str = Field(default="search-", description="Prefix for index and alias names")
    elasticsearch_username: str = Field(default="", description="Basic auth username for Elasticsearch")
    elasticsearch_password: str = Field(default="", description="Basic auth password for Elasticsearch")

    # Scheduler settings
    default_refresh_interval_seconds: int = Field(
        default=600, ge=1, description="Refresh interval used when a collator does not declare one"
    )
    catalog_refresh_interval_seconds: int | None = Field(default=None, ge=1)
    techdocs_refresh_interval_seconds: int | None = Field(default=None, ge=1)
    scheduler_start_delay_seconds: float = Field(
        default=3.0, ge=0, description="Settle delay before any collator timer is armed"
    )
    cycle_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Soft timeout for the document collection phase of a cycle"
    )
    shutdown_drain_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Upper bound on waiting for in-flight cycles during shutdown"
    )

    # Collator sources
    catalog_url: str = Field(default="", description="Base URL of the catalog service API")
    techdocs_url: str = Field(default="", description="Base URL of the tech-docs static content API")
    backend_token: str = Field(default="", description="Bearer token sent to catalog/tech-docs services")
    http_timeout: int = Field(default=30, ge=1, description="HTTP request timeout in seconds")
    catalog_page_size: int = Field(default=500, ge=1, description="Entities requested per catalog page")
    techdocs_parallelism: int = Field(default=10, ge=1, description="Concurrent tech-docs index fetches")

    # Query settings
    page_limit_default: int = Field(default=25, ge=1, le=100, description="Results per page")
    highlight_pre_tag: str = Field(default="<mark>", description="Tag inserted before highlighted terms")
    highlight_post_tag: str = Field(default="</mark>", description="Tag inserted after highlighted terms")

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP server host")
    port: int = Field(default=7007, ge=1, le=65535, description="HTTP server port")

    # Observability
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    otlp_endpoint: str = Field(default="", description="OTLP/HTTP traces endpoint; empty disables export")

    @model_validator(mode="after")
    def _check_engine_requirements(self) -> "Settings":
        if self.search_engine == "elasticsearch" and not self.elasticsearch_url:
            raise ValueError("ELASTICSEARCH_URL must be set when SEARCH_ENGINE=elasticsearch")
        if self.search_engine == "sqlite" and not self.sqlite_path:
            raise ValueError("SQLITE_PATH must be set when SEARCH_ENGINE=sqlite")
        return self

    def catalog_interval(self) -> int:
        """Refresh interval for the catalog collator."""
        return self.catalog_refresh_interval_seconds or self.default_refresh_interval_seconds

    def techdocs_interval(self) -> int:
        """Refresh interval for the tech-docs collator."""
        return self.techdocs_refresh_interval_seconds or self.default_refresh_interval_seconds

    def auth_headers(self) -> dict[str, str]:
        """Headers for outbound catalog/tech-docs requests."""
        if not self.backend_token:
            return {}
        return {"Authorization": f"Bearer {self.backend_token}"}
