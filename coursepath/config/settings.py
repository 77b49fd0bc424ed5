"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="coursepath", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of workers")
    api_reload: bool = Field(default=False, description="Enable auto-reload")

    # Authentication (tokens are issued by the identity service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT verification key shared with the identity service",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=30, description="Lifetime of locally minted access tokens"
    )
    auth_issuer: str | None = Field(
        default=None, description="Expected iss claim (unchecked when unset)"
    )
    auth_audience: str | None = Field(
        default=None, description="Expected aud claim (unchecked when unset)"
    )
    auth_leeway_seconds: int = Field(
        default=0, ge=0, description="Clock skew tolerated on exp/iat"
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )
    progression_events_enabled: bool = Field(
        default=True, description="Publish progression events on Redis Pub/Sub"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="coursepath", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_request_timeout: float = Field(
        default=10.0, description="Request timeout"
    )
    cassandra_local_datacenter: str | None = Field(
        default=None,
        description="Local datacenter; enables NetworkTopologyStrategy when set",
    )
    cassandra_replication_factor: int = Field(
        default=1, ge=1, description="Replication factor for the keyspace"
    )
    cassandra_consistency: Literal["ONE", "LOCAL_QUORUM", "QUORUM"] = Field(
        default="LOCAL_QUORUM",
        description="Consistency for reads and writes (LWT uses LOCAL_SERIAL)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log completed HTTP requests"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health"], description="Path prefixes excluded from request logging"
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Progression engine
    certificate_number_prefix: str = Field(
        default="CP", description="Prefix for generated certificate numbers"
    )
    certificate_number_retries: int = Field(
        default=5,
        ge=1,
        description="Attempts to reserve a unique certificate number",
    )
    progress_write_retries: int = Field(
        default=5,
        ge=1,
        description="Re-merges of session progress after a concurrent write",
    )
    quiz_attempt_insert_retries: int = Field(
        default=3,
        description="Re-reads of the attempt count after losing an insert race",
    )
    quiz_attempt_start_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        ge=3600,
        description="Lifetime of a started attempt that is never submitted",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
