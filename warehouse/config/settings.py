"""
Layered Warehouse Pipeline
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety. Each subsystem reads its own env prefix; `Settings` aggregates them.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceDatabaseSettings(BaseSettings):
    """Relational source (Chinook) connection"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_DB_", env_file=".env", extra="ignore")

    driver: str = Field(default="postgresql+psycopg2", description="SQLAlchemy driver name")
    host: str = Field(default="localhost", description="Source database host")
    port: int = Field(default=5432, description="Source database port")
    user: str = Field(default="chinook", description="Source database user")
    password: SecretStr = Field(default="chinook", description="Source database password")
    name: str = Field(default="chinook", description="Source database name")
    schema_name: Optional[str] = Field(default=None, description="Source schema, defaults to the search path")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides host/port)")

    @property
    def sync_url(self) -> str:
        """SQLAlchemy URL - uses SOURCE_DB_URL if set, otherwise builds from parts"""
        if self.url:
            return self.url
        return (
            f"{self.driver}://{self.user}:{self.password.get_secret_value()}"
            f"@{self.host}:{self.port}/{self.name}"
        )


class SourceFilesSettings(BaseSettings):
    """File sources (OULAD CSV exports)"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_FILES_", env_file=".env", extra="ignore")

    root_dir: str = Field(default="./data", description="Root directory holding dataset folders")
    delimiter: str = Field(default=",", description="CSV delimiter")
    encoding: str = Field(default="utf8", description="File encoding")


class WarehouseSettings(BaseSettings):
    """Warehouse storage configuration"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_", env_file=".env", extra="ignore")

    url: str = Field(default="sqlite:///./data/warehouse.db", description="Warehouse SQLAlchemy URL")
    raw_schema: str = Field(default="raw", description="Schema for unmodified ingested data")
    clean_schema: str = Field(default="clean", description="Schema for typed, renamed data")
    mart_schema: str = Field(default="mart", description="Schema for star-schema tables")
    chunk_size: int = Field(default=5000, description="Rows per insert batch")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def schemas(self) -> List[str]:
        """All layer schemas in pipeline order"""
        return [self.raw_schema, self.clean_schema, self.mart_schema]


class MonitoringSettings(BaseSettings):
    """Logging and Metrics Configuration"""

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")
    pushgateway_url: Optional[str] = Field(
        default=None,
        alias="PUSHGATEWAY_URL",
        description="Prometheus Pushgateway address for batch run metrics",
    )


class DataQualitySettings(BaseSettings):
    """Data Quality Configuration"""

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    enable_data_quality_checks: bool = Field(
        default=True,
        description="Run declared tests after each transform layer",
    )
    fail_on_error: bool = Field(
        default=True,
        description="Abort the run when an error-severity test fails",
    )


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="layered-warehouse", description="Application name")
    app_env: str = Field(default="development", description="Environment")
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    source_db: SourceDatabaseSettings = Field(default_factory=SourceDatabaseSettings)
    source_files: SourceFilesSettings = Field(default_factory=SourceFilesSettings)
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    data_quality: DataQualitySettings = Field(default_factory=DataQualitySettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
