"""Centralized settings and configuration loading utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DirectorySettings(BaseModel):
    upload_dir: str = "./data/uploads"
    temp_dir: str = "./data/temp"
    output_dir: str = "./data/output"


class FileLimitSettings(BaseModel):
    max_upload_size_mb: int = Field(500, ge=1)
    max_files_per_batch: int = Field(10, ge=1)
    default_quality: int = Field(80, ge=1, le=100)


class ConversionSettings(BaseModel):
    timeout_sec: float | None = Field(600.0, gt=0)
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    soffice_path: str = "soffice"
    magick_path: str = "magick"
    office_server_host: str = "127.0.0.1"
    office_server_port: int = 2003


class CleanupSettings(BaseModel):
    max_attempts: int = Field(3, ge=1)
    retry_delay_sec: float = Field(1.0, ge=0)


class DependencySettings(BaseModel):
    check_on_startup: bool = True
    probe_timeout_sec: float = Field(5.0, gt=0)


class RateLimitSettings(BaseModel):
    enabled: bool = True
    interval_sec: int = 15 * 60
    max_requests: int = 100


class LoggingSettings(BaseModel):
    level: str = "INFO"
    log_dir: str = "./logs"
    max_log_file_size_mb: int = 100
    backup_count: int = 7


class MonitoringSettings(BaseModel):
    metrics_enabled: bool = True
    prometheus_port: int = 9091


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FCS_", env_nested_delimiter="__", extra="allow")

    service_name: str = "file-conversion-service"
    environment: str = "development"
    api_version: str = "v1"
    host: str = "0.0.0.0"
    port: int = 5000
    compression_min_bytes: int = 1000
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    directories: DirectorySettings = DirectorySettings()
    file_limits: FileLimitSettings = FileLimitSettings()
    conversion: ConversionSettings = ConversionSettings()
    cleanup: CleanupSettings = CleanupSettings()
    dependencies: DependencySettings = DependencySettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    logging: LoggingSettings = LoggingSettings()
    monitoring: MonitoringSettings = MonitoringSettings()

    @property
    def expose_error_details(self) -> bool:
        return self.environment.lower() != "production"

    @staticmethod
    def load_yaml_config_file(file_path: str | Path | None) -> Dict[str, Any]:
        if not file_path:
            return {}
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        import yaml  # lazy import for optional dependency

        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError("Configuration YAML must produce a mapping")
        return data

    @classmethod
    def from_source(cls, *, config_file: str | None = None, **overrides: Any) -> "Settings":
        base_data = cls.load_yaml_config_file(config_file)
        base_data.update(overrides)
        return cls(**base_data)


@lru_cache
def get_settings() -> Settings:
    cfg_file = os.getenv("FCS_CONFIG_FILE")
    if cfg_file:
        return Settings.from_source(config_file=cfg_file)

    default_path = Path.cwd() / "config" / "settings.yaml"
    if default_path.exists():
        return Settings.from_source(config_file=str(default_path))

    return Settings()


def reload_settings() -> None:
    get_settings.cache_clear()


def settings_dependency() -> Settings:
    return get_settings()
