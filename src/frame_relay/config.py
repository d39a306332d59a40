"""
FrameRelay Configuration
========================

This module handles configuration loading for the frame relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    FRAME_RELAY_HOST                  -> server.host
    FRAME_RELAY_PORT                  -> server.port
    FRAME_RELAY_MAX_FRAME_SIZE        -> relay.max_frame_size
    FRAME_RELAY_VIEWER_QUEUE_SIZE     -> relay.viewer_queue_size
    FRAME_RELAY_PRODUCER_IDLE_TIMEOUT -> relay.producer_idle_timeout_seconds
    FRAME_RELAY_LOG_LEVEL             -> logging.level
    FRAME_RELAY_LOG_FORMAT            -> logging.format
    PORT                              -> server.port (takes precedence)

Example:
    from frame_relay.config import settings

    print(settings.server.port)
    print(settings.relay.max_frame_size)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


#: Largest payload a producer may declare in a length prefix (10 MiB).
DEFAULT_MAX_FRAME_SIZE = 10 * 1024 * 1024


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="frame-relay", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")


class RelayConfig(BaseModel):
    """Relay core configuration."""

    max_frame_size: int = Field(
        default=DEFAULT_MAX_FRAME_SIZE,
        ge=0,
        description="Largest accepted declared frame length in bytes",
    )
    viewer_queue_size: int = Field(
        default=64,
        ge=1,
        description="Outbound messages buffered per viewer before it is dropped",
    )
    producer_idle_timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Terminate producers idle for this long (0 = disabled)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    log_requests: bool = Field(default=True, description="Log every HTTP request")


class Settings(BaseModel):
    """
    Main settings class for FrameRelay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        if env_path := os.environ.get("FRAME_RELAY_CONFIG"):
            config_path = env_path
        else:
            search_paths = [
                Path("config.yaml"),
                Path("config.yml"),
                Path("/app/config.yaml"),
            ]
            for path in search_paths:
                if path.exists():
                    config_path = str(path)
                    break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Server settings (PORT wins for container platforms)
    if env_host := os.environ.get("FRAME_RELAY_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("FRAME_RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Relay settings
    if env_max := os.environ.get("FRAME_RELAY_MAX_FRAME_SIZE"):
        config_data.setdefault("relay", {})["max_frame_size"] = int(env_max)
    if env_queue := os.environ.get("FRAME_RELAY_VIEWER_QUEUE_SIZE"):
        config_data.setdefault("relay", {})["viewer_queue_size"] = int(env_queue)
    if env_idle := os.environ.get("FRAME_RELAY_PRODUCER_IDLE_TIMEOUT"):
        config_data.setdefault("relay", {})["producer_idle_timeout_seconds"] = float(env_idle)

    # Logging settings
    if env_log := os.environ.get("FRAME_RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_fmt := os.environ.get("FRAME_RELAY_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_fmt


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
