"""
Configuration for the AGI gateway.

Settings are read from YAML (with ${VAR} expansion), overridden from the
environment and validated with Pydantic v2.
"""

from typing import List, Tuple

from pydantic import BaseModel, Field

from agi_gateway.config.defaults import apply_agi_defaults, apply_logging_defaults
from agi_gateway.config.loaders import load_yaml_with_env_expansion, resolve_config_path
from agi_gateway.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/agi-gateway.yaml"


class AgiServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4573)
    # Threads available to dialplans written as plain (blocking) functions
    dialplan_workers: int = Field(default=64)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    agi: AgiServerConfig = Field(default_factory=AgiServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """
    Load and validate configuration.

    A missing file is not an error: environment overrides and model defaults
    still produce a usable configuration.

    Raises:
        yaml.YAMLError: If the file is not valid YAML
        pydantic.ValidationError: If a value has the wrong type
    """
    path = resolve_config_path(path)
    config_data = load_yaml_with_env_expansion(path, required=False)

    apply_agi_defaults(config_data)
    apply_logging_defaults(config_data)

    return AppConfig(**config_data)


def validate_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """Check a configuration before startup.

    Returns:
        (errors, warnings): errors block startup, warnings are only logged
    """
    errors = []
    warnings = []

    if not 0 < config.agi.port <= 65535:
        errors.append(f"AGI port {config.agi.port} out of valid range (1-65535)")

    if config.agi.dialplan_workers < 1:
        errors.append(f"agi.dialplan_workers must be at least 1, got {config.agi.dialplan_workers}")

    if config.agi.host == "0.0.0.0":
        warnings.append("AGI server bound to 0.0.0.0; ensure firewall/segmentation is in place")

    if config.logging.level.lower() == "debug":
        warnings.append("Debug logging enabled (logs every call variable)")

    return errors, warnings


__all__ = [
    'AgiServerConfig',
    'LoggingConfig',
    'AppConfig',
    'load_config',
    'validate_config',
]
