"""
Environment overrides for configuration.

Values from the environment replace values read from YAML; anything still
missing falls back to the model defaults.
"""

import os
from typing import Any, Dict


def apply_agi_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply AGI listener overrides from environment variables.

    Environment variables:
    - AGI_HOST: Bind address
    - AGI_PORT: Bind port (ignored when not an integer)

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    agi_cfg = config_data.get('agi', {}) or {}

    host = os.getenv('AGI_HOST', '').strip()
    if host:
        agi_cfg['host'] = host

    port = os.getenv('AGI_PORT', '').strip()
    if port:
        try:
            agi_cfg['port'] = int(port)
        except ValueError:
            pass

    config_data['agi'] = agi_cfg


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply logging overrides from environment variables.

    Environment variables:
    - LOG_LEVEL: debug|info|warning|error|critical

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    logging_cfg = config_data.get('logging', {}) or {}
    level = os.getenv('LOG_LEVEL', '').strip()
    if level:
        logging_cfg['level'] = level.lower()
    config_data['logging'] = logging_cfg
