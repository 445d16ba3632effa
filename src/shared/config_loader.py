"""Runtime configuration.

Settings come from ``config/navigator.yaml`` with environment variables
taking precedence. A missing or empty file yields the defaults.

Usage:
    config = load_navigator_config()
    errors = validate_config(config)
"""

import copy
import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from src.geodata.countries import normalize_target_country
from src.navigation.formats import parse_format
from src.shared.constants import DOWNLOAD, HTTP, LOGGING, NAV, STORE

__all__ = [
    'DEFAULT_CONFIG',
    'DEFAULT_CONFIG_PATH',
    'ENV_OVERRIDES',
    'load_navigator_config',
    'validate_config',
]


DEFAULT_CONFIG_PATH = "config/navigator.yaml"

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    'database': {
        'path': STORE.DEFAULT_DB_PATH,
    },
    'data': {
        'location_file': DOWNLOAD.DEFAULT_OUTPUT,
    },
    'navigation': {
        'format': 'city-state-country',
        'target_country': NAV.ALL_COUNTRIES,
    },
    'logging': {
        'file': LOGGING.LOG_FILE,
        'level': 'INFO',
    },
    'download': {
        'timeout': HTTP.TIMEOUT,
        'countries': list(DOWNLOAD.TARGET_COUNTRIES),
    },
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'NAVIGATOR_DB_PATH': ('database', 'path'),
    'NAVIGATOR_DATA_FILE': ('data', 'location_file'),
    'NAVIGATOR_FORMAT': ('navigation', 'format'),
    'NAVIGATOR_TARGET_COUNTRY': ('navigation', 'target_country'),
    'NAVIGATOR_LOG_LEVEL': ('logging', 'level'),
}

_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def load_navigator_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Dict[str, Any]]:
    """Load settings merged over the defaults.

    Args:
        config_path: Path to the YAML file

    Returns:
        Configuration dictionary with every section present

    Raises:
        ValueError: If the file is not valid YAML or not a mapping
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logging.debug(f"No config file at {config_path}, using defaults")
        loaded = {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration in {config_path} must be a dictionary")

    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values

    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config.setdefault(section, {})[key] = value
            logging.debug(f"{env_var} overrides {section}.{key}")

    return config


def _section(config: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    section = config.get(name)
    return section if isinstance(section, dict) else None


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Check a loaded configuration.

    Args:
        config: Result of load_navigator_config()

    Returns:
        List of validation errors (empty if config is valid)
    """
    errors = []

    for name in DEFAULT_CONFIG:
        if _section(config, name) is None:
            errors.append(f"'{name}' section must be a dictionary")
    if errors:
        return errors

    for section, key in (('database', 'path'), ('data', 'location_file'), ('logging', 'file')):
        value = config[section].get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"'{section}.{key}' must be a non-empty string")

    try:
        parse_format(config['navigation'].get('format'))
    except ValueError as e:
        errors.append(str(e))

    try:
        normalize_target_country(config['navigation'].get('target_country'))
    except ValueError as e:
        errors.append(str(e))

    level = config['logging'].get('level')
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        errors.append(f"'logging.level' must be one of: {', '.join(_LOG_LEVELS)}")

    timeout = config['download'].get('timeout')
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("'download.timeout' must be a positive number")

    countries = config['download'].get('countries')
    if not isinstance(countries, list) or not all(isinstance(c, str) and len(c) == 2 for c in countries):
        errors.append("'download.countries' must be a list of ISO2 country codes")

    return errors
