"""
Configuration management module for the budget ledger.

This module handles loading and saving configuration values from config.yaml,
merging them over built-in defaults, and exposing dashboard preferences
(theme, currency symbol, sidebar state) through Streamlit session state.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import streamlit as st
import yaml

from exceptions import ConfigError
from ledger_models import DEFAULT_MONTHLY_BUDGET

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'ledger': {
        'monthly_budget': DEFAULT_MONTHLY_BUDGET,
        'strict_amounts': False,
        'seed_default_categories': True,
    },
    'persistence': {
        'backend': 'file',
        'data_dir': 'data',
        'key': 'ledger',
        'connection_string': None,
        'debounce_seconds': 0.0,
        'encrypt': False,
    },
    'ai': {
        'enabled': False,
        'model': 'gpt-3.5-turbo',
        'api_key_env': 'OPENAI_API_KEY',
        'insight_frequency': 'weekly',
        'auto_analysis': True,
        'content_generation': True,
        'personalized_recommendations': True,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': None,
    },
    'backup': {
        'backup_dir': None,
        'max_backups': 10,
    },
    'ui': {
        'theme': 'light',
        'currency_symbol': '$',
        'sidebar_open': True,
    },
}

CONFIG_FILE = 'config.yaml'


def _deep_merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge overrides into a copy of defaults, descending into nested sections."""
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file merged over DEFAULT_CONFIG.

    A missing file yields the defaults.

    Args:
        config_path: Path to the YAML file (defaults to config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    path = Path(config_path or CONFIG_FILE)
    if not path.exists():
        logger.debug("Config file %s not found; using defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            "Config file is not valid YAML",
            details={"path": str(path)},
            original_error=e
        ) from e

    if not isinstance(loaded, dict):
        raise ConfigError("Config file must contain a mapping", details={"path": str(path)})

    config = _deep_merge(DEFAULT_CONFIG, loaded)
    logger.info("Configuration loaded from %s", path)
    return config


def save_config(config: Dict[str, Any], config_path: Optional[Union[str, Path]] = None) -> bool:
    """
    Save configuration values to the YAML file, preserving keys already there.

    Args:
        config: Configuration dictionary to save
        config_path: Target file (defaults to config.yaml)

    Returns:
        True if successful, False otherwise
    """
    path = Path(config_path or CONFIG_FILE)
    try:
        existing_config: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r', encoding='utf-8') as f:
                existing_config = yaml.safe_load(f) or {}

        merged = _deep_merge(existing_config, config)

        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(merged, f, default_flow_style=False, sort_keys=True)

        logger.info("Configuration saved to %s", path)
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error saving configuration: {e}", exc_info=True)
        return False


def get_config_value(config: Dict[str, Any], dotted_key: str, default: Any = None) -> Any:
    """
    Read a nested value such as 'persistence.backend'.

    Args:
        config: Configuration dictionary
        dotted_key: Section and key separated by dots
        default: Value returned when any part of the path is missing

    Returns:
        The configured value or default
    """
    node: Any = config
    for part in dotted_key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def get_dashboard_preference(key: str, default: Any = None) -> Any:
    """
    Get dashboard preference from session state or the ui config section.

    Args:
        key: Preference key
        default: Default value if not found

    Returns:
        Preference value
    """
    # Check session state first
    session_key = f'pref_{key}'
    if session_key in st.session_state:
        return st.session_state[session_key]

    # Load from config file
    try:
        config = load_config()
    except ConfigError as e:
        logger.warning("Falling back to default preference for %s: %s", key, e)
        config = copy.deepcopy(DEFAULT_CONFIG)
    value = config.get('ui', {}).get(key, default)

    # Store in session state
    st.session_state[session_key] = value

    return value


def set_dashboard_preference(key: str, value: Any, save_to_file: bool = False) -> bool:
    """
    Set dashboard preference in session state and optionally save to config file.

    Args:
        key: Preference key
        value: Preference value
        save_to_file: Whether to persist to the ui section of config.yaml

    Returns:
        True if successful, False otherwise
    """
    st.session_state[f'pref_{key}'] = value

    if save_to_file:
        return save_config({'ui': {key: value}})

    return True


def initialize_session_state(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Initialize session state with ui preferences from config.

    Should be called once at app startup.
    """
    if config is None:
        config = load_config()

    for key, value in config.get('ui', {}).items():
        session_key = f'pref_{key}'
        if session_key not in st.session_state:
            st.session_state[session_key] = value

    logger.info("Session state initialized with configuration")
