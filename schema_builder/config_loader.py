"""
Configuration loading utilities for the schema builder.

This module loads the application configuration from YAML, deep-merging it
onto built-in defaults so a partial or missing file still yields a complete
configuration.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get the default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'JSON Schema Builder',
            'version': '1.0.0'
        },
        'compiler': {
            'include_default_titles': False,
            'default_title': None
        },
        'storage': {
            'directory': 'saved_schemas'
        },
        'llm': {
            'provider': 'openai',
            'user_prompt': 'Extract the structured data from the provided document.'
        },
        'logging': {
            'level': 'INFO'
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Missing, empty or unreadable files fall back to the defaults with a
    logged warning; this function never raises.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and value types.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'compiler', 'storage', 'llm', 'logging']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config['app']
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    compiler = config['compiler']
    if not isinstance(compiler.get('include_default_titles', False), bool):
        logger.warning("compiler.include_default_titles must be a boolean")
        return False
    default_title = compiler.get('default_title')
    if default_title is not None and not isinstance(default_title, str):
        logger.warning("compiler.default_title must be a string")
        return False

    directory = config['storage'].get('directory')
    if not isinstance(directory, str) or not directory.strip():
        logger.warning("storage.directory must be a non-empty string")
        return False

    # Imported lazily; request_builders has no config dependency
    from schema_builder.request_builders import PROVIDERS
    provider = config['llm'].get('provider')
    if provider not in PROVIDERS:
        logger.warning(f"Unknown llm.provider '{provider}'. Expected one of {sorted(PROVIDERS)}")
        return False

    level = config['logging'].get('level')
    if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
        logger.warning(f"Invalid logging.level '{level}'")
        return False

    return True


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary to save
        config_path: Optional path to save to (defaults to config.yaml)

    Returns:
        True if save was successful, False otherwise
    """
    if config_path is None:
        config_path = Path("config.yaml")

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
        return True

    except (IOError, OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """Look up ``config[section][key]``, returning ``default`` when absent."""
    section_values = config.get(section)
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)
