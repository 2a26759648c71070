import logging
import os
import typing

_LOGGER = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL_SECONDS = 30.0


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def get_profile_storage_table_name() -> str:
    return _get_resource_by_env_var("PROFILE_STORAGE_TABLE_NAME")


def get_level_catalog_path() -> typing.Optional[str]:
    """
    Optional path to a JSON level catalog that replaces the built-in one.
    """
    return os.environ.get("LEVEL_CATALOG_PATH") or None


def get_autosave_interval_seconds() -> float:
    """
    Interval for the background autosave. Falls back to the default when unset or invalid.
    """
    raw_value = os.environ.get("AUTOSAVE_INTERVAL_SECONDS")
    if not raw_value:
        return DEFAULT_AUTOSAVE_INTERVAL_SECONDS
    try:
        interval = float(raw_value)
    except ValueError:
        _LOGGER.warning(f"Invalid AUTOSAVE_INTERVAL_SECONDS value: {raw_value}")
        return DEFAULT_AUTOSAVE_INTERVAL_SECONDS
    if interval <= 0:
        _LOGGER.warning(f"Non-positive AUTOSAVE_INTERVAL_SECONDS value: {raw_value}")
        return DEFAULT_AUTOSAVE_INTERVAL_SECONDS
    return interval
