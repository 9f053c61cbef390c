# src/llmsession/config/loader.py
"""
Layered configuration loading for llmsession.

Sources, lowest precedence first:
    1. Packaged ``default_config.toml``
    2. A user TOML file (explicit path, or ~/.config/llmsession/config.toml)
    3. Environment variables ``<PREFIX>_<KEY>``; nested keys use double
       underscores, e.g. ``LLMSESSION_CACHE__EXPIRE_TIME=600``
    4. An explicit overrides dictionary

Layering and validation are done by pydantic-settings through
`ResponderSettings`; this module only picks the files and the prefix.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict

from ..exceptions import ConfigError
from .models import DEFAULT_CONFIG_PATH, ResponderSettings

logger = logging.getLogger(__name__)

DEFAULT_USER_CONFIG_PATH = Path("~/.config/llmsession/config.toml")


def _config_files(config_file_path: Optional[str | Path]) -> List[Path]:
    files = [DEFAULT_CONFIG_PATH]
    if config_file_path is not None:
        path = Path(config_file_path).expanduser()
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: '{path}'")
        files.append(path)
        logger.debug(f"Loading configuration file: {path}")
    else:
        user_path = DEFAULT_USER_CONFIG_PATH.expanduser()
        if user_path.is_file():
            files.append(user_path)
            logger.debug(f"Loading user configuration file: {user_path}")
    return files


def load_settings(
    config_file_path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    env_prefix: str = "LLMSESSION",
) -> ResponderSettings:
    """
    Load, merge and validate the llmsession configuration.

    Args:
        config_file_path: Explicit TOML file. When None, the default user
                          config is read if it exists.
        overrides: Highest-precedence values.
        env_prefix: Environment variable prefix, without the trailing underscore.

    Returns:
        Validated ResponderSettings.

    Raises:
        ConfigError: If a source cannot be read or the result is invalid.
    """
    files = _config_files(config_file_path)

    class LoadedSettings(ResponderSettings):
        model_config = SettingsConfigDict(env_prefix=f"{env_prefix.upper()}_", toml_file=files)

    try:
        return LoadedSettings(**dict(overrides or {}))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read configuration file: {e}")
    except ValidationError as e:
        raise ConfigError(f"llmsession configuration is invalid: {e}")
