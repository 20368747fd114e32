"""
Configuration loading for go-build.

Settings come from, in increasing precedence: built-in defaults, an optional
YAML file in the user config directory, and environment variables.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import platformdirs
import yaml

from gobuild.constants import (
    APP_NAME,
    BUILD_PATH_ENV_VAR,
    CACHE_PATH_ENV_VAR,
    CONFIG_FILE_NAME,
    DEFINITIONS_DIR_NAME,
    DEFINITIONS_ENV_VAR,
    MIRROR_URL_ENV_VAR,
    SKIP_MIRROR_ENV_VAR,
    TMPDIR_ENV_VAR,
)
from gobuild.exceptions import ConfigurationError
from gobuild.log_utils import logger


def get_config_file() -> Path:
    """Return the path of the optional YAML configuration file."""
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def get_default_definitions_dir() -> Path:
    """Return the default definitions directory under the user data dir."""
    return Path(platformdirs.user_data_dir(APP_NAME)) / DEFINITIONS_DIR_NAME


@dataclass
class Settings:
    """Resolved configuration for one invocation."""

    definition_dirs: List[Path] = field(default_factory=list)
    cache_path: Optional[Path] = None
    mirror_url: Optional[str] = None
    skip_mirror: bool = False
    build_path: Optional[Path] = None
    tmp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    @property
    def mirror_enabled(self) -> bool:
        return bool(self.mirror_url) and not self.skip_mirror


def _split_paths(value: str) -> List[Path]:
    return [Path(p).expanduser() for p in value.split(os.pathsep) if p]


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read the YAML configuration file.

    Returns:
        Dict[str, Any]: The parsed mapping, or an empty dict when the file is missing.

    Raises:
        ConfigurationError: If the file cannot be read or is not a YAML mapping.
    """
    config_path = path or get_config_file()
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Failed to load configuration from {config_path}", details=str(exc)
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file {config_path} must contain a mapping"
        )
    logger.debug("Loaded configuration from %s", config_path)
    return data


def _config_paths(value: Any, key: str) -> List[Path]:
    if value is None:
        return []
    if isinstance(value, str):
        return _split_paths(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [Path(v).expanduser() for v in value]
    raise ConfigurationError(f"Configuration key '{key}' must be a path or list of paths")


def _optional_path(value: Any, key: str) -> Optional[Path]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"Configuration key '{key}' must be a path")
    return Path(value).expanduser()


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> Settings:
    """
    Build Settings from the configuration file and the environment.

    Definition directories from the environment are searched first, then those
    from the configuration file, then the default data directory.
    """
    env = os.environ if environ is None else environ
    file_config = load_config_file(config_path)

    definition_dirs: List[Path] = []
    definition_dirs.extend(_split_paths(env.get(DEFINITIONS_ENV_VAR, "")))
    definition_dirs.extend(_config_paths(file_config.get("definitions"), "definitions"))
    definition_dirs.append(get_default_definitions_dir())

    cache_path = _optional_path(
        env.get(CACHE_PATH_ENV_VAR) or file_config.get("cache_path"), "cache_path"
    )
    build_path = _optional_path(
        env.get(BUILD_PATH_ENV_VAR) or file_config.get("build_path"), "build_path"
    )

    mirror_url = env.get(MIRROR_URL_ENV_VAR) or file_config.get("mirror_url")
    if mirror_url is not None and not isinstance(mirror_url, str):
        raise ConfigurationError("Configuration key 'mirror_url' must be a URL")

    tmp_dir = env.get(TMPDIR_ENV_VAR) or tempfile.gettempdir()

    return Settings(
        definition_dirs=definition_dirs,
        cache_path=cache_path,
        mirror_url=mirror_url.rstrip("/") if mirror_url else None,
        skip_mirror=bool(env.get(SKIP_MIRROR_ENV_VAR)),
        build_path=build_path,
        tmp_dir=Path(tmp_dir),
    )
