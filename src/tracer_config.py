#!/usr/bin/env python3
"""
Tracer configuration.

Built-in defaults, optionally overlaid by a user JSON config file.
Command-line flags are applied on top by main.py.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union
from dataclasses import dataclass, field, fields

from strace_runner import DEFAULT_STRACE_ARGS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "strace_perfetto.json"


class ConfigError(ValueError):
    """The user config file exists but cannot be used."""


@dataclass
class TracerConfig:
    """Settings for one tracing run"""
    strace_args: List[str] = field(default_factory=lambda: list(DEFAULT_STRACE_ARGS))
    output: str = "/data/stracefile.json"
    timeout: float = 10
    syscalls: Optional[str] = None
    strace_executable: str = "strace"
    log_file: Optional[str] = None


def load_config(config_file: Optional[Union[str, Path]] = None) -> TracerConfig:
    """
    Load settings: defaults first, then the user config file if present.

    Args:
        config_file: JSON file with any subset of TracerConfig fields.
                     Defaults to ./strace_perfetto.json.

    Raises:
        ConfigError: the file is unreadable, not JSON, or not an object
    """
    config = TracerConfig()
    path = Path(config_file) if config_file else Path(DEFAULT_CONFIG_FILE)

    if not path.exists():
        if config_file:
            raise ConfigError(f"Config file not found: {path}")
        return config

    try:
        with open(path, 'r') as f:
            user_config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not load config {path}: {e}") from e

    if not isinstance(user_config, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")

    known = {f.name for f in fields(TracerConfig)}
    for key, value in user_config.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        setattr(config, key, value)

    logger.info(f"Loaded config from {path}")
    return config
