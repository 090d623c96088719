"""Configuration for schema derivation and SQL tracing."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .descriptors import CreateFlags

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "tableforge.yml"
ENV_TRACE_SQL = "TABLEFORGE_TRACE_SQL"


@dataclass(frozen=True)
class ForgeConfig:
    """Library-wide behavior controls."""
    default_create_flags: CreateFlags = CreateFlags.NONE
    sql_cache_size: Optional[int] = None
    trace_sql: bool = False
    create_if_not_exists: bool = True


def _parse_flags(value: Any) -> CreateFlags:
    if isinstance(value, CreateFlags):
        return value
    if value is None:
        return CreateFlags.NONE
    names = [value] if isinstance(value, str) else list(value)
    flags = CreateFlags.NONE
    for name in names:
        try:
            flags |= CreateFlags[str(name).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown create flag: {name!r}") from None
    return flags


def config_from_mapping(data: Mapping[str, Any]) -> ForgeConfig:
    """Build a config from a plain mapping, ignoring unknown keys."""
    known = {f.name for f in fields(ForgeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {unknown}")
    values = {k: v for k, v in data.items() if k in known}
    if "default_create_flags" in values:
        values["default_create_flags"] = _parse_flags(values["default_create_flags"])
    return ForgeConfig(**values)


def load_config(path: Union[str, Path, None] = None) -> ForgeConfig:
    """Load the ``tableforge`` section of a YAML file, with safe defaults.

    Resolution order:
    - explicit ``path``
    - CWD/tableforge.yml
    - defaults

    ``TABLEFORGE_TRACE_SQL`` overrides ``trace_sql`` when set.
    """
    config_path = Path(path) if path else Path.cwd() / CONFIG_FILENAME
    config = ForgeConfig()
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
        section = user_config.get("tableforge", {}) if isinstance(user_config, Mapping) else {}
        config = config_from_mapping(section or {})
        logger.debug(f"Loaded config from {config_path}")
    elif path:
        raise FileNotFoundError(config_path)

    env_trace = os.getenv(ENV_TRACE_SQL)
    if env_trace is not None:
        config = replace(config, trace_sql=env_trace.lower() == "true")
    return config
