import os
import re
from logging import Logger
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from actions_stats.errors import ValidationError

_ENV_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

DEFAULT_API_URL = "https://api.github.com"
PROXIMA_API_URL = "https://api.github.ghe.com"

DEFAULTS: Dict[str, Any] = {
    "api_url": DEFAULT_API_URL,
    "request_defaults": {"timeout": 60},
    "retries": {
        "total": 3,
        "backoff_factor": 0.5,
        "status_forcelist": [502, 503, 504],
        "allowed_methods": ["GET"],
    },
    "http_retry": {"attempts": 3},
    "version_comments": None,
    "bulk": {
        "table": "WorkflowRuns",
        "retry_on_failure": True,
        "chunksize": 1000,
    },
}


def expand_env_value(v: Any) -> Any:
    if isinstance(v, str):
        return _ENV_RE.sub(lambda m: os.getenv(m.group(1), m.group(0)), v)
    if isinstance(v, dict):
        return {k: expand_env_value(vv) for k, vv in v.items()}
    if isinstance(v, list):
        return [expand_env_value(x) for x in v]
    return v


def read_yml_configs(log: Logger, path: Optional[str]) -> Dict[str, Any]:
    """Load the optional YAML settings file.

    An unreadable file, invalid YAML or a top level that is not a mapping
    raises ``ValidationError``. Sections this tool does not know are logged and
    ignored.
    """
    if not path:
        return {}
    settings_path = Path(path)
    if not settings_path.is_file():
        raise ValidationError(
            f"The settings file '{settings_path}' does not exist."
        )
    try:
        with open(settings_path, "rb") as settings_file:
            config = yaml.safe_load(settings_file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(
            f"Issue loading settings file '{settings_path}': {e}"
        ) from e
    if not isinstance(config, dict):
        raise ValidationError(
            f"Settings file '{settings_path}' must hold a mapping at the top level."
        )

    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        log.warning(f"Ignoring unknown settings sections: {unknown}")
    log.info(f"Settings loaded from {settings_path}")
    return config


def prepare(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the effective settings: defaults overlaid with ``config``.

    Nested sections merge one level deep; ``${VAR}`` placeholders are expanded
    from the environment.
    """
    config = config or {}
    settings: Dict[str, Any] = {}
    for key, default in DEFAULTS.items():
        value = config.get(key)
        if isinstance(default, dict):
            settings[key] = {**default, **(value or {})}
        else:
            settings[key] = value if value else default
    return expand_env_value(settings)
