"""Environment variable utilities.

Expands ${VAR_NAME} references in configuration values (endpoints,
tenant ids, credentials) and loads .env files.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_config_values", "load_env_file"]

# ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: str | Path | None = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, python-dotenv searches the
              current directory and its parents.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Example:
        >>> os.environ["CANARY_TENANT"] = "team-a"
        >>> expand_env_vars("${CANARY_TENANT}")
        'team-a'

    Raises:
        KeyError: If ``strict`` and a referenced variable is unset
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_config_values(data: Any) -> Any:
    """Recursively expand env vars in every string of a parsed YAML tree."""
    if isinstance(data, str):
        return expand_env_vars(data)
    if isinstance(data, dict):
        expanded: Dict[str, Any] = {}
        for key, value in data.items():
            expanded[key] = expand_config_values(value)
        return expanded
    if isinstance(data, list):
        return [expand_config_values(item) for item in data]
    return data
