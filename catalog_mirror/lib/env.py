"""Environment variable utilities.

Provides expansion of ${VAR_NAME} patterns in configuration values
and loading of .env files.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_options", "load_env_file", "env_overrides"]

# Pattern for ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in current
              directory and parent directories.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand ``${VAR}`` and ``$VAR`` references in a string.

    Unknown variables are left as written unless ``strict`` is set, in
    which case a KeyError is raised.

    Example:
        >>> os.environ["BANGUMI_ACCESS_TOKEN"] = "abc"
        >>> expand_env_vars("Bearer ${BANGUMI_ACCESS_TOKEN}")
        'Bearer abc'
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


def expand_options(options: Dict[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Recursively expand environment variables in a nested options dict."""
    result: Dict[str, Any] = {}

    for key, value in options.items():
        if isinstance(value, str):
            result[key] = expand_env_vars(value, strict=strict)
        elif isinstance(value, dict):
            result[key] = expand_options(value, strict=strict)
        elif isinstance(value, list):
            result[key] = [
                expand_env_vars(item, strict=strict) if isinstance(item, str) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def env_overrides(
    mapping: Mapping[str, tuple],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Dict[str, str]]:
    """Collect set environment variables into nested config sections.

    Args:
        mapping: ``{ENV_NAME: (section, field)}``
        environ: Environment to read; defaults to ``os.environ``

    Example:
        >>> env_overrides({"BANGUMI_DEFAULT_QPS": ("rate_limit", "default_qps")},
        ...               {"BANGUMI_DEFAULT_QPS": "5"})
        {'rate_limit': {'default_qps': '5'}}
    """
    environ = os.environ if environ is None else environ
    result: Dict[str, Dict[str, str]] = {}
    for env_name, (section, field_name) in mapping.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        result.setdefault(section, {})[field_name] = value
    return result
