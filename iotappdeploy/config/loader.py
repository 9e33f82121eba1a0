"""
Configuration loading and merging for iotappdeploy.

Every setting has a builtin default, so a config file is optional. When one
is present it overrides the defaults, and command-line flags override both.

Configuration Layers
--------------------
1. **Builtin defaults** (DEFAULT_CONFIG)
   - Device user, portal port, poll interval, ARM/Debug/10.0.10586.0

2. **Config file** (.iotappdeploy/config.yaml)
   - Given with --config, or found by walking upward from the source file
   - Tool paths, resource folders, plugin allow-list, polling bounds

3. **Command-line flags**
   - Applied by the caller on top of the merged result

Merge Behavior
--------------
The file is laid over the defaults section by section:
  - **Sections** (device, tools, deploy, ...): merged key by key
  - **plugins.modules**: the file's list replaces the default list
  - **Empty sections**: a section with nothing under it keeps the defaults
  - **Scalars**: the file's value wins, including an explicit null

Path Resolution
---------------
Relative paths in the config file are resolved against the CONFIG FILE
location. Currently resolved paths:
  - tools.makeappx, tools.signtool, tools.powershell
  - resources.python_runtime_dir, resources.vclibs_dir, resources.template_dir

Functions
---------
load_effective_config : function
    Load and merge configuration (main public API).

Private Helpers
---------------
_load_yaml_file : Read one YAML file, ConfigError on failure
_deep_merge_dicts : Lay one mapping over another
_find_config_file : Locate .iotappdeploy/config.yaml
_normalize_sections : Empty sections to {}, reject non-mapping sections
_resolve_known_paths : Anchor tool and resource paths at the file

Error Handling
--------------
- ConfigError: Missing explicit config file, YAML parse errors, non-mapping
  top level or section
- YAML errors are chained with "from err"

Examples
--------
Basic usage:

    >>> from pathlib import Path
    >>> from iotappdeploy.config import load_effective_config
    >>> cfg = load_effective_config(source_path=Path("app.py"))
    >>> cfg["deploy"]["poll_interval"]
    3.0

Explicit file:

    >>> cfg = load_effective_config(config_path=Path("ci/iot.yaml"))
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from iotappdeploy.exceptions import ConfigError

CONFIG_DIR_NAME = ".iotappdeploy"
CONFIG_FILE_NAME = "config.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "device": {
        "username": "Administrator",
        "port": 8080,
        "max_auth_attempts": None,
    },
    "tools": {
        "makeappx": None,
        "signtool": None,
        "powershell": None,
    },
    "deploy": {
        "poll_interval": 3.0,
        "max_poll_attempts": None,
        "poll_timeout": None,
    },
    "build": {
        "sdk_version": "10.0.10586.0",
        "configuration": "Debug",
        "architecture": "ARM",
    },
    "plugins": {
        "modules": [],
    },
    "resources": {
        "python_runtime_dir": None,
        "vclibs_dir": None,
        "template_dir": None,
    },
}

_PATH_KEYS = {
    "tools": ("makeappx", "signtool", "powershell"),
    "resources": ("python_runtime_dir", "vclibs_dir", "template_dir"),
}


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Parse one YAML config file.

    An empty file yields an empty dict.

    Raises:
      ConfigError - when the file does not exist or is not valid YAML
    """
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        return {}
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Return base with overlay laid on top.

    Nested mappings are merged recursively; any other overlay value (list,
    scalar, None) replaces the base value. Neither input is modified.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            # Replace lists and scalars entirely
            result[k] = v
    return result


# -------------------------------
# Config discovery
# -------------------------------


def _find_config_file(start_dir: Path) -> Path | None:
    """
    Walk upward from 'start_dir' looking for '.iotappdeploy/config.yaml'.
    Returns the file path or None if not found.
    """
    for parent in [start_dir] + list(start_dir.parents):
        candidate = parent / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


# -------------------------------
# Section checks
# -------------------------------


def _normalize_sections(cfg: dict[str, Any], config_path: Path) -> None:
    """
    Make every known section of the file a mapping.

    An empty section ("device:" with nothing under it) becomes {} so the
    defaults survive the merge. Modifies cfg in place.

    Raises:
      ConfigError - when a known section holds a list or a scalar
    """
    for section in DEFAULT_CONFIG:
        if section not in cfg:
            continue
        if cfg[section] is None:
            cfg[section] = {}
        elif not isinstance(cfg[section], dict):
            raise ConfigError(
                f"Section '{section}' must be a mapping, got "
                f"{type(cfg[section]).__name__}: {config_path}"
            )


# -------------------------------
# Path resolution
# -------------------------------


def _resolve_known_paths(cfg: dict[str, Any], base_dir: Path) -> None:
    """
    Resolve relative path fields from the config file against 'base_dir'.

    Only the keys in _PATH_KEYS are touched. Modifies cfg in place.
    """
    for section, keys in _PATH_KEYS.items():
        values = cfg.get(section)
        if not isinstance(values, dict):
            continue
        for key in keys:
            raw_path = values.get(key)
            if isinstance(raw_path, str) and raw_path:
                p = Path(raw_path).expanduser()
                # Resolve only if the path is relative
                if not p.is_absolute():
                    p = (base_dir / p).resolve()
                values[key] = str(p)


# -------------------------------
# Public API
# -------------------------------


def load_effective_config(
    source_path: Path | None = None,
    config_path: Path | None = None,
    *,
    verbose: bool = False,
    debug: bool = False,
) -> dict[str, Any]:
    """
    Load and merge the effective configuration for a deployment.

    Steps
      1) Start from DEFAULT_CONFIG.
      2) Use 'config_path' if given, else search upward from the source file.
      3) Read the config file (a missing explicit file is an error).
      4) Resolve known relative paths against the config file's folder.
      5) Merge: defaults -> config file (dicts deep-merge, lists replace).

    Returns
      A merged configuration dict. Without a config file the defaults are
      returned as-is.

    Raises
      ConfigError on a missing explicit file, YAML parse errors or a
      non-mapping top level (with chained context).
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    merged = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None and source_path is not None:
        config_path = _find_config_file(source_path.resolve().parent)

    if config_path is None:
        logger.verbose("CONFIG", "No config file found, using builtin defaults")
        return merged

    config_path = config_path.resolve()
    logger.verbose("CONFIG", f"Loading: {config_path}")

    file_obj = _load_yaml_file(config_path)
    if not isinstance(file_obj, dict):
        raise ConfigError(
            f"Top-level YAML must be a mapping (dict): {config_path}"
        )

    _normalize_sections(file_obj, config_path)
    _resolve_known_paths(file_obj, config_path.parent)

    if debug:
        logger.debug("CONFIG", "--- Content from config file ---")
        for line in yaml.safe_dump(file_obj, sort_keys=False).splitlines():
            logger.debug("CONFIG", line)

    merged = _deep_merge_dicts(merged, file_obj)

    if verbose:
        logger.verbose(
            "CONFIG",
            f"Final config has {len(merged)} top-level keys: {', '.join(merged)}",
        )
    return merged
