"""Configuration loading for iotappdeploy.

Public API:

- load_effective_config: Merge builtin defaults with an optional YAML file
- DEFAULT_CONFIG: The builtin defaults

Example:
    Basic usage:

        from pathlib import Path
        from iotappdeploy.config import load_effective_config

        config = load_effective_config(source_path=Path("app.py"))
        print(config["device"]["username"])  # "Administrator"

"""

from .loader import DEFAULT_CONFIG, load_effective_config

__all__ = ["DEFAULT_CONFIG", "load_effective_config"]
