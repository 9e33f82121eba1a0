"""
iotappdeploy - build and deploy single-file apps to Windows IoT Core.

iotappdeploy turns one source file (for example `app.py`) into a signed
APPX sideload package and installs it on a remote Windows IoT Core device
through the device portal's REST API.

Features
--------
  - Plugin registry for project systems, base templates and runtime dependencies
  - Declarative AppxManifest.xml tailoring (XPath changes, capabilities)
  - APPX packing and signing with the Windows SDK tools
  - Device deployment with uninstall, multipart upload and install polling
  - Optional YAML defaults file and .env credentials

Quick Start
-----------
Deploy a Python script:

    $ iotappdeploy -s app.py -n 192.168.1.50

For full CLI documentation:

    $ iotappdeploy -h

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    High-level orchestration (deploy_app).
config : package
    YAML configuration loading and merging.
extensibility : package
    Plugin contracts and manifest content changes.
plugins : package
    Provider registry and the builtin Python/C++ template/VCLibs plugins.
build : package
    Staging, MakeAppx/SignTool/PowerShell invocation.
auth : package
    Device credentials.
device : package
    Device portal REST client and deployment sequence.

Public API
----------
The primary interface is the CLI, but key functions are exported for
programmatic use:

    from iotappdeploy.core import DeployOptions, deploy_app
    from iotappdeploy.config import load_effective_config
    from iotappdeploy.plugins import SupportedProjects

For more details, see the individual module docstrings.

Project Information
-------------------
Author: Roger Cibrian
License: Apache-2.0
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Build and deploy single-file apps to Windows IoT Core devices"

# Re-export commonly used functions for convenience
from iotappdeploy.config import load_effective_config
from iotappdeploy.core import DeployOptions, deploy_app
from iotappdeploy.plugins import SupportedProjects

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "DeployOptions",
    "SupportedProjects",
    "deploy_app",
    "load_effective_config",
]
