# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Core orchestration for iotappdeploy.

This module ties the pipeline together: it resolves the external tools,
picks the project and template for the source file, builds and signs the
APPX in a fresh temporary folder, and deploys it to the device.

Pipeline:

1. Resolve MakeAppx.exe, SignTool.exe and PowerShell.exe
2. Find the project system for the source and configure it
3. Find the template for the project's base type
4. Create the APPX (see iotappdeploy.build.manager)
5. Sign it, export the certificate, copy dependencies
6. Uninstall, upload and poll on the device
7. Optionally copy the artifacts to the save-output folder
8. Remove the temporary folder unless asked to keep it

Design Principles:

- Each run gets its own temporary folder; runs never share staging state
- Error handling uses exceptions; the CLI layer formats them for display
- Functions return frozen dataclasses for easy testing

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from iotappdeploy.core import DeployOptions, deploy_app

        result = deploy_app(
            DeployOptions(source=Path("app.py"), target="192.168.1.50")
        )
        print(result.package_full_name)
        ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
import shutil
import tempfile
import time
from typing import Any

from iotappdeploy.auth.credential_manager import (
    DEFAULT_USERNAME,
    Credentials,
    credentials_from_env,
)
from iotappdeploy.build import (
    copy_dependencies,
    create_package,
    export_certificate,
    resolve_tools,
    sign_package,
)
from iotappdeploy.device import DeviceDeployer, DeviceRestClient
from iotappdeploy.device.rest import DEVICE_PORT
from iotappdeploy.extensibility.base import (
    DependencyConfiguration,
    SdkVersion,
    TargetPlatform,
)
from iotappdeploy.exceptions import ConfigError
from iotappdeploy.logging import Logger, get_global_logger
from iotappdeploy.plugins import SupportedProjects
from iotappdeploy.results import DeployResult, PackageResult

PACKAGE_VERSION = "1.0.0.0"
PUBLISHER_ID = "1w720vyc4ccym"
ARTIFACTS_DIR_NAME = "output"
SIGNING_KEY_FILE = "TemporaryKey.pfx"


@dataclass
class DeployOptions:
    """Everything one build-and-deploy run needs.

    Attributes:
        source: Source file to package (e.g. app.py).
        target: Device name or IP address.
        architecture: Target processor architecture.
        configuration: Flavor of the runtime dependencies.
        sdk_version: SDK the package targets.
        temp_dir: Parent folder for the temporary staging folder.
        username: Device user; overrides the environment and default_username.
        password: Device password; overrides the environment.
        default_username: User name when neither username nor the
            IOTAPPDEPLOY_USERNAME variable is set.
        save_output_dir: Folder to copy the APPX, CER and dependencies to.
            It is deleted and recreated.
        keep_temp: Keep the temporary staging folder.
        makeappx: Explicit MakeAppx.exe path.
        signtool: Explicit SignTool.exe path.
        powershell: Explicit PowerShell.exe path.
        port: Device portal port.
        poll_interval: Seconds between install-state queries.
        max_poll_attempts: Optional bound on install-state queries.
        poll_timeout: Optional bound in seconds on install-state polling.
        max_auth_attempts: Optional bound on rejected credential attempts.
        plugin_modules: Allow-listed plugin modules to import.
        resources: The `resources` config mapping handed to providers.
        credential_refresh: Hook called when the device rejects the
            stored credentials.
    """

    source: Path
    target: str
    architecture: TargetPlatform = TargetPlatform.ARM
    configuration: DependencyConfiguration = DependencyConfiguration.DEBUG
    sdk_version: SdkVersion = SdkVersion.SDK_10_0_10586_0
    temp_dir: Path | None = None
    username: str | None = None
    password: str | None = None
    default_username: str = DEFAULT_USERNAME
    save_output_dir: Path | None = None
    keep_temp: bool = False
    makeappx: str | None = None
    signtool: str | None = None
    powershell: str | None = None
    port: int = DEVICE_PORT
    poll_interval: float = 3.0
    max_poll_attempts: int | None = None
    poll_timeout: float | None = None
    max_auth_attempts: int | None = None
    plugin_modules: list[str] = field(default_factory=list)
    resources: dict[str, Any] = field(default_factory=dict)
    credential_refresh: Callable[[Credentials], None] | None = None


def package_full_name(identity_name: str, architecture: TargetPlatform) -> str:
    """Package full name the device installs the APPX under.

    Example:
        >>> package_full_name("python-uwp", TargetPlatform.ARM)
        'python-uwp_1.0.0.0_arm__1w720vyc4ccym'
    """
    return (
        f"{identity_name}_{PACKAGE_VERSION}_{architecture.value.lower()}"
        f"__{PUBLISHER_ID}"
    )


def _build_credentials(options: DeployOptions) -> Credentials:
    credentials = credentials_from_env(username=options.default_username)
    if options.username:
        credentials.username = options.username
    if options.password is not None:
        credentials.password = options.password
    return credentials


def _save_artifacts(package: PackageResult, save_output_dir: Path) -> Path:
    if save_output_dir.exists():
        shutil.rmtree(save_output_dir)
    save_output_dir.mkdir(parents=True)
    for path in package.upload_files:
        shutil.copyfile(path, save_output_dir / path.name)
    return save_output_dir


def deploy_app(
    options: DeployOptions,
    *,
    logger: Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeployResult:
    """Build, sign and deploy one source file to an IoT Core device.

    Args:
        options: Run options (see DeployOptions).
        logger: Optional logger; defaults to the global logger.
        sleep: Sleep function used between install-state queries.

    Returns:
        DeployResult with the project and template names, the package full
            name, the APPX path and the save-output folder.

    Raises:
        ConfigError: If the source file does not exist.
        ToolNotFoundError: If a required external tool is missing.
        PluginError: If no project or template handles the source.
        PackagingError: If staging, packing, signing or export fails.
        NetworkError: If the device cannot be reached or rejects the upload.
        DeploymentError: If the device reports a failed install.
    """
    if logger is None:
        logger = get_global_logger()

    source = options.source.resolve()
    if not source.is_file():
        raise ConfigError(f"Source file not found: {source}")

    logger.info("Starting utility to deploy an Iot Core app based on source ...")

    tools = resolve_tools(options.makeappx, options.signtool, options.powershell)

    supported = SupportedProjects(
        resources=options.resources,
        plugin_modules=options.plugin_modules,
        logger=logger,
    )
    project = supported.require_project(str(source))
    logger.info(f"... project system found: {project.name}")

    project.source_input = str(source)
    project.processor_architecture = options.architecture
    project.sdk_version = options.sdk_version
    project.dependency_configuration = options.configuration

    template = supported.require_template(project.base_project_type())
    logger.info(f"... base project system found: {template.name}")

    if options.temp_dir is not None:
        options.temp_dir.mkdir(parents=True, exist_ok=True)
    staging_dir = Path(
        tempfile.mkdtemp(
            prefix="iotappdeploy-",
            dir=str(options.temp_dir) if options.temp_dir else None,
        )
    )
    logger.verbose("BUILD", f"Staging folder: {staging_dir}")

    arch = options.architecture.value.lower()
    artifacts_dir = staging_dir / ARTIFACTS_DIR_NAME
    stem = f"{project.display_name}_{PACKAGE_VERSION}_{arch}"
    appx_path = artifacts_dir / f"{stem}.appx"
    cer_path = artifacts_dir / f"{stem}.cer"
    full_name = package_full_name(project.identity_name, options.architecture)

    try:
        create_package(template, project, tools, staging_dir, appx_path, logger)

        pfx = staging_dir / SIGNING_KEY_FILE
        sign_package(tools, pfx, appx_path, log_dir=staging_dir)
        export_certificate(tools, pfx, cer_path, log_dir=staging_dir)

        dependency_files = project.dependencies(supported.dependency_providers)
        dependency_paths = copy_dependencies(dependency_files, artifacts_dir)

        package = PackageResult(
            appx_path=appx_path,
            certificate_path=cer_path,
            dependency_paths=dependency_paths,
            staging_dir=staging_dir,
            map_file=staging_dir / "main.map.txt",
        )

        client = DeviceRestClient(
            options.target,
            _build_credentials(options),
            credential_refresh=options.credential_refresh,
            max_auth_attempts=options.max_auth_attempts,
            port=options.port,
        )
        deployer = DeviceDeployer(
            client,
            poll_interval=options.poll_interval,
            max_poll_attempts=options.max_poll_attempts,
            poll_timeout=options.poll_timeout,
            sleep=sleep,
        )
        try:
            deployer.deploy(full_name, package.upload_files)
        finally:
            client.close()

        saved_to = None
        if options.save_output_dir is not None:
            saved_to = _save_artifacts(package, options.save_output_dir)
            logger.verbose("BUILD", f"Artifacts copied to {saved_to}")
    finally:
        if options.keep_temp:
            logger.info(f"... temporary folder kept: {staging_dir}")
        else:
            shutil.rmtree(staging_dir, ignore_errors=True)

    logger.info("")
    logger.info("***")
    logger.info(f"*** PackageFullName = {full_name}")
    logger.info("***")
    logger.info("")

    return DeployResult(
        project_name=project.name,
        template_name=template.name,
        package_full_name=full_name,
        target=options.target,
        appx_path=appx_path,
        saved_to=saved_to,
        status="success",
        phases=[phase.value for phase in deployer.phases],
    )
