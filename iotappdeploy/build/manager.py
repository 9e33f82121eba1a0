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

"""Build manager for APPX package creation.

This module stages a template and a project into one folder, tailors the
manifest, and packs the result with MakeAppx.exe.

Private Helpers:
    - _copy_contents: Apply a list of FileContent to the staging folder
    - _run_makeappx: Invoke MakeAppx.exe and check for the archive

Design Principles:
    - Steps run strictly in order; the first failure raises and aborts
    - Nothing is cleaned up on failure (the caller owns the staging folder)
    - Identity/property changes are applied before capabilities, and both
      before the map file is generated
    - MakeAppx success is decided by the archive existing, not its exit code

Example:
    ```python
    from pathlib import Path
    from iotappdeploy.build import create_package

    appx = create_package(
        template, project, tools,
        staging_dir=Path("C:/Temp/stage"),
        output_appx=Path("C:/Temp/stage/output/pythonuwp_1.0.0.0_arm.appx"),
    )
    ```
"""

from __future__ import annotations

from pathlib import Path

from iotappdeploy.build.tools import ToolPaths, run_external_tool
from iotappdeploy.exceptions import PackagingError
from iotappdeploy.extensibility.base import FileContent, Project, Template
from iotappdeploy.extensibility.content import MANIFEST_FILE, apply_content_changes
from iotappdeploy.logging import Logger, get_global_logger

MAP_FILE_NAME = "main.map.txt"
MAKEAPPX_LOG_NAME = "makeappx.log"

TOTAL_STEPS = 7


def _copy_contents(contents: list[FileContent], root: Path) -> None:
    for content in contents:
        content.apply(root)


def write_map_file(
    map_file: Path, resource_metadata: list[str], files: list[str]
) -> Path:
    """Write an APPX map file.

    The format is a `[ResourceMetadata]` section, a blank line, then a
    `[Files]` section. Every entry is a `"key" "value"` line.

    Args:
        map_file: Destination path.
        resource_metadata: Lines for the `[ResourceMetadata]` section.
        files: Lines for the `[Files]` section.

    Returns:
        The map file path.
    """
    lines = ["[ResourceMetadata]", *resource_metadata, "", "[Files]", *files]
    map_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return map_file


def _run_makeappx(
    tools: ToolPaths, manifest: Path, map_file: Path, output_appx: Path
) -> Path:
    cmd = [
        str(tools.makeappx),
        "pack",
        "/l",
        "/h",
        "sha256",
        "/m",
        str(manifest),
        "/f",
        str(map_file),
        "/o",
        "/p",
        str(output_appx),
    ]
    log_file = map_file.parent / MAKEAPPX_LOG_NAME
    run_external_tool(cmd, log_file)

    if not output_appx.is_file():
        raise PackagingError(
            f"MakeAppx.exe did not create {output_appx}. See logfile: {log_file}"
        )
    return log_file


def create_package(
    template: Template,
    project: Project,
    tools: ToolPaths,
    staging_dir: Path,
    output_appx: Path,
    logger: Logger | None = None,
) -> Path:
    """Stage template and project content and pack it into an APPX.

    Steps:

    1. Copy the template's files into the staging folder
    2. Copy the project's files into the staging folder
    3. Apply the project's manifest changes
    4. Run the project's build step
    5. Apply the project's capability additions
    6. Write main.map.txt (template entries before project entries)
    7. Run MakeAppx.exe and check the archive exists

    Args:
        template: Base template providing the shared content.
        project: Configured project (source, architecture, SDK, configuration).
        tools: Resolved external tools.
        staging_dir: Folder to stage into; created if missing.
        output_appx: Where MakeAppx.exe writes the archive.
        logger: Optional logger; defaults to the global logger.

    Returns:
        Path to the created .appx archive.

    Raises:
        PackagingError: On the first step that fails.
        ToolNotFoundError: If MakeAppx.exe cannot be started.
    """
    if logger is None:
        logger = get_global_logger()

    staging_dir.mkdir(parents=True, exist_ok=True)
    output_appx.parent.mkdir(parents=True, exist_ok=True)

    logger.step(1, TOTAL_STEPS, "Copying template files...")
    _copy_contents(template.template_contents(), staging_dir)
    logger.info(f"... base project files found and copied: {staging_dir}")

    logger.step(2, TOTAL_STEPS, "Copying project files...")
    _copy_contents(project.appx_contents(), staging_dir)
    logger.info(f"... project files found and copied: {staging_dir}")

    logger.step(3, TOTAL_STEPS, "Tailoring manifest...")
    count = apply_content_changes(project.appx_content_changes(), staging_dir, logger)
    logger.verbose("BUILD", f"Applied {count} manifest change(s)")
    logger.info("... project files tailored to current deployment.")

    logger.step(4, TOTAL_STEPS, "Building project...")
    if not project.build(staging_dir, logger):
        raise PackagingError(f"{project.name} build step failed")

    logger.step(5, TOTAL_STEPS, "Adding capabilities...")
    count = apply_content_changes(project.capabilities(), staging_dir, logger)
    logger.verbose("BUILD", f"Applied {count} capability change(s)")

    logger.step(6, TOTAL_STEPS, "Creating APPX map file...")
    resource_metadata: list[str] = []
    files: list[str] = []
    if not template.appx_map_contents(resource_metadata, files, staging_dir):
        raise PackagingError(f"{template.name} could not list its map entries")
    if not project.appx_map_contents(resource_metadata, files, staging_dir):
        raise PackagingError(f"{project.name} could not list its map entries")
    map_file = write_map_file(staging_dir / MAP_FILE_NAME, resource_metadata, files)
    logger.info(f"... APPX map file created: {map_file}")

    logger.step(7, TOTAL_STEPS, "Creating APPX file...")
    log_file = _run_makeappx(
        tools, staging_dir / MANIFEST_FILE, map_file, output_appx
    )
    logger.info("... APPX file created")
    logger.info(f"        {output_appx}")
    logger.info(f"        logfile: {log_file}")

    return output_appx
