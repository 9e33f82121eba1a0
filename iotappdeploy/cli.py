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

"""Command-line interface for iotappdeploy.

This module provides the `iotappdeploy` command, which builds an APPX from
a single source file and deploys it to a Windows IoT Core device.

Example:
    Deploy a Python script to a Raspberry Pi running IoT Core:

        $ iotappdeploy -s app.py -n 192.168.1.50

    Build for x86 with release dependencies and keep the artifacts:

        $ iotappdeploy -s app.py -n minwinpc -a X86 -f Release -o ./out

    Point at the SDK tools explicitly:

        $ iotappdeploy -s app.py -n 192.168.1.50 \\
            --makeappx "C:/Program Files (x86)/Windows Kits/10/bin/x64/MakeAppx.exe" \\
            -g "C:/Program Files (x86)/Windows Kits/10/bin/x64/SignTool.exe"

Exit Codes:

- 0: Success
- 1: Error (configuration, tool, packaging, network or device failure)
- 2: Invalid command line (missing -s/-n, unknown architecture...)

Note:
    The CLI uses argparse (stdlib, zero dependencies). Settings come from
    three places, highest precedence first: command-line flags, the
    .iotappdeploy/config.yaml file, builtin defaults. Verbose mode shows
    full tracebacks on errors for debugging.

"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import Any

from iotappdeploy import __version__
from iotappdeploy.auth import interactive_refresh
from iotappdeploy.config import load_effective_config
from iotappdeploy.core import DeployOptions, deploy_app
from iotappdeploy.exceptions import ConfigError, DeploymentError, IotAppDeployError
from iotappdeploy.extensibility.base import (
    DependencyConfiguration,
    SdkVersion,
    TargetPlatform,
)
from iotappdeploy.logging import get_logger, set_global_logger


def _enum_arg(enum_cls):
    """argparse type converting text with enum_cls.parse()."""

    def convert(text: str):
        try:
            return enum_cls.parse(text)
        except ConfigError as err:
            raise argparse.ArgumentTypeError(str(err)) from err

    convert.__name__ = enum_cls.__name__
    return convert


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from err
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return value


def _positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from err
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iotappdeploy",
        description="Build an APPX from a source file and deploy it to a Windows IoT Core device.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="Example:\n  iotappdeploy -s app.py -n 1.2.3.4 -a ARM -x 10.0.10586.0",
    )
    parser.add_argument(
        "-h",
        "-help",
        "-?",
        action="help",
        default=argparse.SUPPRESS,
        help="Display usage",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"iotappdeploy {__version__}",
    )
    parser.add_argument("-s", dest="source", required=True, help="Source input (e.g. app.py)")
    parser.add_argument(
        "-n", dest="target", required=True, help="IoT Core device name or IP address"
    )
    parser.add_argument(
        "-x",
        dest="sdk",
        type=_enum_arg(SdkVersion),
        default=None,
        help="SDK version (default: 10.0.10586.0)",
    )
    parser.add_argument(
        "-t",
        dest="temp_dir",
        default=None,
        help="Folder to create the temporary staging folder in (default: system temp)",
    )
    parser.add_argument(
        "-f",
        dest="configuration",
        type=_enum_arg(DependencyConfiguration),
        default=None,
        help="Dependency configuration [Debug|Release] (default: Debug)",
    )
    parser.add_argument(
        "-a",
        dest="architecture",
        type=_enum_arg(TargetPlatform),
        default=None,
        help="Target architecture [ARM|X86] (default: ARM)",
    )
    parser.add_argument(
        "-w", dest="username", default=None, help="Device user name (default: Administrator)"
    )
    parser.add_argument(
        "-p", dest="password", default=None, help="Device user password (default: p@ssw0rd)"
    )
    parser.add_argument(
        "-o",
        dest="output_dir",
        default=None,
        help="Folder to save the APPX, CER and dependencies to (recreated)",
    )
    parser.add_argument(
        "-g", dest="signtool", default=None, help="SignTool.exe full path"
    )
    parser.add_argument(
        "--makeappx", "-makeappx", default=None, help="MakeAppx.exe full path"
    )
    parser.add_argument(
        "--powershell", "-powershell", default=None, help="PowerShell.exe full path"
    )
    parser.add_argument(
        "-d",
        dest="keep_temp",
        action="store_true",
        help="Keep the temporary staging folder",
    )
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="YAML config file (default: .iotappdeploy/config.yaml above the source)",
    )
    parser.add_argument(
        "--max-poll-attempts",
        type=_positive_int,
        default=None,
        help="Give up after this many install-state queries (default: unbounded)",
    )
    parser.add_argument(
        "--poll-timeout",
        type=_positive_float,
        default=None,
        help="Give up polling the install state after this many seconds (default: unbounded)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    return parser


def _pick(cli_value: Any, config_value: Any) -> Any:
    return cli_value if cli_value is not None else config_value


def _config_number(section: str, key: str, value: Any, default, kind):
    """Convert a config value with kind(); None means default."""
    if value is None:
        return default
    try:
        return kind(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}") from err


def build_options(args: argparse.Namespace, config: dict[str, Any]) -> DeployOptions:
    """Combine parsed flags with the effective config (flags win).

    Raises:
        ConfigError: If a config value is not a supported enum value or
            not a number where one is expected.
    """
    device = config.get("device") or {}
    tools = config.get("tools") or {}
    deploy = config.get("deploy") or {}
    build = config.get("build") or {}
    plugins = config.get("plugins") or {}

    architecture = args.architecture or TargetPlatform.parse(
        str(build.get("architecture") or TargetPlatform.ARM.value)
    )
    configuration = args.configuration or DependencyConfiguration.parse(
        str(build.get("configuration") or DependencyConfiguration.DEBUG.value)
    )
    sdk_version = args.sdk or SdkVersion.parse(
        str(build.get("sdk_version") or SdkVersion.SDK_10_0_10586_0.value)
    )

    return DeployOptions(
        source=Path(args.source),
        target=args.target,
        architecture=architecture,
        configuration=configuration,
        sdk_version=sdk_version,
        temp_dir=Path(args.temp_dir) if args.temp_dir else None,
        username=args.username,
        password=args.password,
        default_username=device.get("username") or "Administrator",
        save_output_dir=Path(args.output_dir).resolve() if args.output_dir else None,
        keep_temp=args.keep_temp,
        makeappx=_pick(args.makeappx, tools.get("makeappx")),
        signtool=_pick(args.signtool, tools.get("signtool")),
        powershell=_pick(args.powershell, tools.get("powershell")),
        port=_config_number("device", "port", device.get("port"), 8080, int),
        poll_interval=_config_number(
            "deploy", "poll_interval", deploy.get("poll_interval"), 3.0, float
        ),
        max_poll_attempts=_pick(args.max_poll_attempts, deploy.get("max_poll_attempts")),
        poll_timeout=_pick(args.poll_timeout, deploy.get("poll_timeout")),
        max_auth_attempts=device.get("max_auth_attempts"),
        plugin_modules=list(plugins.get("modules") or []),
        resources=dict(config.get("resources") or {}),
        credential_refresh=interactive_refresh,
    )


def cmd_deploy(args: argparse.Namespace) -> int:
    """Handler for the deployment run.

    Loads the effective configuration, builds the APPX and deploys it.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).

    Note:
        Prints progress and results to stdout. Prints errors with optional
        traceback if verbose/debug.

    """
    # Configure global logger
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    try:
        config = load_effective_config(
            source_path=Path(args.source),
            config_path=Path(args.config) if args.config else None,
            verbose=args.verbose,
            debug=args.debug,
        )
        options = build_options(args, config)
        result = deploy_app(options, logger=logger)
    except DeploymentError as err:
        print(f"Error: {err}")
        if err.reason:
            print(f"       {err.reason}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1
    except IotAppDeployError as err:
        print(f"Error: {err}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1

    # Display results
    print("=" * 70)
    print("DEPLOYMENT RESULTS")
    print("=" * 70)
    print(f"Project:           {result.project_name}")
    print(f"Template:          {result.template_name}")
    print(f"Target:            {result.target}")
    print(f"PackageFullName:   {result.package_full_name}")
    if result.saved_to is not None:
        print(f"Saved To:          {result.saved_to}")
    print(f"Status:            {result.status}")
    print("=" * 70)
    print()
    print("[SUCCESS] App deployed successfully!")

    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the iotappdeploy CLI.

    This function is registered as the 'iotappdeploy' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = cmd_deploy(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
