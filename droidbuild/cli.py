import argparse
import logging
import os
import sys

from droidbuild.android_sdk import resolve_android_sdk
from droidbuild.archive_dedup import extract_duplicates
from droidbuild.common import load_build_config
from droidbuild.device_service.deploy_apps import deploy_apk, undeploy_apk, undeploy_package
from droidbuild.device_service.device_bridge import DeviceBridge, get_descriptive_name
from droidbuild.exceptions import BuildError
from droidbuild.lint import LintOptions, run_lint
from droidbuild.setup_logger import setup_logger


def parse_arguments(argv=None):
    """
    Parse the command line arguments.
    """
    parser = argparse.ArgumentParser(prog='droidbuild',
                                     description="A cli tool to package, deduplicate, deploy and lint Android apps.")
    parser.add_argument("-c", "--config", type=str, default=None,
                        help='Path to the JSON build configuration.')
    parser.add_argument("-d", "--device", type=str, default=None,
                        help='Device selector: "emulator", "usb", a serial number or an avd name. '
                             'All attached devices when not set.')
    parser.add_argument("-v", "--verbose", action='store_true', default=False,
                        help='Enable debug logging.')
    parser.add_argument("--sdk-path", type=str, default=None, help='Path to the Android SDK.')
    parser.add_argument("--sdk-platform", type=str, default=None, help='Android platform or API level.')
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("devices", help="List the devices attached to the Android Debug Bridge.")

    deploy_parser = subparsers.add_parser("deploy", help="Install an apk on the selected devices.")
    deploy_parser.add_argument("apk", type=str)
    deploy_parser.add_argument("--undeploy-first", action='store_true', default=None,
                               help='Uninstall the package before installing it.')

    undeploy_parser = subparsers.add_parser("undeploy", help="Uninstall an app from the selected devices.")
    undeploy_target = undeploy_parser.add_mutually_exclusive_group(required=True)
    undeploy_target.add_argument("apk", type=str, nargs="?", default=None)
    undeploy_target.add_argument("-p", "--package", type=str, default=None)

    dedup_parser = subparsers.add_parser("dedup", help="Remove entries duplicated across archives.")
    dedup_parser.add_argument("archives", type=str, nargs="+")
    dedup_parser.add_argument("-o", "--output-dir", type=str, default=None,
                              help='Write rewritten archives there instead of rewriting them in place.')

    lint_parser = subparsers.add_parser("lint", help="Run Android Lint on a project.")
    lint_parser.add_argument("project_dir", type=str)
    lint_parser.add_argument("--build-dir", type=str, default=None)
    return parser.parse_args(argv)


def _aapt_path(args, build_config):
    sdk = resolve_android_sdk(build_config["sdk"], args.sdk_path, args.sdk_platform)
    return sdk.get_aapt_path()


def _create_bridge(build_config):
    adb_config = build_config["adb"]
    return DeviceBridge(adb_config["host"], adb_config["port"], timeout=adb_config["timeout"])


def run_command(args, build_config):
    device_selector = args.device or build_config["device"]
    if args.command == "devices":
        with _create_bridge(build_config) as bridge:
            for device in bridge.get_devices():
                device_type = "Emulator" if device.is_emulator else "Device"
                print(f"{device_type}\t{get_descriptive_name(device)}")
    elif args.command == "deploy":
        undeploy_first = build_config["undeployBeforeDeploy"] if args.undeploy_first is None else args.undeploy_first
        aapt_path = _aapt_path(args, build_config) if undeploy_first else None
        with _create_bridge(build_config) as bridge:
            deploy_apk(bridge, args.apk, device_selector, undeploy_first, aapt_path)
    elif args.command == "undeploy":
        with _create_bridge(build_config) as bridge:
            if args.package:
                undeploy_package(bridge, args.package, device_selector)
            else:
                undeploy_apk(bridge, args.apk, device_selector, _aapt_path(args, build_config))
    elif args.command == "dedup":
        for archive in extract_duplicates(args.archives, args.output_dir):
            print(archive)
    elif args.command == "lint":
        sdk = resolve_android_sdk(build_config["sdk"], args.sdk_path, args.sdk_platform)
        options = LintOptions.from_config(build_config["lint"])
        run_lint(sdk.get_lint_path(), options, args.project_dir, build_directory=args.build_dir)


def main(argv=None):
    args = parse_arguments(argv)
    if args.verbose or os.environ.get("DROIDBUILD_DEBUG") == "True":
        setup_logger(logging.DEBUG)
    else:
        setup_logger()
    logging.info(f"=======================DROIDBUILD {args.command.upper()}=======================")
    try:
        build_config = load_build_config(args.config)
        run_command(args, build_config)
    except BuildError as e:
        logging.error(f"{type(e).__name__}: {e}")
        return 1
    logging.info(f"=======================DROIDBUILD {args.command.upper()} EXIT=======================")
    return 0


if __name__ == "__main__":
    sys.exit(main())
