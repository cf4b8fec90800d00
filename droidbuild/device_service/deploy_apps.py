import logging
import os
import re

from adbutils.errors import AdbError, AdbInstallError

from droidbuild.common import filter_out_irrelevant_artifacts, resolve_artifact_to_file
from droidbuild.config import APK, EXCLUDED_DEPENDENCY_SCOPES, SUPPORTED_PACKAGING_TYPES
from droidbuild.device_service.device_bridge import get_descriptive_name, get_device_log_line_prefix
from droidbuild.device_service.device_fanout import run_on_devices
from droidbuild.exceptions import BuildExecutionError
from droidbuild.shell_command import execute_command

UNINSTALL_SUCCESS_MARKER = "Success"


def extract_package_name_from_xml_tree(xml_tree):
    """
    Parses the output of "aapt dump xmltree <apk> AndroidManifest.xml".

    :param xml_tree: str - aapt output.
    :return: str - package attribute of the first manifest element.
    """
    manifest_match = re.search(r"^\s*E: manifest", xml_tree, re.MULTILINE)
    if manifest_match is None:
        raise BuildExecutionError("No manifest element found in aapt xmltree output")
    package_match = re.search(r'A: package="([^"]*)"', xml_tree[manifest_match.end():])
    if package_match is None:
        raise BuildExecutionError("No package attribute found on the manifest element")
    return package_match.group(1)


def extract_package_name_from_apk(apk_file, aapt_path):
    command = [aapt_path, "dump", "xmltree", apk_file, "AndroidManifest.xml"]
    success, log_message = execute_command(command)
    if not success:
        raise BuildExecutionError(f"Error while trying to figure out package name from inside apk file "
                                  f"{apk_file}: {log_message}")
    return extract_package_name_from_xml_tree(log_message)


def undeploy_package(bridge, package_name, device_selector=None):
    """
    Uninstalls a package from every selected device.

    :param bridge: DeviceBridge - connected bridge handle.
    :param package_name: str - package to remove.
    :param device_selector: str - android.device value.
    :return: bool - whether the last uninstall succeeded, True if no uninstall ran.
    """
    results = []

    def uninstall(device):
        prefix = get_device_log_line_prefix(device)
        try:
            output = device.handle.uninstall(package_name)
        except AdbError as e:
            raise BuildExecutionError(f"{prefix}Uninstall of {package_name} failed.") from e
        succeeded = output is None or UNINSTALL_SUCCESS_MARKER in str(output)
        results.append(succeeded)
        if succeeded:
            logging.info(f"{prefix}Successfully uninstalled {package_name} from {get_descriptive_name(device)}")
        else:
            logging.error(f"{prefix}Uninstall of {package_name} failed: {output}")

    run_on_devices(bridge, device_selector, uninstall)
    return results[-1] if results else True


def undeploy_apk(bridge, apk_file, device_selector=None, aapt_path="aapt"):
    package_name = extract_package_name_from_apk(apk_file, aapt_path)
    return undeploy_package(bridge, package_name, device_selector)


def deploy_apk(bridge, apk_file, device_selector=None, undeploy_before_deploy=False, aapt_path="aapt"):
    """
    Installs an apk on every selected device, replacing an existing install.

    :param bridge: DeviceBridge - connected bridge handle.
    :param apk_file: str - apk to install.
    :param device_selector: str - android.device value.
    :param undeploy_before_deploy: bool - uninstall the package first.
    :param aapt_path: str - aapt used to read the package name when undeploying first.
    """
    if not os.path.isfile(apk_file):
        raise BuildExecutionError(f"Apk file {apk_file} does not exist")
    if undeploy_before_deploy:
        undeploy_apk(bridge, apk_file, device_selector, aapt_path)

    def install(device):
        prefix = get_device_log_line_prefix(device)
        try:
            device.handle.install(apk_file, nolaunch=True)
        except (AdbInstallError, AdbError) as e:
            raise BuildExecutionError(f"{prefix}Install of {apk_file} failed.") from e
        logging.info(f"{prefix}Successfully installed {apk_file} to {get_descriptive_name(device)}")

    run_on_devices(bridge, device_selector, install)


def deploy_dependencies(bridge, artifacts, device_selector=None, undeploy_before_deploy=False, aapt_path="aapt"):
    """
    Deploys every direct dependency of type apk.

    :param artifacts: list - Artifact objects of the project.
    """
    deployed = []
    for artifact in artifacts:
        if artifact is None or artifact.type != APK or artifact.scope in EXCLUDED_DEPENDENCY_SCOPES:
            continue
        apk_file = resolve_artifact_to_file(artifact)
        deploy_apk(bridge, apk_file, device_selector, undeploy_before_deploy, aapt_path)
        deployed.append(apk_file)
    logging.debug(f"Deployed {len(deployed)} apk dependencies, "
                  f"{len(filter_out_irrelevant_artifacts(artifacts))} other dependencies ignored")
    return deployed


def deploy_built_apk(bridge, build_directory, final_name, packaging, device_selector=None,
                     undeploy_before_deploy=False, aapt_path="aapt"):
    if packaging not in SUPPORTED_PACKAGING_TYPES:
        logging.info(f"Skipping deployment on {packaging}")
        return None
    apk_file = os.path.join(build_directory, f"{final_name}.{APK}")
    deploy_apk(bridge, apk_file, device_selector, undeploy_before_deploy, aapt_path)
    return apk_file
