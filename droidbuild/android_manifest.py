import logging
import os
import xml.etree.ElementTree as ElementTree

from jinja2 import Environment, FileSystemLoader

from droidbuild.config import PROGUARD_TEMPLATE_NAME, TEMPLATE_PATH
from droidbuild.exceptions import BuildExecutionError

ANDROID_NAMESPACE = "http://schemas.android.com/apk/res/android"
ANDROID_NAME = f"{{{ANDROID_NAMESPACE}}}name"
COMPONENT_TAGS = ["activity", "activity-alias", "service", "receiver", "provider"]


def _parse_manifest(android_manifest_file):
    try:
        return ElementTree.parse(android_manifest_file).getroot()
    except (OSError, ElementTree.ParseError) as e:
        raise BuildExecutionError(f"Error while trying to read AndroidManifest.xml file "
                                  f"{android_manifest_file}: {e}") from e


def extract_package_name(android_manifest_file):
    """
    :param android_manifest_file: str - path to AndroidManifest.xml.
    :return: str - value of manifest/@package or None.
    """
    root = _parse_manifest(android_manifest_file)
    return root.get("package")


def extract_instrumentation_runner(android_manifest_file):
    """
    Attempts to find the instrumentation test runner declared in AndroidManifest.xml.

    :return: str - the runner class or None if no instrumentation is declared.
    """
    root = _parse_manifest(android_manifest_file)
    instrumentation = root.find(".//instrumentation")
    if instrumentation is None:
        return None
    return instrumentation.get(ANDROID_NAME)


def _qualify_class_name(package_name, class_name):
    if class_name.startswith("."):
        return f"{package_name}{class_name}"
    if "." not in class_name and package_name:
        return f"{package_name}.{class_name}"
    return class_name


def extract_components(android_manifest_file):
    """
    :return: dict - component tag -> fully qualified class names declared in the application element.
    """
    root = _parse_manifest(android_manifest_file)
    package_name = root.get("package") or ""
    components = {tag: [] for tag in COMPONENT_TAGS}
    application = root.find("application")
    if application is None:
        return components
    application_name = application.get(ANDROID_NAME)
    if application_name:
        components["application"] = [_qualify_class_name(package_name, application_name)]
    for tag in COMPONENT_TAGS:
        for element in application.findall(tag):
            name = element.get(ANDROID_NAME)
            if name:
                components[tag].append(_qualify_class_name(package_name, name))
    return components


def write_proguard_config(android_manifest_file, proguard_file):
    """
    Writes a ProGuard configuration that keeps every component declared in the manifest.

    :param android_manifest_file: str - path to AndroidManifest.xml.
    :param proguard_file: str - output path.
    """
    components = extract_components(android_manifest_file)
    environment = Environment(loader=FileSystemLoader(TEMPLATE_PATH), keep_trailing_newline=True)
    template = environment.get_template(PROGUARD_TEMPLATE_NAME)
    rendered_template = template.render(manifest=os.path.abspath(android_manifest_file),
                                        components=components)
    os.makedirs(os.path.dirname(os.path.abspath(proguard_file)), exist_ok=True)
    with open(proguard_file, 'w') as file:
        file.write(rendered_template)
    logging.info(f"Wrote ProGuard configuration for {sum(len(v) for v in components.values())} "
                 f"manifest components to {proguard_file}")
    return proguard_file
