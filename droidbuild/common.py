import copy
import glob
import logging
import os

from droidbuild.ConfigManager import ConfigManager
from droidbuild.config import (APK,
                               BUILD_CONFIG_NAME,
                               DEFAULT_BUILD_CONFIG,
                               EXCLUDED_DEPENDENCY_SCOPES)
from droidbuild.exceptions import BuildExecutionError


class Artifact:
    """
    A dependency that was already resolved by the host build.
    """

    def __init__(self, group_id, artifact_id, version, type=None, scope="compile", classifier=None, file=None):
        self.group_id = group_id
        self.artifact_id = artifact_id
        self.version = version
        self.type = type or "jar"
        self.scope = scope
        self.classifier = classifier
        self.file = file

    @property
    def id(self):
        parts = [self.group_id, self.artifact_id, self.type]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.version)
        return ":".join(parts)

    def __eq__(self, other):
        return isinstance(other, Artifact) and self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Artifact({self.id})"


def is_blank(value):
    return value is None or str(value).strip() == ""


def filter_out_irrelevant_artifacts(artifacts):
    """
    Drops artifacts that must not end up inside the apk: empty slots, excluded scopes and apk dependencies.

    :param artifacts: iterable of Artifact.
    :return: list - the remaining artifacts in their original order, without repetitions.
    """
    results = []
    for artifact in artifacts:
        if artifact is None:
            continue
        if artifact.scope in EXCLUDED_DEPENDENCY_SCOPES:
            continue
        if artifact.type.lower() == APK:
            continue
        if artifact not in results:
            results.append(artifact)
    return results


def resolve_artifact_to_file(artifact):
    """
    Returns the file of a resolved artifact.

    :param artifact: Artifact - the artifact to resolve.
    :return: str - path of the artifact file, never None.
    """
    if artifact.file is None or not os.path.exists(artifact.file):
        raise BuildExecutionError(f"Could not resolve artifact {artifact.id}. Please install it to the local "
                                  f"repository or deploy it to a remote repository.")
    return artifact.file


def get_library_unpack_directory(unpacked_libs_directory, library_artifact):
    return os.path.join(os.path.abspath(unpacked_libs_directory), library_artifact.id.replace(":", "_"))


def find_files_in_directory(base_directory, includes):
    """
    Finds files below a directory.

    :param base_directory: str - directory to search.
    :param includes: list - glob patterns such as "**/*.aidl".
    :return: list - sorted paths relative to base_directory. Empty if base_directory does not exist.
    """
    if not os.path.isdir(base_directory):
        return []
    found = set()
    for pattern in includes:
        for path in glob.glob(os.path.join(base_directory, pattern), recursive=True):
            if os.path.isfile(path):
                found.add(os.path.relpath(path, base_directory))
    return sorted(found)


def get_resource_overlay_directories(resource_overlay_directories, resource_overlay_directory):
    if not resource_overlay_directories:
        return [resource_overlay_directory]
    return list(resource_overlay_directories)


def merge_config(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_build_config(config_path=None):
    """
    Loads the JSON build configuration and merges it over the defaults.

    :param config_path: str - optional path of the configuration file.
    :return: dict - the effective build configuration.
    """
    overrides = {}
    if config_path:
        try:
            ConfigManager.load_config(BUILD_CONFIG_NAME, config_path)
        except (OSError, ValueError) as e:
            raise BuildExecutionError(f"Could not load build config {config_path}: {e}") from e
        overrides = ConfigManager.get_config(BUILD_CONFIG_NAME) or {}
        logging.info(f"Loaded build config from {config_path}. Keys: {list(overrides.keys())}")
    build_config = merge_config(DEFAULT_BUILD_CONFIG, overrides)
    ConfigManager.set_config(BUILD_CONFIG_NAME, build_config)
    return build_config
