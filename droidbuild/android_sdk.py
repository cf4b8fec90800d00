import logging
import os
import re

from droidbuild.common import is_blank
from droidbuild.config import ENV_ANDROID_HOME, ENV_ANDROID_NDK_HOME, PLATFORM_VERSION_API_LEVELS
from droidbuild.exceptions import BuildExecutionError

BUILD_TOOLS = ["aapt", "aapt2", "zipalign", "apksigner", "d8", "dx"]
PLATFORM_TOOLS = ["adb"]


def _version_key(name):
    return [int(part) if part.isdigit() else -1 for part in re.split(r"[.\-]", name)]


class AndroidSdk:
    """
    An Android SDK installation and the platform to build against.
    """

    def __init__(self, sdk_path, platform=None):
        self.sdk_path = os.path.abspath(sdk_path)
        if not os.path.isdir(self.sdk_path):
            raise BuildExecutionError(f"Android SDK path does not exist: {self.sdk_path}")
        self.platform = self._resolve_platform(platform)

    def _installed_api_levels(self):
        platforms_dir = os.path.join(self.sdk_path, "platforms")
        if not os.path.isdir(platforms_dir):
            return []
        levels = []
        for name in os.listdir(platforms_dir):
            match = re.match(r"^android-(\d+)$", name)
            if match:
                levels.append(int(match.group(1)))
        return sorted(levels)

    def _resolve_platform(self, platform):
        installed = self._installed_api_levels()
        if is_blank(platform):
            if not installed:
                logging.warning(f"No platforms installed in {self.sdk_path}")
                return None
            return str(installed[-1])
        api_level = str(platform).strip()
        if not api_level.isdigit():
            api_level = PLATFORM_VERSION_API_LEVELS.get(api_level)
            if api_level is None:
                raise BuildExecutionError(f"Invalid Android platform: {platform}")
        if installed and int(api_level) not in installed:
            raise BuildExecutionError(f"Android platform {platform} (API level {api_level}) is not installed "
                                      f"in {self.sdk_path}. Installed API levels: {installed}")
        return api_level

    def get_build_tools_dir(self):
        build_tools = os.path.join(self.sdk_path, "build-tools")
        if not os.path.isdir(build_tools):
            raise BuildExecutionError(f"No build-tools installed in {self.sdk_path}")
        versions = sorted(os.listdir(build_tools), key=_version_key)
        if not versions:
            raise BuildExecutionError(f"No build-tools installed in {self.sdk_path}")
        return os.path.join(build_tools, versions[-1])

    def get_tool_path(self, tool):
        """
        :param tool: str - tool name, e.g. "aapt" or "adb".
        :return: str - absolute path of the tool.
        """
        if tool in PLATFORM_TOOLS:
            return os.path.join(self.sdk_path, "platform-tools", tool)
        if tool in BUILD_TOOLS:
            return os.path.join(self.get_build_tools_dir(), tool)
        if tool == "lint":
            return self.get_lint_path()
        raise BuildExecutionError(f"Unknown Android SDK tool: {tool}")

    def get_aapt_path(self):
        return self.get_tool_path("aapt")

    def get_adb_path(self):
        return self.get_tool_path("adb")

    def get_zipalign_path(self):
        return self.get_tool_path("zipalign")

    def get_apksigner_path(self):
        return self.get_tool_path("apksigner")

    def get_lint_path(self):
        candidates = [os.path.join(self.sdk_path, "cmdline-tools", "latest", "bin", "lint"),
                      os.path.join(self.sdk_path, "tools", "bin", "lint"),
                      os.path.join(self.sdk_path, "tools", "lint")]
        for candidate in candidates:
            if os.path.exists(candidate):
                return candidate
        return candidates[0]

    def get_android_jar(self):
        if self.platform is None:
            raise BuildExecutionError(f"No Android platform available in {self.sdk_path}")
        return os.path.join(self.sdk_path, "platforms", f"android-{self.platform}", "android.jar")


class AndroidNdk:

    def __init__(self, ndk_path):
        self.ndk_path = os.path.abspath(ndk_path)

    def get_gdb_server(self, architecture):
        prebuilt = "arm" if architecture.startswith("armeabi") else architecture
        return os.path.join(self.ndk_path, "prebuilt", f"android-{prebuilt}", "gdbserver", "gdbserver")


def _get_env_or_throw(environ, name, message):
    value = environ.get(name)
    if is_blank(value):
        raise BuildExecutionError(message)
    return value


def resolve_android_sdk(sdk_config=None, sdk_path=None, sdk_platform=None, environ=None):
    """
    Chooses the Android SDK: <sdk><path> config, then the android.sdk.path property, then ANDROID_HOME.
    The platform comes from <sdk><platform>, then the android.sdk.platform property, else the newest one.

    :param sdk_config: dict - the "sdk" section of the build config.
    :param sdk_path: str - android.sdk.path property.
    :param sdk_platform: str - android.sdk.platform property.
    :param environ: mapping - environment, defaults to os.environ.
    :return: AndroidSdk
    """
    environ = os.environ if environ is None else environ
    sdk_config = sdk_config or {}
    chosen_path = sdk_config.get("path") or sdk_path
    if is_blank(chosen_path):
        chosen_path = _get_env_or_throw(
            environ, ENV_ANDROID_HOME,
            "No Android SDK path could be found. You may configure it in the build config using "
            "{\"sdk\": {\"path\": ...}} or on command-line using --sdk-path=... or by setting "
            f"environment variable {ENV_ANDROID_HOME}")
    chosen_platform = sdk_config.get("platform")
    if is_blank(chosen_platform):
        chosen_platform = sdk_platform
    logging.debug(f"Using Android SDK {chosen_path} with platform {chosen_platform}")
    return AndroidSdk(chosen_path, chosen_platform)


def resolve_android_ndk(ndk_config=None, ndk_path=None, environ=None):
    """
    Chooses the Android NDK: android.ndk.path property, then <ndk><path> config, then ANDROID_NDK_HOME.
    """
    environ = os.environ if environ is None else environ
    ndk_config = ndk_config or {}
    chosen_path = ndk_path or ndk_config.get("path")
    if is_blank(chosen_path):
        chosen_path = _get_env_or_throw(
            environ, ENV_ANDROID_NDK_HOME,
            "No Android NDK path could be found. You may configure it in the build config using "
            "{\"ndk\": {\"path\": ...}} or on command-line using --ndk-path=... or by setting "
            f"environment variable {ENV_ANDROID_NDK_HOME}")
    return AndroidNdk(chosen_path)
