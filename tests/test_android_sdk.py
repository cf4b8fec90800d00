import os

import pytest

from droidbuild.android_sdk import AndroidNdk, AndroidSdk, resolve_android_ndk, resolve_android_sdk
from droidbuild.exceptions import BuildExecutionError


@pytest.fixture
def sdk_dir(tmp_path):
    sdk = tmp_path / "sdk"
    for platform in ["android-16", "android-30", "android-33", "android-TiramisuPrivacySandbox"]:
        (sdk / "platforms" / platform).mkdir(parents=True)
    for build_tools in ["30.0.3", "34.0.0", "9.0.0"]:
        (sdk / "build-tools" / build_tools).mkdir(parents=True)
    return sdk


def test_newest_platform_is_default(sdk_dir):
    assert AndroidSdk(str(sdk_dir)).platform == "33"


def test_platform_version_maps_to_api_level(sdk_dir):
    assert AndroidSdk(str(sdk_dir), "4.1").platform == "16"
    assert AndroidSdk(str(sdk_dir), "30").platform == "30"


def test_missing_platform_is_error(sdk_dir):
    with pytest.raises(BuildExecutionError, match="is not installed"):
        AndroidSdk(str(sdk_dir), "21")
    with pytest.raises(BuildExecutionError, match="Invalid Android platform"):
        AndroidSdk(str(sdk_dir), "cupcake")


def test_tools_come_from_newest_build_tools(sdk_dir):
    sdk = AndroidSdk(str(sdk_dir))

    assert sdk.get_aapt_path() == str(sdk_dir / "build-tools" / "34.0.0" / "aapt")
    assert sdk.get_adb_path() == str(sdk_dir / "platform-tools" / "adb")
    assert sdk.get_android_jar() == str(sdk_dir / "platforms" / "android-33" / "android.jar")
    with pytest.raises(BuildExecutionError, match="Unknown Android SDK tool"):
        sdk.get_tool_path("emulator-x")


def test_lint_path_prefers_existing_location(sdk_dir):
    (sdk_dir / "tools" / "bin").mkdir(parents=True)
    (sdk_dir / "tools" / "bin" / "lint").write_text("#!/bin/sh\n")

    assert AndroidSdk(str(sdk_dir)).get_lint_path() == str(sdk_dir / "tools" / "bin" / "lint")


def test_sdk_path_precedence(sdk_dir, tmp_path):
    other = tmp_path / "other-sdk"
    other.mkdir()
    environ = {"ANDROID_HOME": str(other)}

    assert resolve_android_sdk({"path": str(sdk_dir)}, str(other), environ=environ).sdk_path == str(sdk_dir)
    assert resolve_android_sdk({}, str(sdk_dir), environ=environ).sdk_path == str(sdk_dir)
    assert resolve_android_sdk(None, None, environ=environ).sdk_path == str(other)


def test_sdk_path_missing_everywhere():
    with pytest.raises(BuildExecutionError, match="No Android SDK path could be found"):
        resolve_android_sdk({}, None, environ={})


def test_ndk_property_wins_over_config(tmp_path):
    ndk = resolve_android_ndk({"path": "/from/config"}, str(tmp_path), environ={"ANDROID_NDK_HOME": "/env"})
    assert ndk.ndk_path == str(tmp_path)
    assert resolve_android_ndk({"path": "/from/config"}, environ={}).ndk_path == "/from/config"
    with pytest.raises(BuildExecutionError, match="No Android NDK path"):
        resolve_android_ndk(None, None, environ={})


def test_gdb_server_location():
    ndk = AndroidNdk("/ndk")

    assert ndk.get_gdb_server("armeabi-v7a") == os.path.join("/ndk", "prebuilt", "android-arm", "gdbserver",
                                                             "gdbserver")
    assert ndk.get_gdb_server("x86") == os.path.join("/ndk", "prebuilt", "android-x86", "gdbserver", "gdbserver")
