import os

ROOT_PATH = os.path.dirname(os.path.realpath(__file__))
TEMPLATE_FOLDER = "templates/"
TEMPLATE_PATH = os.path.join(ROOT_PATH, TEMPLATE_FOLDER)
PROGUARD_TEMPLATE_NAME = "proguard.cfg.j2"

ENV_ANDROID_HOME = "ANDROID_HOME"
ENV_ANDROID_NDK_HOME = "ANDROID_NDK_HOME"

DEFAULT_ADB_HOST = "127.0.0.1"
DEFAULT_ADB_PORT = 5037
ADB_TIMEOUT_S = 60
ADB_CONNECT_TRIALS = 10
ADB_CONNECT_WAIT_S = 0.05
ADB_DEVICE_LIST_POLL_S = 1

DEVICE_SELECTOR_EMULATOR = "emulator"
DEVICE_SELECTOR_USB = "usb"
EMULATOR_SERIAL_PREFIX = "emulator-"
AVD_NAME_PROPERTIES = ["ro.boot.qemu.avd_name", "ro.kernel.qemu.avd_name"]
MANUFACTURER_PROPERTY = "ro.product.manufacturer"
MODEL_PROPERTY = "ro.product.model"
DESCRIPTIVE_NAME_SEPARATOR = "_"

META_INF_PREFIX = "META-INF/"
COPY_BUFFER_SIZE = 4096
UNPACKED_EMBEDDED_JARS_DIR_NAME = "unpacked-embedded-jars"
DEDUP_LOCK_FILENAME = ".droidbuild-dedup.lock"

APK = "apk"
SUPPORTED_PACKAGING_TYPES = [APK]
EXCLUDED_DEPENDENCY_SCOPES = ["provided", "system", "import"]

CLASSES_DEX = "classes.dex"
CLASSES_ZIP = "classes.zip"
DEX_PREFIX = "classes"
DEX_SUFFIX = ".dex"
RESOURCE_PACKAGE_SUFFIX = ".ap_"
JAR_NAME_PATTERN = r"^.+\.jar$"
SIGNATURE_FILE_SUFFIXES = [".SF", ".RSA", ".DSA", ".EC"]
JAR_MANIFEST_PATH = "META-INF/MANIFEST.MF"
NATIVE_LIBRARY_SUFFIX = ".so"
GDBSERVER_FILENAME = "gdbserver"

SIGN_DEBUG_TRUE = "true"
SIGN_DEBUG_FALSE = "false"
SIGN_DEBUG_BOTH = "both"
SIGN_DEBUG_AUTO = "auto"
DEBUG_KEYSTORE_PATH = os.path.join(os.path.expanduser("~"), ".android", "debug.keystore")
DEBUG_KEYSTORE_PASSWORD = "android"
DEBUG_KEY_ALIAS = "androiddebugkey"
ZIPALIGN_ALIGNMENT = "4"

LINT_RESULTS_DIR_NAME = "lint-results"

# Platform version -> API level, for <sdk><platform> values given as versions.
PLATFORM_VERSION_API_LEVELS = {
    "1.1": "2", "1.5": "3", "1.6": "4", "2.0": "5", "2.01": "6", "2.1": "7",
    "2.2": "8", "2.3": "9", "2.3.3": "10", "3.0": "11", "3.1": "12", "3.2": "13",
    "4.0": "14", "4.0.3": "15", "4.1": "16", "4.2": "17", "4.3": "18", "4.4": "19",
    "4.4W": "20", "5.0": "21", "5.1": "22", "6.0": "23", "7.0": "24", "7.1": "25",
    "8.0": "26", "8.1": "27", "9": "28", "10": "29", "11": "30", "12": "31",
    "12L": "32", "13": "33", "14": "34", "15": "35",
}

BUILD_CONFIG_NAME = "BUILD_CONFIG"
DEFAULT_BUILD_CONFIG = {
    "device": None,
    "sdk": {"path": None, "platform": None},
    "ndk": {"path": None},
    "adb": {"host": DEFAULT_ADB_HOST, "port": DEFAULT_ADB_PORT, "timeout": ADB_TIMEOUT_S},
    "undeployBeforeDeploy": False,
    "extractDuplicates": False,
    "excludeJarResources": [],
    "metaInf": None,
    "sign": {"debug": SIGN_DEBUG_AUTO},
    "lint": {},
}
