import logging
import re
import time

import adbutils
from adbutils.errors import AdbError

from droidbuild.config import (ADB_CONNECT_TRIALS,
                               ADB_CONNECT_WAIT_S,
                               ADB_DEVICE_LIST_POLL_S,
                               ADB_TIMEOUT_S,
                               AVD_NAME_PROPERTIES,
                               DEFAULT_ADB_HOST,
                               DEFAULT_ADB_PORT,
                               DESCRIPTIVE_NAME_SEPARATOR,
                               EMULATOR_SERIAL_PREFIX,
                               MANUFACTURER_PROPERTY,
                               MODEL_PROPERTY)
from droidbuild.exceptions import BuildExecutionError

ONLINE_STATE = "device"


class Device:
    """
    Read-only view of a device attached to the Android Debug Bridge.

    The handle is the adbutils device object the work units talk to.
    """

    def __init__(self, serial, state=ONLINE_STATE, is_emulator=None, avd_name=None,
                 manufacturer=None, model=None, handle=None):
        self.serial = serial
        self.state = state
        if is_emulator is None:
            is_emulator = serial.startswith(EMULATOR_SERIAL_PREFIX)
        self.is_emulator = is_emulator
        self.avd_name = avd_name
        self.manufacturer = manufacturer
        self.model = model
        self.handle = handle

    @property
    def is_online(self):
        return self.state == ONLINE_STATE

    def __repr__(self):
        return f"Device({self.serial}, emulator={self.is_emulator}, avd={self.avd_name})"


def _get_property(handle, name):
    try:
        value = handle.getprop(name)
    except AdbError as e:
        logging.debug(f"Could not read property {name} from {handle.serial}: {e}")
        return None
    return value.strip() if value else None


def device_from_handle(handle):
    is_emulator = handle.serial.startswith(EMULATOR_SERIAL_PREFIX)
    avd_name = None
    if is_emulator:
        for property_name in AVD_NAME_PROPERTIES:
            avd_name = _get_property(handle, property_name)
            if avd_name:
                break
    return Device(handle.serial,
                  is_emulator=is_emulator,
                  avd_name=avd_name,
                  manufacturer=_get_property(handle, MANUFACTURER_PROPERTY),
                  model=_get_property(handle, MODEL_PROPERTY),
                  handle=handle)


def get_descriptive_name(device):
    """
    Builds a file name safe identifier of the device: serial, avd name, manufacturer and model.

    :param device: Device - the device to describe.
    :return: str - e.g. "emulator-5554_Pixel_6_API_33_Google_sdk_gphone64".
    """
    parts = [device.serial]
    for value in [device.avd_name, device.manufacturer, device.model]:
        if value and value.strip():
            parts.append(value.strip())
    return re.sub(r"[^A-Za-z0-9_.\-]", "_", DESCRIPTIVE_NAME_SEPARATOR.join(parts))


def get_device_log_line_prefix(device):
    return f"{get_descriptive_name(device)} :   "


class DeviceBridge:
    """
    Connection to the adb server. Created once by the top level command and handed to every
    component that needs device access; closing it ends its lifetime.
    """

    def __init__(self, host=DEFAULT_ADB_HOST, port=DEFAULT_ADB_PORT, client=None, timeout=ADB_TIMEOUT_S):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.client = client if client is not None else adbutils.AdbClient(host=host, port=port)
        self._connected = False

    def __enter__(self):
        self.connect()
        self.wait_for_initial_device_list(self.timeout)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self, trials=ADB_CONNECT_TRIALS, wait=ADB_CONNECT_WAIT_S):
        """
        Polls the adb server until it answers or the trials run out.

        :return: bool - True if the server answered.
        """
        while trials > 0:
            try:
                version = self.client.server_version()
                self._connected = True
                logging.debug(f"Connected to adb server {self.host}:{self.port} version {version}")
                break
            except (AdbError, OSError) as e:
                logging.debug(f"adb server {self.host}:{self.port} not reachable yet: {e}")
            time.sleep(wait)
            trials -= 1
        return self._connected

    def is_connected(self):
        return self._connected

    def has_initial_device_list(self):
        try:
            self.client.list()
        except (AdbError, OSError):
            return False
        return True

    def wait_for_initial_device_list(self, timeout=ADB_TIMEOUT_S):
        if self.has_initial_device_list():
            return True
        logging.info("Waiting for initial device list from the Android Debug Bridge")
        limit_time = time.monotonic() + timeout
        try:
            while not self.has_initial_device_list() and time.monotonic() < limit_time:
                time.sleep(ADB_DEVICE_LIST_POLL_S)
        except KeyboardInterrupt as e:
            raise BuildExecutionError("Interrupted waiting for initial device list from Android Debug Bridge") from e
        if not self.has_initial_device_list():
            logging.error("Did not receive initial device list from the Android Debug Bridge.")
            return False
        return True

    def get_devices(self):
        """
        :return: list - online devices as Device objects, in adb order.
        """
        try:
            handles = self.client.device_list()
        except AdbError as e:
            raise BuildExecutionError(f"Could not list devices from the Android Debug Bridge: {e}") from e
        return [device_from_handle(handle) for handle in handles]

    def close(self):
        self._connected = False
