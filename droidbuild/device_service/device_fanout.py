import logging
from concurrent.futures import ThreadPoolExecutor, wait

from droidbuild.common import is_blank
from droidbuild.config import DEVICE_SELECTOR_EMULATOR, DEVICE_SELECTOR_USB
from droidbuild.device_service.device_bridge import get_descriptive_name, get_device_log_line_prefix
from droidbuild.exceptions import (BuildExecutionError,
                                   BuildFailureError,
                                   NoDeviceMatchedError,
                                   NoDevicesConnectedError)


class DeviceOutcome:
    """
    Result slot of one device task. Written once by its own task, read after the join.
    """

    def __init__(self, index, device, error=None):
        self.index = index
        self.device = device
        self.error = error

    @property
    def succeeded(self):
        return self.error is None


def should_run_on_device(device_selector, device):
    """
    Determines if a device matches the android.device selector.

    :param device_selector: str - "emulator", "usb", a serial number or an avd name.
    :param device: Device - the device to check.
    :return: bool - True if the work unit should run on the device.
    """
    if device_selector == DEVICE_SELECTOR_EMULATOR and device.is_emulator:
        return True
    if device_selector == DEVICE_SELECTOR_USB and not device.is_emulator:
        return True
    if device.is_emulator:
        selector = device_selector.lower()
        return selector == (device.avd_name or "").lower() or selector == device.serial.lower()
    return device_selector == device.serial


def _run_work_unit(work_unit, outcome):
    device = outcome.device
    try:
        work_unit(device)
    except (BuildExecutionError, BuildFailureError) as e:
        outcome.error = e
    except Exception as e:
        outcome.error = BuildExecutionError(f"{get_device_log_line_prefix(device)}Unexpected error: {e}")
        outcome.error.__cause__ = e
    return outcome


def execute_on_devices(devices, work_unit):
    """
    Runs the work unit on every device concurrently, one thread per device, and waits for all of them.

    :param devices: list - devices in start order.
    :param work_unit: callable - receives one Device.
    :return: list - DeviceOutcome per device, in start order.
    """
    outcomes = [DeviceOutcome(index, device) for index, device in enumerate(devices)]
    if not outcomes:
        return outcomes
    with ThreadPoolExecutor(max_workers=len(outcomes), thread_name_prefix="device") as executor:
        futures = [executor.submit(_run_work_unit, work_unit, outcome) for outcome in outcomes]
        try:
            wait(futures)
        except KeyboardInterrupt as e:
            raise BuildExecutionError(f"Interrupted while waiting for {len(futures)} device threads") from e
    return outcomes


def raise_first_error(outcomes):
    """
    Raises the first execution error in start order, else the first failure error.
    Errors of the remaining devices are dropped.
    """
    failed = [outcome for outcome in outcomes if not outcome.succeeded]
    for outcome in failed:
        if isinstance(outcome.error, BuildExecutionError):
            _log_dropped_errors(failed, outcome)
            raise outcome.error
    for outcome in failed:
        if isinstance(outcome.error, BuildFailureError):
            _log_dropped_errors(failed, outcome)
            raise outcome.error


def _log_dropped_errors(failed, surfaced):
    for outcome in failed:
        if outcome is not surfaced:
            logging.debug(f"Not reported error of {get_descriptive_name(outcome.device)}: {outcome.error}")


def run_on_devices(bridge, device_selector, work_unit):
    """
    Performs the work unit on all devices selected by device_selector.

    :param bridge: DeviceBridge - connected bridge handle.
    :param device_selector: str - android.device value, blank for all devices.
    :param work_unit: callable - receives one Device, may raise BuildExecutionError or BuildFailureError.
    """
    if not bridge.is_connected():
        raise BuildExecutionError("Android Debug Bridge is not connected.")

    devices = bridge.get_devices()
    logging.info(f"Found {len(devices)} devices connected with the Android Debug Bridge")
    if not devices:
        raise NoDevicesConnectedError("No online devices attached.")

    run_on_all_devices = is_blank(device_selector)
    if run_on_all_devices:
        logging.info("android.device parameter not set, using all attached devices")
    else:
        logging.info(f"android.device parameter set to {device_selector}")

    selected = []
    for device in devices:
        if run_on_all_devices:
            device_type = "Emulator" if device.is_emulator else "Device"
            logging.info(f"{device_type} {get_descriptive_name(device)} found.")
        if run_on_all_devices or should_run_on_device(device_selector, device):
            selected.append(device)

    outcomes = execute_on_devices(selected, work_unit)
    raise_first_error(outcomes)

    if not run_on_all_devices and not selected:
        raise NoDeviceMatchedError(f"No device found for android.device={device_selector}")
