import pytest
from adbutils.errors import AdbError

from conftest import FakeAdbClient, FakeDeviceHandle
from droidbuild.device_service import device_bridge
from droidbuild.device_service.device_bridge import (Device,
                                                     DeviceBridge,
                                                     device_from_handle,
                                                     get_descriptive_name,
                                                     get_device_log_line_prefix)
from droidbuild.exceptions import BuildExecutionError


def test_emulator_detected_from_serial():
    assert Device("emulator-5554").is_emulator
    assert not Device("R58M123").is_emulator
    assert Device("192.168.0.10:5555", is_emulator=True).is_emulator


def test_device_from_handle_reads_properties():
    handle = FakeDeviceHandle("emulator-5554", {
        "ro.kernel.qemu.avd_name": "Pixel_6_API_33",
        "ro.product.manufacturer": "Google",
        "ro.product.model": "sdk_gphone64_x86_64",
    })

    device = device_from_handle(handle)

    assert device.avd_name == "Pixel_6_API_33"
    assert device.manufacturer == "Google"
    assert device.model == "sdk_gphone64_x86_64"
    assert device.handle is handle


def test_property_errors_are_ignored():
    class BrokenHandle(FakeDeviceHandle):
        def getprop(self, name):
            raise AdbError("device offline")

    device = device_from_handle(BrokenHandle("emulator-5554"))

    assert device.avd_name is None
    assert device.model is None


def test_descriptive_name_is_file_name_safe():
    device = Device("emulator-5554", avd_name="Pixel 6", manufacturer="Google", model="sdk/gphone")

    assert get_descriptive_name(device) == "emulator-5554_Pixel_6_Google_sdk_gphone"
    assert get_device_log_line_prefix(device) == "emulator-5554_Pixel_6_Google_sdk_gphone :   "


def test_descriptive_name_skips_missing_parts():
    assert get_descriptive_name(Device("R58M123", model="SM-G991B")) == "R58M123_SM-G991B"


def test_context_manager_connects_and_closes():
    bridge = DeviceBridge(client=FakeAdbClient([FakeDeviceHandle("A")]))

    with bridge as connected:
        assert connected.is_connected()
        assert [device.serial for device in connected.get_devices()] == ["A"]
    assert not bridge.is_connected()


def test_connect_gives_up_after_trials(monkeypatch):
    monkeypatch.setattr(device_bridge.time, "sleep", lambda seconds: None)
    client = FakeAdbClient(reachable=False)

    assert not DeviceBridge(client=client).connect(trials=3, wait=0)


def test_wait_for_initial_device_list_times_out(monkeypatch):
    monkeypatch.setattr(device_bridge.time, "sleep", lambda seconds: None)
    bridge = DeviceBridge(client=FakeAdbClient(reachable=False))

    assert not bridge.wait_for_initial_device_list(timeout=0)


def test_get_devices_error_is_execution_error():
    class FailingClient(FakeAdbClient):
        def device_list(self):
            raise AdbError("protocol fault")

    with pytest.raises(BuildExecutionError, match="Could not list devices"):
        DeviceBridge(client=FailingClient()).get_devices()
