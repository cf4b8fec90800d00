import threading
import zipfile

import pytest

from droidbuild.ConfigManager import ConfigManager
from droidbuild.device_service.device_bridge import DeviceBridge


class FakeDeviceHandle:
    """Stands in for an adbutils device."""

    def __init__(self, serial, properties=None, install_error=None, uninstall_output="Success"):
        self.serial = serial
        self.properties = properties or {}
        self.install_error = install_error
        self.uninstall_output = uninstall_output
        self.installed = []
        self.uninstalled = []
        self._lock = threading.Lock()

    def getprop(self, name):
        return self.properties.get(name, "")

    def install(self, path, nolaunch=False):
        if self.install_error is not None:
            raise self.install_error
        with self._lock:
            self.installed.append(path)

    def uninstall(self, package_name):
        with self._lock:
            self.uninstalled.append(package_name)
        return self.uninstall_output


class FakeAdbClient:

    def __init__(self, handles=None, reachable=True):
        self.handles = list(handles or [])
        self.reachable = reachable

    def server_version(self):
        if not self.reachable:
            raise OSError("Connection refused")
        return 41

    def list(self):
        if not self.reachable:
            raise OSError("Connection refused")
        return [(handle.serial, "device") for handle in self.handles]

    def device_list(self):
        return list(self.handles)


@pytest.fixture
def make_bridge():
    def _make(*handles):
        bridge = DeviceBridge(client=FakeAdbClient(handles))
        bridge.connect(trials=1, wait=0)
        return bridge
    return _make


@pytest.fixture
def make_archive(tmp_path):
    def _make(name, entries, compression=zipfile.ZIP_DEFLATED):
        path = tmp_path / name
        with zipfile.ZipFile(path, "w", compression=compression) as zip_ref:
            for entry_name, data in entries.items():
                zip_ref.writestr(entry_name, data)
        return str(path)
    return _make


@pytest.fixture(autouse=True)
def clear_configs():
    yield
    ConfigManager.clear_all_configs()
