"""Shared fixtures: in-memory stand-ins for vSphere managed objects."""

from types import SimpleNamespace
from typing import Any

import pytest
from pyVmomi import vim

from vcon.api.client import VSphereClient
from vcon.models.config import ProfileConfig


class FakeTask:
    """Task that reports ``running`` a few times, then a terminal state."""

    def __init__(self, result: Any = None, error: str | None = None, pending: int = 0) -> None:
        self.result = result
        self.error = error
        self._states = ["running"] * pending + ["error" if error else "success"]
        self.polls = 0

    @property
    def info(self) -> SimpleNamespace:
        self.polls += 1
        state = self._states.pop(0) if len(self._states) > 1 else self._states[0]
        error = SimpleNamespace(localizedMessage=self.error) if self.error else None
        return SimpleNamespace(key="task-1", state=state, result=self.result, error=error)


class FakeManagedObject:
    """Managed object whose ``*_Task`` methods are recorded.

    ``task_results`` maps a method name to the task's result; ``task_failures``
    maps it to a list of messages, one per call (None for success).
    """

    def __init__(self, moid: str = "vm-42", **attributes: Any) -> None:
        self._moId = moid
        self.calls: list[tuple[str, dict]] = []
        self.task_results: dict[str, Any] = {}
        self.task_failures: dict[str, list[str | None]] = {}
        for key, value in attributes.items():
            setattr(self, key, value)

    def __getattr__(self, name: str) -> Any:
        if not name.endswith("_Task"):
            raise AttributeError(name)

        def submit(*args: Any, **kwargs: Any) -> FakeTask:
            self.calls.append((name, kwargs))
            failures = self.task_failures.get(name)
            error = failures.pop(0) if failures else None
            return FakeTask(result=self.task_results.get(name), error=error)

        return submit

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_vm_ref(
    moid: str = "vm-42",
    power_state: str = "poweredOff",
    devices: list | None = None,
    networks: list | None = None,
    ip: str | None = None,
    guest_nics: list | None = None,
) -> FakeManagedObject:
    return FakeManagedObject(
        moid,
        runtime=SimpleNamespace(powerState=power_state),
        config=SimpleNamespace(hardware=SimpleNamespace(device=devices or [])),
        network=networks or [],
        guest=SimpleNamespace(ipAddress=ip, net=guest_nics or []),
        snapshot=None,
    )


def make_adapter(key: int, label: str, network_name: str, mac: str = "") -> Any:
    return vim.vm.device.VirtualVmxnet3(
        key=key,
        macAddress=mac or None,
        deviceInfo=vim.Description(label=label, summary=network_name),
        backing=vim.vm.device.VirtualEthernetCard.NetworkBackingInfo(deviceName=network_name),
    )


class FakeSearchIndex:
    def __init__(self, inventory: dict[str, Any]) -> None:
        self.inventory = inventory
        self.lookups: list[str] = []

    def FindByInventoryPath(self, path: str) -> Any:
        self.lookups.append(path)
        return self.inventory.get(path)


@pytest.fixture
def profile() -> ProfileConfig:
    return ProfileConfig(
        vsphere="vc.example.com",
        username="admin@vsphere.local",
        password="secret",
        datacenter="DC1",
        timeout=5,
    )


@pytest.fixture
def inventory() -> dict[str, Any]:
    return {}


@pytest.fixture
def client(profile: ProfileConfig, inventory: dict[str, Any]) -> VSphereClient:
    """Client bound to fake service content, without logging in."""
    client = VSphereClient(profile, poll_interval=0)
    content = SimpleNamespace(searchIndex=FakeSearchIndex(inventory), rootFolder=None)
    datacenter = SimpleNamespace(name="DC1", vmFolder=vim.Folder("group-v1"))
    client._bind(
        SimpleNamespace(_stub=None),
        content,
        datacenter,
        vim.Datastore("datastore-1"),
        "DC1",
    )
    return client
