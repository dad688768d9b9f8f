"""Tests for the VM resolver and lifecycle operations."""

import asyncio
import time
from types import SimpleNamespace

import pytest
from pyVmomi import vim, vmodl

from vcon.api import auth, devices
from vcon.api.client import VSphereClient
from vcon.api.exceptions import (
    ConnectionFailure,
    DeadlineExceeded,
    NotFoundError,
    PreconditionFailed,
    RemoteTaskFailure,
)
from vcon.models.vm import PowerState, VirtualMachine, VirtualMachineConfiguration

from .conftest import FakeManagedObject, make_adapter, make_vm_ref


class TestConnect:
    def test_login_failure_is_connection_failure(self, profile, monkeypatch):
        def login(password):
            raise OSError("connection refused")

        client = VSphereClient(profile)
        monkeypatch.setattr(client.auth_handler, "login", login)

        with pytest.raises(ConnectionFailure) as exc_info:
            asyncio.run(client.connect())
        assert "connection refused" in str(exc_info.value)
        assert exc_info.value.exit_code == 1

    def test_timeout_is_connection_failure(self, profile, monkeypatch):
        import time

        client = VSphereClient(profile.model_copy(update={"timeout": 1}))
        monkeypatch.setattr(client.auth_handler, "login", lambda password: time.sleep(1.5))

        with pytest.raises(ConnectionFailure) as exc_info:
            asyncio.run(client.connect())
        assert str(exc_info.value) == "Timeout while attempting to establish connection to vSphere"

    def test_missing_password(self, profile):
        client = VSphereClient(profile.model_copy(update={"password": None}))

        with pytest.raises(ConnectionFailure, match="Missing username or password"):
            asyncio.run(client.connect())


class TestAuthHandler:
    def test_socket_timeout_follows_profile(self, profile, monkeypatch):
        seen = {}
        monkeypatch.setattr(auth, "SmartConnect", lambda **kwargs: seen.update(kwargs) or "si")

        client = VSphereClient(profile)

        assert client.auth_handler.login("secret") == "si"
        assert seen["httpConnectionTimeout"] == 5
        assert seen["disableSslCertValidation"] is True


class TestClose:
    @pytest.fixture(autouse=True)
    def already_connected(self, client, monkeypatch):
        async def connect():
            return None

        monkeypatch.setattr(client, "connect", connect)

    def test_logs_out_on_exit(self, client, monkeypatch):
        sessions = []
        si = client._service_instance
        monkeypatch.setattr(client.auth_handler, "logout", sessions.append)

        async def run():
            async with client:
                pass

        asyncio.run(run())

        assert sessions == [si]
        assert client._service_instance is None

    def test_slow_logout_is_bounded(self, client, monkeypatch):
        monkeypatch.setattr(client.auth_handler, "logout", lambda si: time.sleep(1.5))
        client.timeout = 0.2

        async def run():
            started = time.monotonic()
            async with client:
                pass
            return time.monotonic() - started

        assert asyncio.run(run()) < 1.0

    def test_timeout_is_reported_without_waiting_for_logout(self, client, monkeypatch):
        sessions = []

        def logout(si):
            sessions.append(si)
            time.sleep(3)

        monkeypatch.setattr(client.auth_handler, "logout", logout)
        monkeypatch.setattr(
            client._content.searchIndex, "FindByInventoryPath", lambda path: time.sleep(1.5)
        )
        client.timeout = 1

        async def run():
            started = time.monotonic()
            with pytest.raises(DeadlineExceeded, match="Timeout while finding VM"):
                async with client:
                    await client.find_vm("Folder/VM1")
            return time.monotonic() - started

        assert asyncio.run(run()) < 1.4
        assert sessions == []


class TestFindVM:
    def test_by_path(self, client, inventory):
        ref = vim.VirtualMachine("vm-42")
        inventory["/DC1/vm/Folder/VM1"] = ref

        vm = asyncio.run(client.find_vm("Folder/VM1"))

        assert vm.ref is ref
        assert vm.properties is None
        assert client._content.searchIndex.lookups == ["/DC1/vm/Folder/VM1"]

    def test_by_reference_makes_no_lookup(self, client):
        vm = asyncio.run(client.find_vm("vm-139", True))

        assert isinstance(vm.ref, vim.VirtualMachine)
        assert vm.ref_value == "vm-139"
        assert client._content.searchIndex.lookups == []

    def test_not_found(self, client):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(client.find_vm("Folder/Missing"))
        assert exc_info.value.exit_code == 2
        assert "Folder/Missing" in str(exc_info.value)

    def test_non_vm_at_path_is_not_found(self, client, inventory):
        inventory["/DC1/vm/Folder"] = vim.Folder("group-v5")

        with pytest.raises(NotFoundError):
            asyncio.run(client.find_vm("Folder"))

    def test_fetches_requested_properties_once(self, client, inventory, monkeypatch):
        inventory["/DC1/vm/VM1"] = vim.VirtualMachine("vm-42")
        requests = []

        def retrieve(obj, paths):
            requests.append(paths)
            return {"network": ["net"], "summary": "summary"}

        monkeypatch.setattr(client, "_retrieve_properties", retrieve)

        vm = asyncio.run(client.find_vm("VM1", False, "network", "summary"))

        assert requests == [["network", "summary"]]
        assert vm.prop("network") == ["net"]

    def test_bad_reference_surfaces_as_not_found(self, client, monkeypatch):
        def retrieve(obj, paths):
            raise vmodl.fault.ManagedObjectNotFound(msg="The object has already been deleted")

        monkeypatch.setattr(client, "_retrieve_properties", retrieve)

        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(client.find_vm("vm-999", True, "network"))
        assert exc_info.value.exit_code == 2


class TestPower:
    def test_power_state(self, client):
        vm = VirtualMachine(ref=make_vm_ref(power_state="suspended"))
        assert asyncio.run(client.get_power_state(vm)) == PowerState.SUSPENDED

    def test_ensure_on_waits_for_ip(self, client):
        ref = make_vm_ref(ip="10.0.0.5")
        asyncio.run(client.ensure_on(VirtualMachine(ref=ref)))
        assert ref.call_names == ["PowerOnVM_Task"]

    def test_ensure_off_is_unconditional(self, client):
        ref = make_vm_ref(power_state="poweredOff")
        asyncio.run(client.ensure_off(VirtualMachine(ref=ref)))
        assert ref.call_names == ["PowerOffVM_Task"]

    def test_suspend(self, client):
        ref = make_vm_ref(power_state="poweredOn")
        asyncio.run(client.suspend(VirtualMachine(ref=ref)))
        assert ref.call_names == ["SuspendVM_Task"]

    def test_task_failure_is_wrapped(self, client):
        ref = make_vm_ref()
        ref.task_failures["PowerOffVM_Task"] = ["The attempted operation cannot be performed"]

        with pytest.raises(RemoteTaskFailure) as exc_info:
            asyncio.run(client.ensure_off(VirtualMachine(ref=ref)))
        assert str(exc_info.value) == (
            "Error while powering off VM: The attempted operation cannot be performed"
        )


class TestDestroy:
    def test_running_vm_is_refused(self, client):
        ref = make_vm_ref(power_state="poweredOn")

        with pytest.raises(PreconditionFailed) as exc_info:
            asyncio.run(client.destroy(VirtualMachine(ref=ref)))
        assert ref.calls == []
        assert str(exc_info.value).startswith("Error while destroying VM:")

    def test_powered_off_vm_is_destroyed(self, client):
        ref = make_vm_ref(power_state="poweredOff")
        asyncio.run(client.destroy(VirtualMachine(ref=ref)))
        assert ref.call_names == ["Destroy_Task"]


class TestConfigure:
    def test_empty_patch_makes_no_calls(self, client):
        ref = make_vm_ref()
        result = asyncio.run(client.configure(VirtualMachine(ref=ref), VirtualMachineConfiguration()))
        assert result is None
        assert ref.calls == []

    def test_cpu_and_memory_in_one_task(self, client):
        ref = make_vm_ref()
        patch = VirtualMachineConfiguration(cpus=4, memory=8192)

        result = asyncio.run(client.configure(VirtualMachine(ref=ref), patch))

        assert result is None
        assert ref.call_names == ["ReconfigVM_Task"]
        spec = ref.calls[0][1]["spec"]
        assert (spec.numCPUs, spec.memoryMB) == (4, 8192)

    def test_memory_only_leaves_cpus_unset(self, client):
        ref = make_vm_ref()
        asyncio.run(client.configure(VirtualMachine(ref=ref), VirtualMachineConfiguration(memory=2048)))
        spec = ref.calls[0][1]["spec"]
        assert spec.numCPUs is None
        assert spec.memoryMB == 2048

    def test_current_network_makes_no_edits(self, client, monkeypatch):
        monkeypatch.setattr(devices, "_network_name", lambda network: "VM Network")
        ref = make_vm_ref(devices=[make_adapter(4000, "Network adapter 1", "VM Network")])
        vm = VirtualMachine(ref=ref, properties={"network": [vim.Network("network-1")]})

        change = asyncio.run(client.configure(vm, VirtualMachineConfiguration(network="VM Network")))

        assert ref.calls == []
        assert change is not None and not change.changed

    def test_partial_network_failure_still_succeeds(self, client, monkeypatch):
        names = {"network-1": "Old", "network-2": "New"}
        monkeypatch.setattr(devices, "_network_name", lambda network: names[network._moId])
        monkeypatch.setattr(client.networks, "find_network", lambda name: vim.Network("network-2"))
        ref = make_vm_ref(
            devices=[
                make_adapter(4000, "Network adapter 1", "Old"),
                make_adapter(4001, "Network adapter 2", "Old"),
            ]
        )
        ref.task_failures["ReconfigVM_Task"] = ["Invalid configuration for device '0'.", None]
        vm = VirtualMachine(ref=ref, properties={"network": [vim.Network("network-1")]})

        change = asyncio.run(client.configure(vm, VirtualMachineConfiguration(network="New")))

        assert change.rewired == ["Network adapter 2"]
        assert len(change.failures) == 1


class TestAssignNote:
    def test_appends_to_existing_note(self, client):
        ref = make_vm_ref()
        vm = VirtualMachine(ref=ref, properties={"config.annotation": "A"})

        asyncio.run(client.assign_note(vm, "B", overwrite=False))

        assert ref.calls[0][1]["spec"].annotation == "A\n\nB"

    def test_empty_existing_note(self, client):
        ref = make_vm_ref()
        vm = VirtualMachine(ref=ref, properties={})

        asyncio.run(client.assign_note(vm, "B", overwrite=False))

        assert ref.calls[0][1]["spec"].annotation == "B"

    def test_overwrite_replaces(self, client):
        ref = make_vm_ref()
        vm = VirtualMachine(ref=ref, properties={"config.annotation": "A"})

        asyncio.run(client.assign_note(vm, "B", overwrite=True))

        assert ref.calls[0][1]["spec"].annotation == "B"

    def test_append_requires_fetched_note(self, client):
        ref = make_vm_ref()

        with pytest.raises(PreconditionFailed):
            asyncio.run(client.assign_note(VirtualMachine(ref=ref), "B", overwrite=False))
        assert ref.calls == []


class TestClone:
    def test_clone_onto_session_datastore(self, client, monkeypatch):
        folder = vim.Folder("group-v3")
        pool = vim.ResourcePool("resgroup-1")
        monkeypatch.setattr(client, "_find_folder", lambda destination: folder)
        monkeypatch.setattr(client, "_find_resource_pool", lambda name: pool)
        ref = make_vm_ref()
        ref.task_results["CloneVM_Task"] = vim.VirtualMachine("vm-100")

        new_vm = asyncio.run(client.clone(VirtualMachine(ref=ref), "copy", "Folder"))

        assert new_vm.ref_value == "vm-100"
        assert new_vm.properties is None
        name, kwargs = ref.calls[0]
        assert name == "CloneVM_Task"
        assert kwargs["name"] == "copy"
        assert kwargs["folder"] is folder
        location = kwargs["spec"].location
        assert (location.datastore, location.folder, location.pool) == (client.datastore, folder, pool)
        assert kwargs["spec"].template is False

    def test_default_folder_is_vm_root(self, client):
        assert client._find_folder("") is client.datacenter.vmFolder
        assert client._find_folder("/") is client.datacenter.vmFolder


class TestRelocate:
    def test_move_then_rename(self, client, monkeypatch):
        folder = FakeManagedObject("group-v9")
        monkeypatch.setattr(client, "_find_folder", lambda destination: folder)
        ref = make_vm_ref()

        asyncio.run(client.relocate(VirtualMachine(ref=ref), name="renamed", destination="Other"))

        assert folder.calls == [("MoveIntoFolder_Task", {"list": [ref]})]
        assert ref.calls == [("Rename_Task", {"newName": "renamed"})]


class TestReportVM:
    def test_running_vm(self, client, monkeypatch):
        monkeypatch.setattr(client, "_inventory_path", lambda obj: "/DC1/vm/Folder/VM1")
        adapter = make_adapter(4000, "Network adapter 1", "VM Network", mac="00:50:56:aa:bb:cc")
        ref = make_vm_ref(
            power_state="poweredOn",
            devices=[adapter],
            guest_nics=[SimpleNamespace(macAddress="00:50:56:aa:bb:cc", ipAddress=["10.0.0.5"])],
        )
        summary = SimpleNamespace(config=SimpleNamespace(numCpu=2, memorySizeMB=4096))
        vm = VirtualMachine(
            ref=ref,
            properties={"network": [SimpleNamespace(name="VM Network")], "summary": summary},
        )

        info = asyncio.run(client.report_vm(vm))

        assert info.model_dump(by_alias=True) == {
            "configuration": {"cpus": 2, "memory": 4096, "network": "VM Network"},
            "ips": ["10.0.0.5"],
            "isRunning": True,
            "path": "Folder/VM1",
            "ref": "vm-42",
        }

    def test_fetches_missing_properties(self, client, monkeypatch):
        monkeypatch.setattr(client, "_inventory_path", lambda obj: "/DC1/vm/VM1")
        requests = []

        def retrieve(obj, paths):
            requests.append(paths)
            return {"summary": SimpleNamespace(config=SimpleNamespace(numCpu=1, memorySizeMB=512))}

        monkeypatch.setattr(client, "_retrieve_properties", retrieve)
        vm = VirtualMachine(ref=make_vm_ref(power_state="poweredOff"))

        info = asyncio.run(client.report_vm(vm))

        assert requests == [["network", "summary"]]
        assert not info.is_running
        assert info.ips == []
        assert info.configuration.cpus == 1
        assert info.configuration.network is None

    def test_guest_addresses_wait_for_every_adapter(self):
        first = make_adapter(4000, "Network adapter 1", "A", mac="00:50:56:00:00:01")
        second = make_adapter(4001, "Network adapter 2", "B", mac="00:50:56:00:00:02")
        ref = make_vm_ref(
            devices=[first, second],
            guest_nics=[SimpleNamespace(macAddress="00:50:56:00:00:01", ipAddress=["10.0.0.1"])],
        )
        assert VSphereClient._guest_addresses(ref) is None

        ref.guest.net.append(SimpleNamespace(macAddress="00:50:56:00:00:02", ipAddress=["10.0.1.1"]))
        assert VSphereClient._guest_addresses(ref) == ["10.0.0.1", "10.0.1.1"]
