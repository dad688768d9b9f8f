"""vSphere API client."""

import asyncio
import logging
from typing import Any

from pyVmomi import vim, vmodl

from .auth import AuthHandler
from .deadline import Deadline, operation_scope
from .devices import NetworkReconfigurer
from .exceptions import (
    ConnectionFailure,
    DeadlineExceeded,
    NotFoundError,
    PreconditionFailed,
    UnclassifiedError,
    fault_message,
)
from .paths import InventoryPaths
from .snapshots import find_snapshot_nodes, snapshot_tree
from .tasks import DEFAULT_POLL_INTERVAL, wait_for_task
from ..models.config import ProfileConfig
from ..models.vm import (
    NetworkChange,
    PowerState,
    Snapshot,
    VirtualMachine,
    VirtualMachineConfiguration,
    VirtualMachineInfo,
)

logger = logging.getLogger(__name__)

VM_REPORT_PROPERTIES = ("network", "summary")


class VSphereClient:
    """Async session against one datacenter and datastore.

    Every public operation opens its own deadline scope and runs the blocking
    SDK calls on worker threads.
    """

    def __init__(self, profile: ProfileConfig, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Initialize vSphere client.

        Args:
            profile: Profile configuration
            poll_interval: Seconds between task and guest state checks
        """
        self.profile = profile
        self.timeout = float(profile.timeout)
        self.poll_interval = poll_interval
        self.auth_handler = AuthHandler(
            host=profile.vsphere,
            port=profile.port,
            user=profile.username,
            verify_ssl=profile.verify_ssl,
            timeout=profile.timeout,
        )
        self.networks = NetworkReconfigurer(self._find_network, poll_interval=poll_interval)
        self._service_instance: Any = None
        self._content: Any = None
        self.datacenter: Any = None
        self.datastore: Any = None
        self.paths: InventoryPaths | None = None

    async def __aenter__(self) -> "VSphereClient":
        """Async context manager entry.

        Returns:
            Self
        """
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit.

        Args:
            exc_type: Exception type
            exc_val: Exception value
            exc_tb: Exception traceback
        """
        await self.close(logout=not isinstance(exc_val, DeadlineExceeded))

    async def connect(self) -> None:
        """Log in and resolve the datacenter and datastore.

        Raises:
            ConnectionFailure: On any failure, including a timeout
        """
        try:
            async with Deadline(self.timeout) as deadline:
                si = await deadline.call(self.auth_handler.login, self.profile.password)
                self._service_instance = si
                content = await deadline.call(si.RetrieveContent)

                datacenter = await deadline.call(
                    self._find_datacenter, content, self.profile.datacenter
                )
                datacenter_name = await deadline.call(lambda: datacenter.name)
                datastore = await deadline.call(
                    self._find_datastore, content, datacenter, self.profile.datastore
                )
        except DeadlineExceeded as e:
            await self.close(logout=False)
            raise ConnectionFailure(
                "Timeout while attempting to establish connection to vSphere"
            ) from e
        except ConnectionFailure:
            await self.close()
            raise
        except Exception as e:
            await self.close()
            raise ConnectionFailure(
                "Got error while attempting to establish connection to vSphere: "
                f"{fault_message(e)}"
            ) from e

        self._bind(si, content, datacenter, datastore, datacenter_name)
        logger.info("Connected to datacenter '%s'", datacenter_name)

    def _bind(
        self,
        service_instance: Any,
        content: Any,
        datacenter: Any,
        datastore: Any,
        datacenter_name: str,
    ) -> None:
        self._service_instance = service_instance
        self._content = content
        self.datacenter = datacenter
        self.datastore = datastore
        self.paths = InventoryPaths(datacenter_name)

    async def close(self, logout: bool = True) -> None:
        """Close the session.

        Logging out gets its own deadline. After a timeout the host is
        presumed unresponsive, so callers pass ``logout=False`` and the
        session is left to expire on the server.

        Args:
            logout: End the server-side session
        """
        si, self._service_instance = self._service_instance, None
        self._content = None
        if si is None:
            return
        if not logout:
            logger.debug("Abandoning session without logging out")
            return
        try:
            async with Deadline(self.timeout) as deadline:
                await deadline.call(self.auth_handler.logout, si)
        except DeadlineExceeded:
            logger.debug("Logout did not finish within %gs", self.timeout)
        except Exception as e:
            logger.debug("Ignoring logout failure: %s", fault_message(e))

    def _ensure_connected(self) -> Any:
        """Ensure client is connected.

        Returns:
            Service content

        Raises:
            RuntimeError: If not connected
        """
        if self._content is None or self.paths is None:
            raise RuntimeError("Client not connected. Use async with or call connect().")
        return self._content

    def _operation(self, action: str) -> Any:
        self._ensure_connected()
        return operation_scope(self.timeout, action)

    # Lookups (blocking; always called through a deadline)

    @staticmethod
    def _find_by_name(content: Any, container: Any, vimtype: Any, name: str) -> list[Any]:
        view = content.viewManager.CreateContainerView(container, [vimtype], True)
        try:
            return [obj for obj in view.view if obj.name == name]
        finally:
            view.Destroy()

    @staticmethod
    def _find_all(content: Any, container: Any, vimtype: Any) -> list[Any]:
        view = content.viewManager.CreateContainerView(container, [vimtype], True)
        try:
            return list(view.view)
        finally:
            view.Destroy()

    def _find_datacenter(self, content: Any, name: str) -> Any:
        if name:
            found = content.searchIndex.FindByInventoryPath(f"/{name.lstrip('/')}")
            if not isinstance(found, vim.Datacenter):
                raise ConnectionFailure(f"Failed to find data center with name '{name}'")
            return found

        datacenters = self._find_all(content, content.rootFolder, vim.Datacenter)
        if len(datacenters) != 1:
            raise ConnectionFailure(
                f"Found {len(datacenters)} data centers; specify one with --datacenter"
            )
        return datacenters[0]

    def _find_datastore(self, content: Any, datacenter: Any, name: str) -> Any:
        if name:
            matches = self._find_by_name(content, datacenter.datastoreFolder, vim.Datastore, name)
            if not matches:
                raise ConnectionFailure(f"Failed to find data store with name '{name}'")
            return matches[0]

        datastores = self._find_all(content, datacenter.datastoreFolder, vim.Datastore)
        if len(datastores) != 1:
            raise ConnectionFailure(
                f"Found {len(datastores)} data stores; specify one with --datastore"
            )
        return datastores[0]

    def _find_network(self, name: str) -> Any:
        matches = self._find_by_name(self._content, self.datacenter.networkFolder, vim.Network, name)
        if len(matches) > 1:
            raise UnclassifiedError(f"Found {len(matches)} networks named '{name}'")
        return matches[0] if matches else None

    def _find_folder(self, destination: str) -> Any:
        if not destination.strip("/"):
            return self.datacenter.vmFolder
        found = self._content.searchIndex.FindByInventoryPath(self.paths.to_inventory(destination))
        if not isinstance(found, vim.Folder):
            raise NotFoundError("folder", destination)
        return found

    def _find_resource_pool(self, name: str) -> Any:
        if name:
            matches = self._find_by_name(
                self._content, self.datacenter.hostFolder, vim.ResourcePool, name
            )
            if not matches:
                raise NotFoundError("resource pool", name)
            if len(matches) > 1:
                raise UnclassifiedError(f"Found {len(matches)} resource pools named '{name}'")
            return matches[0]

        compute = self._find_all(self._content, self.datacenter.hostFolder, vim.ComputeResource)
        if len(compute) != 1:
            raise UnclassifiedError(
                f"Default resource pool is ambiguous across {len(compute)} compute resources; "
                "specify one with --resourcepool"
            )
        return compute[0].resourcePool

    def _retrieve_properties(self, obj: Any, paths: list[str]) -> dict[str, Any]:
        collector = self._content.propertyCollector
        spec = vmodl.query.PropertyCollector.FilterSpec(
            objectSet=[vmodl.query.PropertyCollector.ObjectSpec(obj=obj, skip=False)],
            propSet=[
                vmodl.query.PropertyCollector.PropertySpec(
                    type=type(obj), pathSet=list(paths), all=False
                )
            ],
        )
        options = vmodl.query.PropertyCollector.RetrieveOptions()
        result = collector.RetrievePropertiesEx(specSet=[spec], options=options)
        if result is None or not result.objects:
            return {}
        return {prop.name: prop.val for prop in result.objects[0].propSet or []}

    def _inventory_path(self, obj: Any) -> str:
        root = self._content.rootFolder
        names = []
        while obj is not None and obj != root:
            names.append(obj.name)
            obj = obj.parent
        return "/" + "/".join(reversed(names))

    @staticmethod
    def _guest_addresses(vm_ref: Any) -> list[str] | None:
        """Addresses reported by the guest, or None until every adapter has one."""
        macs = [
            device.macAddress
            for device in vm_ref.config.hardware.device
            if isinstance(device, vim.vm.device.VirtualEthernetCard) and device.macAddress
        ]
        reported = {
            nic.macAddress: list(nic.ipAddress or [])
            for nic in vm_ref.guest.net or []
            if nic.macAddress
        }
        if any(not reported.get(mac) for mac in macs):
            return None
        return [address for mac in macs for address in reported[mac]]

    # Virtual machines

    async def find_vm(
        self, path: str, path_is_ref: bool = False, *properties: str
    ) -> VirtualMachine:
        """Resolve a VM by logical path or managed object reference.

        Args:
            path: Logical path (``Folder/VM``) or reference (``vm-139``)
            path_is_ref: Treat ``path`` as a reference; no lookup happens
            *properties: Property paths to fetch into the VM's snapshot

        Returns:
            Resolved VM

        Raises:
            NotFoundError: If nothing lives at the path
        """
        logger.info("Finding VM at path: %s...", path)
        async with self._operation(f"finding VM '{path}'") as deadline:
            if path_is_ref:
                ref = vim.VirtualMachine(path, self._service_instance._stub)
            else:
                inventory_path = self.paths.to_inventory(path)
                ref = await deadline.call(
                    self._content.searchIndex.FindByInventoryPath, inventory_path
                )
                if not isinstance(ref, vim.VirtualMachine):
                    raise NotFoundError("VM", path)

            snapshot = None
            if properties:
                try:
                    snapshot = await deadline.call(self._retrieve_properties, ref, list(properties))
                except vmodl.fault.ManagedObjectNotFound as e:
                    raise NotFoundError("VM", path) from e

        return VirtualMachine(ref=ref, properties=snapshot)

    async def get_power_state(self, vm: VirtualMachine) -> PowerState:
        """Query the live power state of a VM."""
        async with self._operation("getting power state of VM") as deadline:
            state = await deadline.call(lambda: vm.ref.runtime.powerState)
        return PowerState.from_vim(state)

    async def report_vm(self, vm: VirtualMachine) -> VirtualMachineInfo:
        """Assemble a fresh report on a VM.

        When the VM is running, waits for the guest to report addresses on
        every adapter.

        Args:
            vm: Target VM

        Returns:
            VM report
        """
        info = VirtualMachineInfo(ref=vm.ref_value)

        async with self._operation("reporting on VM") as deadline:
            state = PowerState.from_vim(await deadline.call(lambda: vm.ref.runtime.powerState))
            info.is_running = state != PowerState.POWERED_OFF

            if info.is_running:
                info.ips = await self._wait_for_addresses(deadline, vm)

            inventory_path = await deadline.call(self._inventory_path, vm.ref)
            info.path = self.paths.to_logical(inventory_path)

            properties = dict(vm.properties or {})
            missing = [p for p in VM_REPORT_PROPERTIES if p not in properties]
            if missing:
                properties.update(await deadline.call(self._retrieve_properties, vm.ref, missing))
                if vm.properties is None:
                    vm.properties = properties

            summary = properties.get("summary")
            if summary is not None and summary.config is not None:
                info.configuration.cpus = summary.config.numCpu
                info.configuration.memory = summary.config.memorySizeMB

            networks = properties.get("network") or []
            if networks:
                info.configuration.network = await deadline.call(lambda: networks[0].name)

        return info

    async def _wait_for_addresses(self, deadline: Deadline, vm: VirtualMachine) -> list[str]:
        while True:
            addresses = await deadline.call(self._guest_addresses, vm.ref)
            if addresses is not None:
                return addresses
            await asyncio.sleep(self.poll_interval)

    async def _wait_for_ip(self, deadline: Deadline, vm: VirtualMachine) -> str:
        while True:
            address = await deadline.call(lambda: vm.ref.guest.ipAddress)
            if address:
                return address
            await asyncio.sleep(self.poll_interval)

    async def clone(
        self,
        vm: VirtualMachine,
        name: str,
        destination: str = "",
        resource_pool: str = "",
    ) -> VirtualMachine:
        """Clone a VM or template onto the session's datastore.

        Args:
            vm: Source VM or template
            name: Name of the new VM
            destination: Logical folder path for the new VM (VM root if empty)
            resource_pool: Resource pool name (default pool if empty)

        Returns:
            The new VM, without a property snapshot
        """
        logger.info("Cloning VM...")
        async with self._operation("cloning VM") as deadline:
            pool = await deadline.call(self._find_resource_pool, resource_pool)
            folder = await deadline.call(self._find_folder, destination)

            spec = vim.vm.CloneSpec(
                location=vim.vm.RelocateSpec(datastore=self.datastore, folder=folder, pool=pool),
                template=False,
                powerOn=False,
            )
            new_ref = await wait_for_task(
                deadline,
                vm.ref.CloneVM_Task,
                folder=folder,
                name=name,
                spec=spec,
                expect=vim.VirtualMachine,
                poll_interval=self.poll_interval,
            )

        return VirtualMachine(ref=new_ref)

    async def configure(
        self, vm: VirtualMachine, config: VirtualMachineConfiguration
    ) -> NetworkChange | None:
        """Apply a sparse hardware patch.

        CPU and memory go through one reconfigure task; a network change
        rewires adapters on a best-effort basis.

        Args:
            vm: Target VM
            config: Fields to change; absent fields are left alone

        Returns:
            The network change when one was requested, otherwise None
        """
        if config.is_empty:
            logger.info("Nothing to configure")
            return None

        logger.info("Configuring VM...")
        change = None
        async with self._operation("reconfiguring VM") as deadline:
            if config.cpus is not None or config.memory is not None:
                spec = vim.vm.ConfigSpec()
                if config.cpus is not None:
                    spec.numCPUs = config.cpus
                if config.memory is not None:
                    spec.memoryMB = config.memory
                await wait_for_task(
                    deadline, vm.ref.ReconfigVM_Task, spec=spec, poll_interval=self.poll_interval
                )

            if config.network is not None:
                change = await self.networks.rewire(deadline, vm, config.network)

        return change

    async def destroy(self, vm: VirtualMachine) -> None:
        """Destroy a powered-off VM.

        Raises:
            PreconditionFailed: If the VM is not powered off
        """
        logger.info("Destroying VM...")
        async with self._operation("destroying VM") as deadline:
            state = PowerState.from_vim(await deadline.call(lambda: vm.ref.runtime.powerState))
            if state != PowerState.POWERED_OFF:
                raise PreconditionFailed("Cannot destroy a VM that is not powered off")

            await wait_for_task(deadline, vm.ref.Destroy_Task, poll_interval=self.poll_interval)

    async def ensure_on(self, vm: VirtualMachine) -> None:
        """Power a VM on and wait until the guest reports an IP address."""
        logger.info("Ensuring on power state...")
        async with self._operation("powering on VM") as deadline:
            await wait_for_task(deadline, vm.ref.PowerOnVM_Task, poll_interval=self.poll_interval)
            address = await self._wait_for_ip(deadline, vm)
        logger.info("Guest reported address %s", address)

    async def ensure_off(self, vm: VirtualMachine) -> None:
        """Power a VM off."""
        logger.info("Ensuring off power state...")
        async with self._operation("powering off VM") as deadline:
            await wait_for_task(deadline, vm.ref.PowerOffVM_Task, poll_interval=self.poll_interval)

    async def suspend(self, vm: VirtualMachine) -> None:
        """Suspend a VM."""
        logger.info("Ensuring suspended state...")
        async with self._operation("suspending VM") as deadline:
            await wait_for_task(deadline, vm.ref.SuspendVM_Task, poll_interval=self.poll_interval)

    async def assign_note(self, vm: VirtualMachine, note: str, overwrite: bool = False) -> None:
        """Append to, or replace, a VM's notes.

        When appending, the existing notes must have been fetched into the
        VM's property snapshot (``config.annotation``).

        Args:
            vm: Target VM
            note: Text to add
            overwrite: Replace the existing notes instead of appending
        """
        logger.info("Assigning note to VM...")
        async with self._operation("assigning note to VM") as deadline:
            if not overwrite:
                if vm.properties is None:
                    raise PreconditionFailed("Existing notes were not loaded")
                original = vm.prop("config.annotation") or ""
                if original:
                    note = f"{original}\n\n{note}"

            spec = vim.vm.ConfigSpec(annotation=note)
            await wait_for_task(
                deadline, vm.ref.ReconfigVM_Task, spec=spec, poll_interval=self.poll_interval
            )

    async def relocate(self, vm: VirtualMachine, name: str = "", destination: str = "") -> None:
        """Move a VM to another folder and/or rename it.

        Args:
            vm: Target VM
            name: New name (unchanged if empty)
            destination: Logical folder path (unchanged if empty)
        """
        logger.info("Relocating VM...")
        async with self._operation("relocating VM") as deadline:
            if destination:
                folder = await deadline.call(self._find_folder, destination)
                await wait_for_task(
                    deadline, folder.MoveIntoFolder_Task, list=[vm.ref], poll_interval=self.poll_interval
                )
            if name:
                await wait_for_task(
                    deadline, vm.ref.Rename_Task, newName=name, poll_interval=self.poll_interval
                )

    # Snapshot methods

    async def find_snapshot(self, vm: VirtualMachine, name: str, by_ref: bool = False) -> Any:
        """Locate a snapshot by name, or build its reference directly.

        Args:
            vm: VM owning the snapshot
            name: Snapshot name, or reference when ``by_ref`` is set
            by_ref: Treat ``name`` as a managed object reference

        Returns:
            ``vim.vm.Snapshot`` reference

        Raises:
            NotFoundError: If no snapshot has that name
        """
        if by_ref:
            self._ensure_connected()
            return vim.vm.Snapshot(name, self._service_instance._stub)

        async with self._operation("finding snapshot for a VM") as deadline:
            if vm.properties is not None and "snapshot" in vm.properties:
                info = vm.properties["snapshot"]
            else:
                info = await deadline.call(lambda: vm.ref.snapshot)
            matches = find_snapshot_nodes(info.rootSnapshotList if info else None, name)
            if not matches:
                raise NotFoundError("snapshot", name)
            if len(matches) > 1:
                raise UnclassifiedError(f"Found {len(matches)} snapshots named '{name}'")
        return matches[0].snapshot

    async def snapshot_create(self, vm: VirtualMachine, name: str) -> Snapshot:
        """Take a snapshot without memory state or quiescing."""
        logger.info("Creating a VM snapshot...")
        async with self._operation("snapshotting VM") as deadline:
            ref = await wait_for_task(
                deadline,
                vm.ref.CreateSnapshot_Task,
                name=name,
                description="",
                memory=False,
                quiesce=False,
                expect=vim.vm.Snapshot,
                poll_interval=self.poll_interval,
            )
        return Snapshot(name=name, ref=str(ref._moId))

    async def snapshot_list(self, vm: VirtualMachine) -> list[Snapshot]:
        """List a VM's snapshots as trees, one per root."""
        logger.info("Getting a list of snapshots for VM...")
        async with self._operation("listing snapshots for a VM") as deadline:
            if vm.properties is not None:
                info = vm.prop("snapshot")
            else:
                info = await deadline.call(lambda: vm.ref.snapshot)
        if info is None:
            return []
        return snapshot_tree(info.rootSnapshotList)

    async def snapshot_remove(self, vm: VirtualMachine, snapshot: Any) -> None:
        """Remove one snapshot, keeping its children, and consolidate disks."""
        logger.info("Removing snapshot %s...", getattr(snapshot, "_moId", snapshot))
        async with self._operation("removing snapshot for a VM") as deadline:
            await wait_for_task(
                deadline,
                snapshot.RemoveSnapshot_Task,
                removeChildren=False,
                consolidate=True,
                poll_interval=self.poll_interval,
            )

    async def snapshot_remove_all(self, vm: VirtualMachine) -> None:
        """Remove every snapshot of a VM and consolidate disks."""
        logger.info("Removing all snapshots...")
        async with self._operation("removing all snapshots for a VM") as deadline:
            await wait_for_task(
                deadline,
                vm.ref.RemoveAllSnapshots_Task,
                consolidate=True,
                poll_interval=self.poll_interval,
            )

    async def snapshot_revert(self, vm: VirtualMachine) -> None:
        """Revert to the current snapshot without powering on."""
        logger.info("Reverting to the current snapshot...")
        async with self._operation("reverting to the most recent snapshot for a VM") as deadline:
            await wait_for_task(
                deadline,
                vm.ref.RevertToCurrentSnapshot_Task,
                suppressPowerOn=True,
                poll_interval=self.poll_interval,
            )

    async def snapshot_revert_to(self, vm: VirtualMachine, snapshot: Any) -> None:
        """Revert to a specific snapshot without powering on."""
        logger.info("Reverting to snapshot %s...", getattr(snapshot, "_moId", snapshot))
        async with self._operation("reverting to a specific snapshot for a VM") as deadline:
            await wait_for_task(
                deadline,
                snapshot.RevertToSnapshot_Task,
                suppressPowerOn=True,
                poll_interval=self.poll_interval,
            )

