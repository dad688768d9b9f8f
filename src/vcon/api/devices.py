"""Rewiring a VM's network adapters to another network."""

import logging
from typing import Any, Callable

from pyVmomi import vim

from .deadline import Deadline
from .exceptions import DeadlineExceeded, NotFoundError, fault_message
from .tasks import DEFAULT_POLL_INTERVAL, wait_for_task
from ..models.vm import AdapterFailure, NetworkChange, VirtualMachine

logger = logging.getLogger(__name__)


def _network_name(network: Any) -> str:
    return network.name


def ethernet_backing(network: Any, name: str) -> Any:
    """Build the backing an adapter needs to attach to ``network``.

    Blocks on the host for distributed and opaque networks.

    Args:
        network: ``vim.Network`` (or a subclass)
        name: The network's name

    Returns:
        Backing descriptor for a ``VirtualEthernetCard``
    """
    if isinstance(network, vim.dvs.DistributedVirtualPortgroup):
        port = vim.dvs.PortConnection(
            portgroupKey=network.key,
            switchUuid=network.config.distributedVirtualSwitch.uuid,
        )
        return vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo(port=port)

    if isinstance(network, vim.OpaqueNetwork):
        summary = network.summary
        return vim.vm.device.VirtualEthernetCard.OpaqueNetworkBackingInfo(
            opaqueNetworkId=summary.opaqueNetworkId,
            opaqueNetworkType=summary.opaqueNetworkType,
        )

    return vim.vm.device.VirtualEthernetCard.NetworkBackingInfo(
        deviceName=name,
        network=network,
        useAutoDetect=False,
    )


def same_network(backing: Any, reference: Any) -> bool:
    """Whether an adapter backing points at the network ``reference`` describes."""
    card = vim.vm.device.VirtualEthernetCard
    if isinstance(reference, card.DistributedVirtualPortBackingInfo):
        return (
            isinstance(backing, card.DistributedVirtualPortBackingInfo)
            and backing.port is not None
            and backing.port.portgroupKey == reference.port.portgroupKey
        )
    if isinstance(reference, card.OpaqueNetworkBackingInfo):
        return (
            isinstance(backing, card.OpaqueNetworkBackingInfo)
            and backing.opaqueNetworkId == reference.opaqueNetworkId
        )
    return (
        isinstance(backing, card.NetworkBackingInfo)
        and backing.deviceName == reference.deviceName
    )


def select_adapters(devices: list[Any], reference: Any) -> list[Any]:
    """Pick every ethernet adapter attached to the network ``reference`` describes."""
    return [
        device
        for device in devices or []
        if isinstance(device, vim.vm.device.VirtualEthernetCard)
        and same_network(device.backing, reference)
    ]


def device_label(device: Any) -> str:
    info = getattr(device, "deviceInfo", None)
    if info is not None and info.label:
        return info.label
    return f"device {device.key}"


class NetworkReconfigurer:
    """Move all adapters on a VM's current network to a requested network."""

    def __init__(
        self,
        find_network: Callable[[str], Any],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize reconfigurer.

        Args:
            find_network: Blocking lookup of a network by name, None if absent
            poll_interval: Seconds between task state checks
        """
        self.find_network = find_network
        self.poll_interval = poll_interval

    async def current_network(self, deadline: Deadline, vm: VirtualMachine) -> tuple[Any, str]:
        """Return the VM's first associated network and its name."""
        networks = vm.prop("network")
        if networks is None:
            networks = await deadline.call(lambda: vm.ref.network)
        if not networks:
            raise NotFoundError("network of VM", vm.ref_value)
        network = networks[0]
        name = await deadline.call(_network_name, network)
        return network, name

    async def rewire(self, deadline: Deadline, vm: VirtualMachine, requested: str) -> NetworkChange:
        """Rewire adapters on the current network to ``requested``.

        Adapter edits are best-effort: a failed edit is logged and recorded,
        and the remaining adapters are still rewired.

        Args:
            deadline: Deadline shared with the rest of the operation
            vm: Target VM
            requested: Name of the network to attach to

        Returns:
            Which adapters were rewired and which failed

        Raises:
            NotFoundError: If the requested network does not exist
            DeadlineExceeded: If the deadline elapsed
        """
        current, current_name = await self.current_network(deadline, vm)
        change = NetworkChange(previous=current_name, requested=requested)

        if current_name == requested:
            logger.info("VM is already attached to '%s'", requested)
            return change

        network = await deadline.call(self.find_network, requested)
        if network is None:
            raise NotFoundError("network", requested)

        backing = await deadline.call(ethernet_backing, network, requested)
        reference = await deadline.call(ethernet_backing, current, current_name)
        devices = await deadline.call(lambda: vm.ref.config.hardware.device)
        adapters = select_adapters(devices, reference)
        logger.info(
            "Moving %d adapter(s) from '%s' to '%s'", len(adapters), current_name, requested
        )

        for device in adapters:
            label = device_label(device)
            device.backing = backing
            spec = vim.vm.ConfigSpec(
                deviceChange=[
                    vim.vm.device.VirtualDeviceSpec(
                        operation=vim.vm.device.VirtualDeviceSpec.Operation.edit,
                        device=device,
                    )
                ]
            )
            try:
                await wait_for_task(
                    deadline, vm.ref.ReconfigVM_Task, spec=spec, poll_interval=self.poll_interval
                )
            except DeadlineExceeded:
                raise
            except Exception as e:
                message = fault_message(e)
                logger.warning("Failed to rewire %s: %s", label, message)
                change.failures.append(AdapterFailure(device=label, error=message))
                continue
            change.rewired.append(label)

        return change
