"""Virtual machine models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PowerState(str, Enum):
    """Whether a VM is on, off, or suspended."""

    POWERED_OFF = "powered_off"
    POWERED_ON = "powered_on"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"

    @classmethod
    def from_vim(cls, state: Any) -> "PowerState":
        """Map a ``VirtualMachinePowerState`` value."""
        return _VIM_POWER_STATES.get(str(state), cls.UNKNOWN)


_VIM_POWER_STATES = {
    "poweredOff": PowerState.POWERED_OFF,
    "poweredOn": PowerState.POWERED_ON,
    "suspended": PowerState.SUSPENDED,
}


class VirtualMachine(BaseModel):
    """Resolved VM handle.

    ``properties`` is the optional property snapshot taken when the VM was
    resolved. It is never refreshed; operations that need live state query
    for it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ref: Any
    properties: dict[str, Any] | None = None

    @property
    def ref_value(self) -> str:
        """The managed object id (e.g. ``vm-139``)."""
        return str(getattr(self.ref, "_moId", self.ref))

    def prop(self, path: str, default: Any = None) -> Any:
        """Read one property from the snapshot."""
        if self.properties is None:
            return default
        return self.properties.get(path, default)


class VirtualMachineConfiguration(BaseModel):
    """Sparse hardware patch: absent fields are left unchanged."""

    cpus: int | None = Field(default=None, gt=0)
    memory: int | None = Field(default=None, gt=0, description="Memory size in MB")
    network: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when the patch changes nothing."""
        return self.cpus is None and self.memory is None and self.network is None


class VirtualMachineInfo(BaseModel):
    """Report on a VM, assembled from live queries."""

    model_config = ConfigDict(populate_by_name=True)

    configuration: VirtualMachineConfiguration = Field(default_factory=VirtualMachineConfiguration)
    ips: list[str] = Field(default_factory=list)
    is_running: bool = Field(default=False, alias="isRunning")
    path: str = ""
    ref: str = ""


class Snapshot(BaseModel):
    """A node in a VM's snapshot tree."""

    name: str
    ref: str
    children: list["Snapshot"] | None = None


class AdapterFailure(BaseModel):
    """One network adapter that could not be rewired."""

    device: str
    error: str


class NetworkChange(BaseModel):
    """Outcome of rewiring a VM's network adapters."""

    previous: str
    requested: str
    rewired: list[str] = Field(default_factory=list)
    failures: list[AdapterFailure] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether any adapter was selected for rewiring."""
        return bool(self.rewired or self.failures)
