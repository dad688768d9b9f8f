"""Data models."""

from .config import OutputConfig, ProfileConfig
from .vm import (
    AdapterFailure,
    NetworkChange,
    PowerState,
    Snapshot,
    VirtualMachine,
    VirtualMachineConfiguration,
    VirtualMachineInfo,
)

__all__ = [
    "AdapterFailure",
    "NetworkChange",
    "OutputConfig",
    "PowerState",
    "ProfileConfig",
    "Snapshot",
    "VirtualMachine",
    "VirtualMachineConfiguration",
    "VirtualMachineInfo",
]
