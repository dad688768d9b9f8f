"""Translation between logical VM paths and vSphere inventory paths.

Users name VMs relative to the datacenter's VM folder
(``Folder/Sub/VM``); the host's search index wants full inventory paths
(``/DC/vm/Folder/Sub/VM``). Paths are opaque strings: no normalization of
``..``, repeated slashes or case happens here.
"""

from dataclasses import dataclass

VM_FOLDER_SEGMENT = "/vm/"


@dataclass(frozen=True)
class InventoryPaths:
    """Path translator bound to one datacenter."""

    datacenter: str

    def to_inventory(self, path: str) -> str:
        """Turn a logical path into an inventory path."""
        if path.startswith("/"):
            path = path[1:]
        return f"/{self.datacenter}/vm/{path}"

    def to_logical(self, inventory_path: str) -> str:
        """Turn an inventory path back into a logical path.

        Paths outside the datacenter come back unchanged.
        """
        path = inventory_path
        prefix = f"/{self.datacenter}"
        if path.startswith(prefix):
            path = path[len(prefix):]
            if path.startswith(VM_FOLDER_SEGMENT):
                path = path[len(VM_FOLDER_SEGMENT):]
        return path
