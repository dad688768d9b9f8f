"""Snapshot tree helpers."""

from typing import Any, Iterator

from ..models.vm import Snapshot


def _walk(nodes: list[Any] | None) -> Iterator[Any]:
    stack = list(reversed(nodes or []))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.childSnapshotList or []))


def snapshot_tree(nodes: list[Any] | None) -> list[Snapshot]:
    """Materialize ``vim.vm.SnapshotTree`` nodes into ``Snapshot`` models.

    Args:
        nodes: Usually ``vm.snapshot.rootSnapshotList``

    Returns:
        One ``Snapshot`` per root, children in host order
    """
    result = []
    for node in nodes or []:
        children = snapshot_tree(node.childSnapshotList)
        result.append(
            Snapshot(
                name=node.name,
                ref=str(node.snapshot._moId),
                children=children or None,
            )
        )
    return result


def find_snapshot_nodes(nodes: list[Any] | None, name: str) -> list[Any]:
    """Return every tree node named ``name``, depth first."""
    return [node for node in _walk(nodes) if node.name == name]
