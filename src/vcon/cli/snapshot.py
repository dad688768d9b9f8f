"""Snapshot commands."""

import typer

from ..api.exceptions import PreconditionFailed, VconError
from ..models.vm import PowerState
from ..utils import async_to_sync, ordered_group
from ._shared import (
    TARGET_IS_REF_HELP,
    exit_with,
    name_generator,
    open_client,
    spinner,
    write_document,
)

SNAPSHOT_IS_REF_HELP = "SNAPSHOT parameter is the snapshot's managed object reference"

app = typer.Typer(
    help="Manipulate the snapshots of a VM",
    no_args_is_help=True,
    cls=ordered_group(["create", "list", "remove", "revert"]),
)


@app.command("create")
@async_to_sync
async def create_snapshot(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    name: str = typer.Option(
        "", "--name", "-n", help="Name (or name template) of the snapshot; generated if empty"
    ),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Create a snapshot of a powered-off VM and print it."""
    try:
        snapshot_name = name_generator(ctx).snapshot_name(name)

        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref)

            state = await client.get_power_state(vm)
            if state != PowerState.POWERED_OFF:
                raise PreconditionFailed("Cannot get a snapshot of a running machine")

            with spinner(f"Creating snapshot '{snapshot_name}'..."):
                snapshot = await client.snapshot_create(vm, snapshot_name)

        write_document(ctx, snapshot)

    except VconError as e:
        exit_with(e)


@app.command("list")
@async_to_sync
async def list_snapshots(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """List the snapshot trees of a VM."""
    try:
        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref, "snapshot")
            snapshots = await client.snapshot_list(vm)

        write_document(ctx, snapshots)

    except VconError as e:
        exit_with(e)


@app.command("remove")
@async_to_sync
async def remove_snapshot(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    snapshot: str = typer.Argument(None, help="Snapshot to remove; all snapshots if omitted"),
    snapshot_is_ref: bool = typer.Option(False, "--snapshotIsRef", help=SNAPSHOT_IS_REF_HELP),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Remove one or all of the snapshots of a VM.

    SNAPSHOT is a snapshot name, or a reference with --snapshotIsRef. If
    several snapshots have that name, nothing is removed.
    """
    try:
        async with open_client(ctx) as client:
            if snapshot:
                lookup = () if snapshot_is_ref else ("snapshot",)
                vm = await client.find_vm(target, target_is_ref, *lookup)
                ref = await client.find_snapshot(vm, snapshot, snapshot_is_ref)
                with spinner(f"Removing snapshot '{snapshot}'..."):
                    await client.snapshot_remove(vm, ref)
            else:
                vm = await client.find_vm(target, target_is_ref)
                with spinner("Removing all snapshots..."):
                    await client.snapshot_remove_all(vm)

    except VconError as e:
        exit_with(e)


@app.command("revert")
@async_to_sync
async def revert_snapshot(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    snapshot: str = typer.Argument(None, help="Snapshot to revert to; the current one if omitted"),
    snapshot_is_ref: bool = typer.Option(False, "--snapshotIsRef", help=SNAPSHOT_IS_REF_HELP),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Revert a VM to a snapshot without powering it on."""
    try:
        async with open_client(ctx) as client:
            if snapshot:
                lookup = () if snapshot_is_ref else ("snapshot",)
                vm = await client.find_vm(target, target_is_ref, *lookup)
                ref = await client.find_snapshot(vm, snapshot, snapshot_is_ref)
                with spinner(f"Reverting to snapshot '{snapshot}'..."):
                    await client.snapshot_revert_to(vm, ref)
            else:
                vm = await client.find_vm(target, target_is_ref)
                with spinner("Reverting to the current snapshot..."):
                    await client.snapshot_revert(vm)

    except VconError as e:
        exit_with(e)
