"""VM lifecycle commands."""

from enum import Enum

import typer

from .. import __version__
from ..api.exceptions import PreconditionFailed, VconError
from ..models.vm import PowerState
from ..utils import async_to_sync, print_success, read_text_argument
from ..utils.output import stdout
from ._shared import (
    TARGET_IS_REF_HELP,
    exit_with,
    name_generator,
    open_client,
    parse_configuration,
    report_network_change,
    spinner,
    write_document,
)


class PowerAction(str, Enum):
    """Requested power state."""

    ON = "on"
    OFF = "off"
    SUSPEND = "suspend"


@async_to_sync
async def clone_vm(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Path of the template or VM to clone"),
    configuration: str = typer.Option(
        None, "--configuration", "-c", help="JSON block containing VM configuration"
    ),
    destination: str = typer.Option("", "--destination", "-d", help="Destination folder for new VM"),
    name: str = typer.Option(
        "", "--name", "-n", help="Name (or name template) of new VM; generated if empty"
    ),
    on: bool = typer.Option(True, "--on/--off", help="Start the VM after cloning"),
    resource_pool: str = typer.Option("", "--resourcepool", help="Resource pool name for new VM"),
) -> None:
    """Clone a template or VM and print the new VM's info."""
    try:
        patch = parse_configuration(configuration) if configuration else None
        vm_name = name_generator(ctx).vm_name(name)

        async with open_client(ctx) as client:
            vm = await client.find_vm(source)

            with spinner(f"Cloning '{source}' to '{vm_name}'..."):
                new_vm = await client.clone(vm, vm_name, destination, resource_pool)

            if patch is not None and not patch.is_empty:
                target = await client.find_vm(new_vm.ref_value, True, "network")
                with spinner(f"Configuring '{vm_name}'..."):
                    change = await client.configure(target, patch)
                report_network_change(change)

            if on:
                with spinner(f"Starting '{vm_name}'..."):
                    await client.ensure_on(new_vm)

            info = await client.report_vm(new_vm)

        write_document(ctx, info)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def configure_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    configuration: str = typer.Argument(
        None, help="JSON configuration, or a file holding it; read from stdin if omitted"
    ),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Update the CPU count, memory or network of a powered-off VM."""
    try:
        patch = parse_configuration(read_text_argument(configuration))

        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref, "network")

            state = await client.get_power_state(vm)
            if state != PowerState.POWERED_OFF:
                raise PreconditionFailed("Cannot adjust configuration of a VM that is not powered off")

            with spinner(f"Configuring '{target}'..."):
                change = await client.configure(vm, patch)

        report_network_change(change)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def destroy_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    force: bool = typer.Option(False, "--force", "-f", help="Stop a running VM in order to destroy it"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Destroy a VM.

    The VM must be powered off unless --force is given.
    """
    try:
        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref)

            if force:
                with spinner(f"Stopping '{target}'..."):
                    await client.ensure_off(vm)

            with spinner(f"Destroying '{target}'..."):
                await client.destroy(vm)

        print_success(f"Destroyed '{target}'")

    except VconError as e:
        exit_with(e)


@async_to_sync
async def show_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Retrieve information about a VM."""
    try:
        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref, "network", "summary")
            info = await client.report_vm(vm)

        write_document(ctx, info)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def note_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    text: str = typer.Argument(None, help="Note text, or a file holding it; read from stdin if omitted"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace notes instead of appending"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Append notes to a VM.

    Existing notes are kept and separated from the new text by a blank line,
    unless --overwrite is given.
    """
    try:
        note = read_text_argument(text)
        properties = () if overwrite else ("config.annotation",)

        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref, *properties)
            await client.assign_note(vm, note, overwrite)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def power_vm(
    ctx: typer.Context,
    state: PowerAction = typer.Argument(..., help="Requested power state", case_sensitive=False),
    target: str = typer.Argument(..., help="Path of the VM"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Set the power state of a VM (on, off or suspend)."""
    try:
        async with open_client(ctx) as client:
            vm = await client.find_vm(target, target_is_ref)

            with spinner(f"Setting power state of '{target}' to {state.value}..."):
                if state == PowerAction.ON:
                    await client.ensure_on(vm)
                elif state == PowerAction.OFF:
                    await client.ensure_off(vm)
                else:
                    await client.suspend(vm)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def relocate_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    destination: str = typer.Option(
        "", "--destination", "-d", help="Destination folder; the VM does not move if empty"
    ),
    name: str = typer.Option(
        "", "--name", "-n", help="New name (or name template); the name does not change if empty"
    ),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Move and/or rename a VM.

    --name may be a name template; see 'rename' for a literal name.
    """
    if not name and not destination:
        return

    try:
        new_name = name_generator(ctx).vm_name(name) if name else ""
        await _relocate(ctx, target, new_name, destination, target_is_ref)

    except VconError as e:
        exit_with(e)


@async_to_sync
async def rename_vm(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Path of the VM"),
    destination: str = typer.Option("", "--destination", "-d", help="Destination folder for VM"),
    name: str = typer.Option("", "--name", "-n", help="New name, used as given"),
    target_is_ref: bool = typer.Option(False, "--targetIsRef", help=TARGET_IS_REF_HELP),
) -> None:
    """Move and/or rename a VM, taking --name literally."""
    if not name and not destination:
        return

    try:
        await _relocate(ctx, target, name, destination, target_is_ref)

    except VconError as e:
        exit_with(e)


async def _relocate(
    ctx: typer.Context, target: str, name: str, destination: str, target_is_ref: bool
) -> None:
    async with open_client(ctx) as client:
        vm = await client.find_vm(target, target_is_ref)
        with spinner(f"Relocating '{target}'..."):
            await client.relocate(vm, name, destination)


@async_to_sync
async def test_connection(ctx: typer.Context) -> None:
    """Test the connection to vSphere."""
    try:
        async with open_client(ctx) as client:
            print_success(f"Connected to {client.profile.vsphere} (datacenter '{client.paths.datacenter}')")

    except VconError as e:
        exit_with(e)


def show_version() -> None:
    """Report the version of vcon."""
    stdout.print(__version__, markup=False, highlight=False)
