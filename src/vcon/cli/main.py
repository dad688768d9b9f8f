"""Main CLI application."""

from pathlib import Path

import typer

from .. import __version__
from ..utils.helpers import ordered_group
from ..utils.log import setup_logging
from ..utils.output import stdout
from . import config, snapshot, vm
from ._shared import CliOptions, OutputFormat

_CMD_ORDER = [
    "clone", "configure", "destroy", "info", "note", "power", "relocate", "rename",
    "snapshot", "test", "config", "version",
]

app = typer.Typer(
    name="vcon",
    help="vcon (short for \"VM Control\") performs vSphere management tasks",
    no_args_is_help=True,
    cls=ordered_group(_CMD_ORDER),
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command("clone")(vm.clone_vm)
app.command("configure")(vm.configure_vm)
app.command("destroy")(vm.destroy_vm)
app.command("info")(vm.show_vm)
app.command("note")(vm.note_vm)
app.command("power")(vm.power_vm)
app.command("relocate")(vm.relocate_vm)
app.command("rename")(vm.rename_vm)
app.command("move", hidden=True, help="Alias of rename")(vm.rename_vm)
app.add_typer(snapshot.app, name="snapshot")
app.command("test")(vm.test_connection)
app.add_typer(config.app, name="config")
app.command("version")(vm.show_version)


def version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: Whether version flag was set
    """
    if value:
        stdout.print(f"vcon version {__version__}", highlight=False)
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Path = typer.Option(
        None, "--config", envvar="VCON_CONFIG", help="Config file (default is ~/.config/vcon/config.yaml)"
    ),
    profile: str = typer.Option(None, "--profile", envvar="VCON_PROFILE", help="Profile to use"),
    vsphere: str = typer.Option(
        None, "--vsphere", envvar="VCON_VSPHERE", help="DNS name or IP address of the vSphere instance"
    ),
    username: str = typer.Option(None, "--username", "-u", envvar="VCON_USERNAME", help="vSphere user name"),
    password: str = typer.Option(None, "--password", "-p", envvar="VCON_PASSWORD", help="vSphere user password"),
    datacenter: str = typer.Option(None, "--datacenter", envvar="VCON_DATACENTER", help="vSphere datacenter name"),
    datastore: str = typer.Option(None, "--datastore", envvar="VCON_DATASTORE", help="vSphere datastore name"),
    timeout: int = typer.Option(
        None, "--timeout", "-t", envvar="VCON_TIMEOUT", min=1,
        help="Timeout for operations, in seconds [default: 30]",
    ),
    prompt_for_password: bool = typer.Option(
        True,
        "--prompt-for-password/--no-prompt-for-password",
        envvar="VCON_PROMPT_FOR_PASSWORD",
        help="Prompt for the password when none is provided",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Emit progress messages"),
    output: OutputFormat = typer.Option(
        None, "--output", "-o", envvar="VCON_OUTPUT", case_sensitive=False, help="Output format"
    ),
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """vcon - vSphere management from the command line.

    Requests to vSphere are grouped, each group bounded by --timeout.

    Get started:
        vcon config init          # Set up your first profile
        vcon info Folder/VM       # Report on a VM
        vcon --help               # Show all available commands
    """
    setup_logging(verbose)
    ctx.obj = CliOptions(
        config_file=config_file,
        profile=profile,
        vsphere=vsphere,
        username=username,
        password=password,
        datacenter=datacenter,
        datastore=datastore,
        timeout=timeout,
        prompt_for_password=prompt_for_password,
        verbose=verbose,
        output=output,
    )


if __name__ == "__main__":
    app()
