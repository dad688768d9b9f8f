"""Profile management commands."""

import typer
from rich.panel import Panel

from ..api.exceptions import VconError
from ..config import ConfigManager, ProfileConfig
from ..utils import (
    confirm,
    console,
    create_table,
    ordered_group,
    pick_profile,
    pick_profiles,
    print_cancelled,
    print_error,
    print_info,
    print_success,
    prompt,
    prompt_password,
)
from ._shared import exit_with, options

app = typer.Typer(
    help="Manage vcon connection profiles",
    no_args_is_help=True,
    cls=ordered_group(["init", "add", "list", "show", "default", "remove"]),
)


# ── Shared helpers ───────────────────────────────────────────────────────


def _pick_profile(config_manager: ConfigManager) -> str | None:
    """Interactive single-select for a profile. Returns profile name or None."""
    if not config_manager.exists():
        print_info("No configuration found. Run 'vcon config add' first.")
        return None

    config = config_manager.get()
    if not config.profiles:
        print_info("No profiles configured. Run 'vcon config add' to create one.")
        return None

    name = pick_profile(sorted(config.profiles), "  Select profile:", config.default_profile)
    if name is None:
        print_cancelled()
    return name


def _check_profile_exists(config_manager: ConfigManager, name: str) -> None:
    """Raise typer.Exit if profile already exists."""
    if config_manager.exists() and name in config_manager.get().profiles:
        print_error(f"Profile '{name}' already exists. Remove it first to replace it.")
        raise typer.Exit(1)


def _collect_profile_values(
    config_manager: ConfigManager,
    values: dict,
    ask_password: bool,
) -> dict:
    """Prompt for any connection value not given on the command line."""
    console.print("\n[bold cyan]═══ Profile Setup ═══[/bold cyan]\n")

    if values["name"] is None:
        values["name"] = prompt("Profile name", default="default")
    _check_profile_exists(config_manager, values["name"])

    if values["vsphere"] is None:
        while not (val := prompt("vSphere address (host name or IP)")):
            print_error("Address is required")
        values["vsphere"] = val

    if values["username"] is None:
        values["username"] = prompt("Username", default="administrator@vsphere.local")

    if values["password"] is None and ask_password:
        console.print("[dim]Leave the password blank to be prompted on every command.[/dim]")
        values["password"] = prompt_password("Password") or None

    if values["datacenter"] is None:
        values["datacenter"] = prompt("Data center (blank for the only one)", default="")

    if values["datastore"] is None:
        values["datastore"] = prompt("Data store (blank for the only one)", default="")

    return values


def _build_profile(values: dict, timeout: int, verify_ssl: bool) -> ProfileConfig:
    """Validate collected values into a profile."""
    try:
        return ProfileConfig(
            vsphere=values["vsphere"],
            username=values["username"] or "",
            password=values["password"],
            datacenter=values["datacenter"] or "",
            datastore=values["datastore"] or "",
            timeout=timeout,
            verify_ssl=verify_ssl,
        )
    except ValueError as e:
        print_error(f"Invalid profile: {e}")
        raise typer.Exit(1)


def _render_profile_panel(name: str, profile: ProfileConfig, is_default: bool = False) -> Panel:
    """Build a Rich Panel for a profile."""
    lines = [
        "[bold]── Connection ──[/bold]",
        f"[bold]vSphere:[/bold]     {profile.vsphere}:{profile.port}",
        f"[bold]User:[/bold]        {profile.username or '-'}",
        f"[bold]Password:[/bold]    {'(stored, encrypted)' if profile.password else '(prompt)'}",
        f"[bold]SSL:[/bold]         {'Verified' if profile.verify_ssl else 'Not verified'}",
        "",
        "[bold]── Placement ──[/bold]",
        f"[bold]Data center:[/bold] {profile.datacenter or '(only one)'}",
        f"[bold]Data store:[/bold]  {profile.datastore or '(only one)'}",
        f"[bold]Timeout:[/bold]     {profile.timeout}s",
    ]

    if is_default:
        lines.append("")
        lines.append("[green]Default profile[/green]")

    return Panel("\n".join(lines), title=f"Profile: {name}", border_style="blue")


def _save_profile(config_manager: ConfigManager, name: str, profile: ProfileConfig, ask: bool) -> None:
    is_first = not config_manager.exists() or not config_manager.get().profiles
    config_manager.add_profile(name, profile)

    if is_first:
        print_success(f"Profile '{name}' added (set as default)")
    elif ask and confirm("Set as default profile?", default=False):
        config_manager.set_default_profile(name)
        print_success(f"Profile '{name}' added (set as default)")
    else:
        print_success(f"Profile '{name}' added")


# ── config init ──────────────────────────────────────────────────────────


@app.command("init")
def init_config(ctx: typer.Context) -> None:
    """Create the configuration file with a first profile, interactively."""
    config_manager = options(ctx).config_manager()

    try:
        if config_manager.exists():
            print_error(
                f"Configuration already exists at {config_manager.config_file}. "
                "Use 'vcon config add' to add a profile."
            )
            raise typer.Exit(1)

        values = dict.fromkeys(["vsphere", "username", "password", "datacenter", "datastore"])
        values["name"] = "default"
        values = _collect_profile_values(config_manager, values, ask_password=True)
        profile = _build_profile(values, timeout=30, verify_ssl=False)

        _save_profile(config_manager, values["name"], profile, ask=False)
        print_info(f"Configuration written to {config_manager.config_file}")

    except KeyboardInterrupt:
        console.print()
        print_cancelled()
    except VconError as e:
        exit_with(e)


# ── config add ───────────────────────────────────────────────────────────


@app.command("add")
def add_profile(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Profile name"),
    vsphere: str = typer.Option(None, "--vsphere", help="vSphere host name or IP address"),
    username: str = typer.Option(None, "--username", "-u", help="vSphere user name"),
    password: str = typer.Option(None, "--password", "-p", help="Password (stored encrypted)"),
    datacenter: str = typer.Option(None, "--datacenter", help="Data center name"),
    datastore: str = typer.Option(None, "--datastore", help="Data store name"),
    timeout: int = typer.Option(30, "--timeout", "-t", min=1, help="Timeout for operations, in seconds"),
    verify_ssl: bool = typer.Option(False, "--verify-ssl", is_flag=True, help="Verify SSL certificate"),
    yes: bool = typer.Option(False, "--yes", "-y", is_flag=True, help="Save without confirmation"),
) -> None:
    """Add a new profile, prompting for anything not given."""
    config_manager = options(ctx).config_manager()

    try:
        if name is not None:
            _check_profile_exists(config_manager, name)

        values = {
            "name": name,
            "vsphere": vsphere,
            "username": username,
            "password": password,
            "datacenter": datacenter,
            "datastore": datastore,
        }
        if any(values[k] is None for k in ("name", "vsphere", "username")):
            values = _collect_profile_values(config_manager, values, ask_password=password is None)

        profile = _build_profile(values, timeout, verify_ssl)

        if not yes:
            console.print()
            console.print(_render_profile_panel(values["name"], profile))
            if not confirm("\nSave this profile?", default=True):
                print_cancelled()
                raise typer.Exit()

        _save_profile(config_manager, values["name"], profile, ask=not yes)

    except KeyboardInterrupt:
        console.print()
        print_cancelled()
    except VconError as e:
        exit_with(e)


# ── config remove ────────────────────────────────────────────────────────


@app.command("remove")
def remove_profile(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Profile name"),
    yes: bool = typer.Option(False, "--yes", "-y", is_flag=True, help="Remove without confirmation"),
) -> None:
    """Remove one or more profiles."""
    config_manager = options(ctx).config_manager()

    try:
        if not name:
            config = config_manager.get()
            if not config.profiles:
                print_info("No profiles configured. Run 'vcon config add' to create one.")
                return

            selected = pick_profiles(sorted(config.profiles), "  Profiles to remove:", config.default_profile)
            if not selected:
                print_cancelled()
                return
        else:
            selected = [name]

        label = ", ".join(f"'{n}'" for n in selected)
        if not yes and not confirm(f"Remove profile(s) {label}?", default=False):
            print_cancelled()
            return

        for n in selected:
            config_manager.remove_profile(n)

        if len(selected) == 1:
            print_success(f"Profile '{selected[0]}' removed")
        else:
            print_success(f"{len(selected)} profiles removed: {', '.join(selected)}")

    except VconError as e:
        exit_with(e)


# ── config default ───────────────────────────────────────────────────────


@app.command("default")
def set_default(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Profile name"),
) -> None:
    """Set the default profile."""
    config_manager = options(ctx).config_manager()

    try:
        if not name:
            name = _pick_profile(config_manager)
            if name is None:
                return

        config_manager.set_default_profile(name)
        print_success(f"Default profile set to '{name}'")

    except VconError as e:
        exit_with(e)


# ── config list ──────────────────────────────────────────────────────────


@app.command("list")
def list_profiles(ctx: typer.Context) -> None:
    """List all profiles."""
    config_manager = options(ctx).config_manager()

    try:
        if not config_manager.exists() or not config_manager.get().profiles:
            print_info("No profiles configured. Run 'vcon config add' to create one.")
            return

        config = config_manager.get()
        table = create_table(
            title="Configured Profiles",
            columns=[
                ("Profile", "cyan"),
                ("vSphere", ""),
                ("User", ""),
                ("Data center", ""),
                ("Data store", ""),
                ("Default", "green"),
            ],
        )

        for profile_name, profile in config.profiles.items():
            table.add_row(
                profile_name,
                profile.vsphere,
                profile.username or "-",
                profile.datacenter or "-",
                profile.datastore or "-",
                "✓" if profile_name == config.default_profile else "",
            )

        console.print(table)

    except VconError as e:
        exit_with(e)


# ── config show ──────────────────────────────────────────────────────────


@app.command("show")
def show_profile(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Profile name (default profile if omitted)"),
) -> None:
    """Show a profile's settings."""
    config_manager = options(ctx).config_manager()

    try:
        profile = config_manager.get_profile(name)
        config = config_manager.get()
        shown = name or config.default_profile
        console.print(_render_profile_panel(shown, profile, is_default=shown == config.default_profile))

    except VconError as e:
        exit_with(e)
