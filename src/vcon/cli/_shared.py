"""Shared plumbing for the vcon commands.

Global options are collected into :class:`CliOptions` by the root callback
and handed to every command through ``ctx.obj``.
"""

from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, NoReturn

import typer
from pydantic import BaseModel, ValidationError
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api.client import VSphereClient
from ..api.exceptions import ConfigError, UnclassifiedError, VconError
from ..config import ConfigManager, ProfileConfig
from ..models.vm import NetworkChange, VirtualMachineConfiguration
from ..utils import console, emit, print_error, print_warning, prompt_password
from ..utils.naming import NameGenerator

TARGET_IS_REF_HELP = "TARGET parameter is the target VM's managed object reference"


class OutputFormat(str, Enum):
    """Document format for command results."""

    JSON = "json"
    YAML = "yaml"


class CliOptions(BaseModel):
    """Global options, already merged with their ``VCON_*`` environment variables."""

    config_file: Path | None = None
    profile: str | None = None
    vsphere: str | None = None
    username: str | None = None
    password: str | None = None
    datacenter: str | None = None
    datastore: str | None = None
    timeout: int | None = None
    prompt_for_password: bool = True
    verbose: bool = False
    output: OutputFormat | None = None

    def config_manager(self) -> ConfigManager:
        return ConfigManager(self.config_file)

    def stored(self) -> tuple[dict[str, Any], str | None]:
        """Values from the selected profile, and the configured output format."""
        manager = self.config_manager()
        if not manager.exists():
            if self.config_file is not None:
                raise ConfigError(f"Could not use requested config file: {self.config_file}")
            if self.profile is not None:
                raise ConfigError(f"Profile '{self.profile}' not found: no configuration file")
            return {}, None

        config = manager.get()
        if self.profile is None and config.default_profile is None:
            return {}, config.output.format
        profile = manager.get_profile(self.profile)
        return profile.model_dump(), config.output.format

    def resolve(self) -> tuple[ProfileConfig, OutputFormat]:
        """Merge flags and environment over the stored profile.

        Returns:
            Connection profile and output format

        Raises:
            ConfigError: If no vSphere address is known or a value is invalid
        """
        values, stored_format = self.stored()
        overrides = {
            "vsphere": self.vsphere,
            "username": self.username,
            "password": self.password,
            "datacenter": self.datacenter,
            "datastore": self.datastore,
            "timeout": self.timeout,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        values.setdefault("username", "")

        if not values.get("vsphere"):
            raise ConfigError(
                "No vSphere address given. Use --vsphere, VCON_VSPHERE or 'vcon config add'."
            )

        try:
            profile = ProfileConfig(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid connection settings: {_validation_summary(e)}") from e

        return profile, self.output or OutputFormat(stored_format or "json")

    def output_format(self) -> OutputFormat:
        """Output format without requiring connection settings."""
        if self.output is not None:
            return self.output
        manager = self.config_manager()
        if manager.exists():
            return OutputFormat(manager.get().output.format)
        return OutputFormat.JSON


def options(ctx: typer.Context) -> CliOptions:
    """Global options stored by the root callback."""
    obj = ctx.find_root().obj
    return obj if isinstance(obj, CliOptions) else CliOptions()


def _validation_summary(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in error.errors()
    )


def parse_configuration(text: str) -> VirtualMachineConfiguration:
    """Parse a JSON configuration patch (``{"cpus": 2, "memory": 4096, "network": "VM Network"}``).

    Raises:
        UnclassifiedError: If the text is not a valid patch
    """
    try:
        return VirtualMachineConfiguration.model_validate_json(text)
    except ValidationError as e:
        raise UnclassifiedError(f"Invalid configuration: {_validation_summary(e)}") from e


def name_generator(ctx: typer.Context) -> NameGenerator:
    """Template evaluator bound to the configured vSphere user."""
    opts = options(ctx)
    username = opts.username or ""
    if not username:
        try:
            values, _ = opts.stored()
        except ConfigError:
            values = {}
        username = values.get("username", "")
    return NameGenerator(vsphere_username=username)


@asynccontextmanager
async def open_client(ctx: typer.Context) -> AsyncIterator[VSphereClient]:
    """Resolve settings, prompt for a missing password and connect.

    Yields:
        Connected client, closed on exit
    """
    opts = options(ctx)
    profile, _ = opts.resolve()

    if not profile.password and opts.prompt_for_password:
        profile = profile.model_copy(
            update={"password": prompt_password(f"Password for {profile.username or 'vSphere'}")}
        )

    async with VSphereClient(profile) as client:
        yield client


@contextmanager
def spinner(description: str) -> Iterator[None]:
    """Transient spinner on stderr, shown only on a terminal."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
        disable=not console.is_terminal,
    ) as progress:
        progress.add_task(description=description, total=None)
        yield


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def write_document(ctx: typer.Context, document: Any) -> None:
    """Write a result (model, list of models or plain data) to stdout."""
    emit(_plain(document), options(ctx).output_format().value)


def report_network_change(change: NetworkChange | None) -> None:
    """Warn about adapters that could not be rewired."""
    if change is None:
        return
    for failure in change.failures:
        print_warning(
            f"Could not attach {failure.device} to network '{change.requested}': {failure.error}"
        )


def exit_with(error: VconError) -> NoReturn:
    """Print a one-line error and exit with the error's code."""
    print_error(str(error))
    raise typer.Exit(error.exit_code)
