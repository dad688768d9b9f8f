"""Name templates for new VMs and snapshots.

A template is literal text with ``{{ Func "arg" }}`` actions, e.g.
``{{ Username }} - {{ Now "YYYY-MM-dd" }}``. Functions:

- ``Env NAME``: environment variable, empty if unset
- ``Now [FORMAT]`` / ``UtcNow [FORMAT]``: current time, Joda-style format
- ``Username``: display name of the current OS user (login name if unset)
- ``VsUsername``: configured vSphere user name

A template that cannot be parsed or evaluated yields a random UUID.
"""

import getpass
import logging
import os
import re
import shlex
import sys
import uuid
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_DATETIME_FORMAT = "YYYY-MM-dd hh:mm:ss"
VM_NAME_TEMPLATE = "{{ Username }} - {{ Now }}"
SNAPSHOT_NAME_TEMPLATE = "Snapshot - {{ Username }} - {{ Now }}"
UNKNOWN_USER = "Unknown user"

_ACTION = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_JODA_TOKEN = re.compile(r"'[^']*'|([A-Za-z])\1*")


class TemplateError(ValueError):
    """Raised when a name template cannot be parsed or evaluated."""


def _trim_domain(username: str) -> str:
    return username.split("@", 1)[0]


def _joda_field(dt: datetime, letter: str, width: int) -> str | None:
    if letter in "yY":
        if width == 2:
            return f"{dt.year % 100:02d}"
        return str(dt.year).zfill(width)
    if letter == "M":
        if width >= 4:
            return dt.strftime("%B")
        if width == 3:
            return dt.strftime("%b")
        return str(dt.month).zfill(width)
    if letter == "d":
        return str(dt.day).zfill(width)
    if letter == "D":
        return str(dt.timetuple().tm_yday).zfill(width)
    if letter == "H":
        return str(dt.hour).zfill(width)
    if letter == "h":
        return str(dt.hour % 12 or 12).zfill(width)
    if letter == "k":
        return str(dt.hour or 24).zfill(width)
    if letter == "K":
        return str(dt.hour % 12).zfill(width)
    if letter == "m":
        return str(dt.minute).zfill(width)
    if letter == "s":
        return str(dt.second).zfill(width)
    if letter == "S":
        return f"{dt.microsecond:06d}"[:width].ljust(width, "0")
    if letter == "a":
        return "AM" if dt.hour < 12 else "PM"
    if letter == "E":
        return dt.strftime("%A" if width >= 4 else "%a")
    if letter == "Z":
        return dt.strftime("%z")
    if letter == "z":
        return dt.strftime("%Z")
    return None


def format_joda(dt: datetime, pattern: str) -> str:
    """Format ``dt`` with a Joda-style pattern (``YYYY-MM-dd HH:mm:ss``).

    Text in single quotes is copied literally; unknown letters are kept as is.
    """
    parts = []
    pos = 0
    for match in _JODA_TOKEN.finditer(pattern):
        parts.append(pattern[pos:match.start()])
        token = match.group(0)
        if token.startswith("'"):
            parts.append(token[1:-1] or "'")
        else:
            value = _joda_field(dt, token[0], len(token))
            parts.append(token if value is None else value)
        pos = match.end()
    parts.append(pattern[pos:])
    return "".join(parts)


def _display_name() -> str:
    """Full name from the password database (GECOS), empty if unavailable."""
    if sys.platform == "win32":
        return ""
    import pwd

    try:
        gecos = pwd.getpwuid(os.getuid()).pw_gecos
    except KeyError:
        return ""
    return gecos.split(",", 1)[0].strip()


def current_username() -> str:
    """Display name of the current OS user, without any ``@domain`` suffix."""
    try:
        name = _display_name() or getpass.getuser()
    except (KeyError, OSError):
        return UNKNOWN_USER
    return _trim_domain(name) if name else UNKNOWN_USER


class NameGenerator:
    """Evaluate name templates against a fixed function registry."""

    def __init__(self, vsphere_username: str = "", clock: Callable[[], datetime] | None = None) -> None:
        """Initialize generator.

        Args:
            vsphere_username: User name reported by ``VsUsername``
            clock: Returns the current local time (``datetime.now`` if None)
        """
        self.vsphere_username = vsphere_username
        self.clock = clock or datetime.now
        self.functions: dict[str, Callable[..., str]] = {
            "Env": self._env,
            "Now": self._now,
            "UtcNow": self._utc_now,
            "Username": current_username,
            "VsUsername": lambda: _trim_domain(self.vsphere_username),
        }

    @staticmethod
    def _env(name: str) -> str:
        return os.environ.get(name, "")

    def _now(self, fmt: str = DEFAULT_DATETIME_FORMAT) -> str:
        return format_joda(self.clock(), fmt)

    def _utc_now(self, fmt: str = DEFAULT_DATETIME_FORMAT) -> str:
        return format_joda(self.clock().astimezone(timezone.utc), fmt)

    def _call(self, action: str) -> str:
        try:
            words = shlex.split(action)
        except ValueError as e:
            raise TemplateError(f"bad action '{{{{{action}}}}}': {e}") from e
        if not words:
            raise TemplateError("empty action")

        name, *args = words
        func = self.functions.get(name)
        if func is None:
            raise TemplateError(f"function '{name}' not defined")
        try:
            return func(*args)
        except TypeError as e:
            raise TemplateError(f"wrong arguments for '{name}': {e}") from e

    def render(self, template: str) -> str:
        """Evaluate a template.

        Raises:
            TemplateError: If the template cannot be parsed or evaluated
        """
        if "{{" in _ACTION.sub("", template):
            raise TemplateError("unclosed action")
        return _ACTION.sub(lambda m: self._call(m.group(1)), template)

    def generate(self, template: str) -> str:
        """Evaluate a template, falling back to a random UUID on failure."""
        try:
            return self.render(template)
        except TemplateError as e:
            logger.error("Template error: %s", e)
            return str(uuid.uuid1())

    def vm_name(self, template: str | None = None) -> str:
        """Name for a new VM (``{{ Username }} - {{ Now }}`` by default)."""
        return self.generate(template or VM_NAME_TEMPLATE)

    def snapshot_name(self, template: str | None = None) -> str:
        """Name for a new snapshot."""
        return self.generate(template or SNAPSHOT_NAME_TEMPLATE)
