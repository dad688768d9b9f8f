"""Entry point for ``python -m vcon``."""

from .cli.main import app

app(prog_name="vcon")
