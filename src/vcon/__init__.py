"""vcon - vSphere VM control."""

__version__ = "0.3.0"
