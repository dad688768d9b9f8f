"""Configuration models."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ProfileConfig(BaseModel):
    """Profile configuration for a vSphere installation."""

    vsphere: str
    port: int = 443
    username: str
    password: str | None = None
    datacenter: str = ""
    datastore: str = ""
    timeout: int = Field(default=30, gt=0)
    verify_ssl: bool = False

    @field_validator("vsphere")
    @classmethod
    def validate_vsphere(cls, v: str, info: Any) -> str:
        """Reduce the vSphere address to a bare host name.

        Args:
            v: Field value
            info: Validation info

        Returns:
            Host name or IP address without scheme or ``/sdk`` suffix

        Raises:
            ValueError: If nothing is left after stripping
        """
        host = v.strip()
        if "://" in host:
            host = host.split("://", 1)[1]
        host = host.split("/", 1)[0]
        if not host:
            raise ValueError(f"{info.field_name} must name a host")
        return host


class OutputConfig(BaseModel):
    """Output preferences."""

    format: str = Field(default="json", pattern="^(json|yaml)$")
