"""Authentication handling for the vSphere API."""

import logging
from typing import Any

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim

from .exceptions import ConnectionFailure, fault_message

logger = logging.getLogger(__name__)


class AuthHandler:
    """Handle login and logout against vCenter or ESXi.

    Methods here block; callers run them inside a deadline.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        verify_ssl: bool = False,
        timeout: float | None = None,
    ) -> None:
        """Initialize auth handler.

        Args:
            host: vSphere host name or IP address
            port: HTTPS port of the SDK endpoint
            user: Username (e.g. ``administrator@vsphere.local``)
            verify_ssl: Whether to verify SSL certificates
            timeout: Socket timeout in seconds for every SDK request
        """
        self.host = host
        self.port = port
        self.user = user
        self.verify_ssl = verify_ssl
        self.timeout = timeout

    def login(self, password: str | None) -> Any:
        """Log in with username and password.

        Args:
            password: User password

        Returns:
            Connected ``vim.ServiceInstance``

        Raises:
            ConnectionFailure: If credentials are missing or rejected
        """
        if not self.user or not password:
            raise ConnectionFailure("Missing username or password")

        logger.info("Connecting to %s:%s as %s", self.host, self.port, self.user)
        try:
            return SmartConnect(
                host=self.host,
                port=self.port,
                user=self.user,
                pwd=password,
                disableSslCertValidation=not self.verify_ssl,
                httpConnectionTimeout=self.timeout,
            )
        except vim.fault.InvalidLogin as e:
            raise ConnectionFailure(
                f"Invalid username or password for '{self.user}': {fault_message(e)}"
            ) from e

    def logout(self, service_instance: Any) -> None:
        """Log out of a session obtained from :meth:`login`."""
        logger.debug("Disconnecting from %s", self.host)
        Disconnect(service_instance)
