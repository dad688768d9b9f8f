"""vSphere API client and primitives."""

from .auth import AuthHandler
from .client import VSphereClient
from .deadline import Deadline, operation_scope
from .exceptions import (
    ConfigError,
    ConnectionFailure,
    DeadlineExceeded,
    NotFoundError,
    PreconditionFailed,
    RemoteTaskFailure,
    UnclassifiedError,
    VconError,
)
from .paths import InventoryPaths
from .tasks import wait_for_task

__all__ = [
    "AuthHandler",
    "ConfigError",
    "ConnectionFailure",
    "Deadline",
    "DeadlineExceeded",
    "InventoryPaths",
    "NotFoundError",
    "PreconditionFailed",
    "RemoteTaskFailure",
    "UnclassifiedError",
    "VSphereClient",
    "VconError",
    "operation_scope",
    "wait_for_task",
]
