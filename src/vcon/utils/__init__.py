"""Utility functions and helpers."""

from .helpers import (
    async_to_sync,
    ordered_group,
    read_text_argument,
)
from .menu import (
    pick_profile,
    pick_profiles,
)
from .output import (
    confirm,
    console,
    create_table,
    emit,
    print_cancelled,
    print_error,
    print_info,
    print_success,
    print_warning,
    prompt,
    prompt_password,
)

__all__ = [
    "async_to_sync",
    "confirm",
    "console",
    "create_table",
    "emit",
    "ordered_group",
    "pick_profile",
    "pick_profiles",
    "print_cancelled",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "prompt",
    "prompt_password",
    "read_text_argument",
]
