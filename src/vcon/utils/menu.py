"""Profile pickers for the ``vcon config`` commands.

Shown when ``config default`` or ``config remove`` runs without a profile
name. The default profile is labelled in the list.
"""

from simple_term_menu import TerminalMenu

CURSOR = "> "
CURSOR_STYLE = ("fg_cyan", "bold")
MULTI_SELECT_HINT = "Space: toggle | Enter: confirm | Escape: cancel"
DEFAULT_MARK = " (default)"


def _entries(names: list[str], default: str | None) -> list[str]:
    return [f"{name}{DEFAULT_MARK}" if name == default else name for name in names]


def pick_profile(names: list[str], title: str, default: str | None = None) -> str | None:
    """Let the user choose one profile.

    The cursor starts on the default profile.

    Args:
        names: Profile names, in display order
        title: Menu title
        default: Current default profile, if any

    Returns:
        The chosen name, or None if cancelled
    """
    menu = TerminalMenu(
        _entries(names, default),
        title=title,
        cursor_index=names.index(default) if default in names else 0,
        menu_cursor=CURSOR,
        menu_cursor_style=CURSOR_STYLE,
    )
    index = menu.show()
    return None if index is None else names[index]


def pick_profiles(names: list[str], title: str, default: str | None = None) -> list[str] | None:
    """Let the user toggle any number of profiles. Returns their names, or None if cancelled."""
    menu = TerminalMenu(
        _entries(names, default),
        title=title,
        multi_select=True,
        show_multi_select_hint=True,
        show_multi_select_hint_text=MULTI_SELECT_HINT,
        multi_select_select_on_accept=False,
        menu_cursor=CURSOR,
        menu_cursor_style=CURSOR_STYLE,
    )
    selection = menu.show()
    if selection is None:
        return None
    indices = selection if isinstance(selection, tuple) else (selection,)
    return [names[i] for i in indices]
