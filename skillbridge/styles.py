"""Shared simple_term_menu styles for SkillBridge interactive prompts."""

from __future__ import annotations

from typing import Any

TERM_MENU_STYLES: dict[str, Any] = {
    "menu_cursor": "> ",
    "menu_cursor_style": ("fg_yellow", "bold"),
    "menu_highlight_style": ("fg_yellow", "bold"),
    "shortcut_key_highlight_style": ("fg_green", "bold"),
    "shortcut_brackets_highlight_style": ("fg_green",),
    "cycle_cursor": True,
    "clear_screen": False,
}

MENU_SEPARATOR = "───────────────────────────────"

# Rich styles per target status
TARGET_STATUS_STYLES: dict[str, str] = {
    "synced": "green",
    "stale": "yellow",
    "error": "bold red",
}


def build_numbered_items(
    labels: list[str],
    footer_items: list[tuple[str, str]] | None = None,
    separator: bool = True,
) -> list[str]:
    """Build ``[N]`` prefixed menu items for *simple_term_menu*.

    Args:
        labels: Item labels to number (1-indexed).
        footer_items: Optional ``(shortcut, label)`` tuples appended after a
            separator line (e.g. ``[("s", "Skip")]``).
        separator: Whether to insert a separator line before *footer_items*.

    Returns:
        List of formatted menu strings.
    """
    width = len(str(len(labels)))
    items = [f"[{i + 1:>{width}}] {label}" for i, label in enumerate(labels)]
    if separator and footer_items:
        items.append(MENU_SEPARATOR)
    if footer_items:
        for shortcut, label in footer_items:
            items.append(f"[{shortcut}] {label}")
    return items
