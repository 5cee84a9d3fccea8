from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

from .models import TodoEntity
from .schedule import (
    PAST_DUE_FILTER,
    TODAY_FILTER,
    TOMORROW_FILTER,
    is_due_today,
    is_due_tomorrow,
    is_past_due,
)

TAG_RE = re.compile(r"#\w+")

# Catppuccin Mocha pastels
TAG_COLOR_PALETTE: List[str] = [
    "#f5e0dc", "#f2cdcd", "#f5c2e7", "#cba6f7", "#f38ba8", "#eba0ac", "#fab387", "#f9e2af", "#a6e3a1", "#94e2d5",
    "#89dceb", "#74c7ec", "#89b4fa", "#b4befe", "#cdd6f4", "#bac2de", "#a6adc8", "#9399b2", "#7f849c", "#6c7086",
    "#f5c2e7", "#cba6f7", "#f38ba8", "#eba0ac", "#fab387", "#f9e2af", "#a6e3a1", "#94e2d5", "#89dceb", "#74c7ec",
]
DARK_TEXT = "#1e1e2e"
LIGHT_TEXT = "#cdd6f4"


# PUBLIC_INTERFACE
def extract_tags(text: str) -> Set[str]:
    """Return every '#word' token in `text` (case-sensitive, duplicates collapsed)."""
    return set(TAG_RE.findall(text or ""))


# PUBLIC_INTERFACE
def all_tags(todos: Iterable[TodoEntity]) -> List[str]:
    """Sorted union of the tags used across `todos`."""
    found: Set[str] = set()
    for todo in todos:
        found |= extract_tags(todo["text"])
    return sorted(found)


def _matches_selection(todo: TodoEntity, selected: str, now: Optional[datetime]) -> bool:
    scheduled_at = todo.get("scheduledAt")
    if selected == PAST_DUE_FILTER:
        return is_past_due(scheduled_at, now)
    if selected == TODAY_FILTER:
        return is_due_today(scheduled_at, now) and not is_past_due(scheduled_at, now)
    if selected == TOMORROW_FILTER:
        return is_due_tomorrow(scheduled_at, now) and not is_past_due(scheduled_at, now)
    return selected in extract_tags(todo["text"])


def _matches_completion(todo: TodoEntity, completion_filter: str) -> bool:
    if completion_filter == "hideCompleted":
        return not todo["completed"]
    if completion_filter == "showCompletedOnly":
        return todo["completed"]
    return True


# PUBLIC_INTERFACE
def filtered_view(
    todos: Iterable[TodoEntity],
    selected: Optional[str] = None,
    completion_filter: str = "all",
    now: Optional[datetime] = None,
) -> List[TodoEntity]:
    """
    Project the canonical sequence through the active filters.

    Args:
        todos: Canonical sequence (not modified).
        selected: A '#tag', one of the built-in filter sentinels, or None for no tag filter.
        completion_filter: 'all', 'hideCompleted' or 'showCompletedOnly'.
        now: Reference instant for the schedule-based sentinels; defaults to now.

    Returns:
        The matching entities in canonical order. The due-today and due-tomorrow
        sentinels exclude past-due entities so the three built-in classes never overlap.
    """
    view = list(todos)
    if selected:
        view = [t for t in view if _matches_selection(t, selected, now)]
    return [t for t in view if _matches_completion(t, completion_filter)]


# PUBLIC_INTERFACE
def reconcile_tag_colors(old_map: Mapping[str, int], current_tags: Iterable[str]) -> Dict[str, int]:
    """
    Return the tag -> palette index map for `current_tags`.

    Tags that still exist keep their slot, tags no longer present are released, and
    each new tag (taken in sorted order) gets the lowest slot nobody else holds.
    Slots past the palette length are allowed once the palette is exhausted; rendering
    wraps them with a modulo.
    """
    wanted = sorted(set(current_tags))
    result: Dict[str, int] = {tag: old_map[tag] for tag in wanted if tag in old_map}
    used = set(result.values())
    slot = 0
    for tag in wanted:
        if tag in result:
            continue
        while slot in used:
            slot += 1
        result[tag] = slot
        used.add(slot)
    return result


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TagColors:
    """Background color for a tag chip and a readable foreground for it."""

    background_color: str
    color: str


# PUBLIC_INTERFACE
def get_tag_colors(tag: str, tag_color_map: Mapping[str, int]) -> TagColors:
    """Resolve a tag's palette color and pick dark or light text by luminance."""
    index = tag_color_map.get(tag, 0)
    background = TAG_COLOR_PALETTE[index % len(TAG_COLOR_PALETTE)]
    h = background.lstrip("#")
    r, g, b = int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return TagColors(background_color=background, color=DARK_TEXT if luminance > 0.5 else LIGHT_TEXT)
