from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, TypedDict

COMPLETION_FILTERS = ("all", "hideCompleted", "showCompletedOnly")


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A single todo in the canonical sequence.

    Keys mirror the persisted record layout so entities serialize as-is.

    Fields:
    - id: Unique identifier (creation timestamp in ms, bumped on collision)
    - text: Free-form text with any recognized schedule phrase removed
    - completed: Completion flag
    - order: Index of this entity in the canonical sequence
    - scheduledAt: UTC ISO-8601 due instant, or None
    - scheduleText: Verbatim schedule phrase, or None (paired with scheduledAt)
    """

    id: int
    text: str
    completed: bool
    order: int
    scheduledAt: Optional[str]
    scheduleText: Optional[str]


# PUBLIC_INTERFACE
@dataclass
class EngineState:
    """
    Everything the engine owns: the canonical sequence plus UI selection state.

    Fields:
    - todos: Canonical sequence; list position always equals each entity's 'order'
    - selected_index: Index into the current view
    - editing_index: Index into the current view of the entity being edited, or None
    - completion_filter: One of COMPLETION_FILTERS
    - selected_tag: A user '#tag', a built-in filter sentinel, or None
    - tag_color_map: Tag -> palette index
    """

    todos: List[TodoEntity] = field(default_factory=list)
    selected_index: int = 0
    editing_index: Optional[int] = None
    completion_filter: str = "all"
    selected_tag: Optional[str] = None
    tag_color_map: Dict[str, int] = field(default_factory=dict)

    def snapshot(self) -> "EngineState":
        """Return a copy that shares nothing mutable with this state."""
        return EngineState(
            todos=[t.copy() for t in self.todos],
            selected_index=self.selected_index,
            editing_index=self.editing_index,
            completion_filter=self.completion_filter,
            selected_tag=self.selected_tag,
            tag_color_map=dict(self.tag_color_map),
        )
