from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import EngineState, TodoEntity
from .schedule import BUILTIN_FILTERS, format_scheduled_at
from .tags import TAG_RE, get_tag_colors

CompletionFilter = Literal["all", "hideCompleted", "showCompletedOnly"]


# PUBLIC_INTERFACE
class TodoText(BaseModel):
    """
    Free-form todo text. A natural-language schedule phrase inside it is extracted.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"text": "Buy milk tomorrow 9am #errands"}})

    text: str = Field(default="", description="Todo text, may contain #tags and a schedule phrase", max_length=2000)


# PUBLIC_INTERFACE
class ReorderIn(BaseModel):
    """Move the todo at canonical position from_index to to_index."""

    from_index: int = Field(..., description="Current canonical position")
    to_index: int = Field(..., description="Target canonical position")


# PUBLIC_INTERFACE
class DragEndIn(BaseModel):
    """A drag-and-drop gesture expressed in positions of the displayed view."""

    from_view_index: int = Field(..., ge=0)
    to_view_index: int = Field(..., ge=0)


# PUBLIC_INTERFACE
class CompletionFilterIn(BaseModel):
    mode: CompletionFilter = Field(..., description="all, hideCompleted or showCompletedOnly")


# PUBLIC_INTERFACE
class SelectedTagIn(BaseModel):
    """
    Tag filter selection: a '#tag', a built-in sentinel, or null to clear it.
    """

    tag: Optional[str] = Field(default=None, description="'#tag', '__PAST_DUE__', '__TODAY__', '__TOMORROW__' or null")

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, v: Optional[str]) -> Optional[str]:
        """
        Empty strings clear the filter; anything else must be a sentinel or a full '#tag'.
        """
        if v is None or v.strip() == "":
            return None
        s = v.strip()
        if s in BUILTIN_FILTERS or TAG_RE.fullmatch(s):
            return s
        raise ValueError("tag must be a '#tag' or one of the built-in filters")


# PUBLIC_INTERFACE
class KeyEventIn(BaseModel):
    """
    A key press forwarded by the UI. When editing_text is set the key was pressed
    inside the open edit box holding that text.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"key": "ArrowDown", "shift": False}})

    key: str = Field(..., min_length=1, max_length=32, description="DOM key name")
    shift: bool = Field(default=False)
    in_input: bool = Field(default=False, description="A text field held focus")
    editing_text: Optional[str] = Field(default=None, description="Current contents of the edit box")


# PUBLIC_INTERFACE
class ScheduleParseIn(BaseModel):
    text: str = Field(..., max_length=2000)
    reference: Optional[datetime] = Field(default=None, description="Reference instant; defaults to now")


# PUBLIC_INTERFACE
class ScheduleParseOut(BaseModel):
    cleaned_text: str
    scheduled_at: Optional[str]
    schedule_text: Optional[str]
    display: Optional[str] = Field(default=None, description="Human-readable due date")


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item. Field names match the persisted layout.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1704067200000,
                "text": "Buy milk #errands",
                "completed": False,
                "order": 0,
                "scheduledAt": "2024-01-02T09:00:00.000Z",
                "scheduleText": "tomorrow 9am",
                "scheduledDisplay": "Jan 2, 2024, 9:00 AM",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the todo item")
    text: str = Field(..., description="Todo text without its schedule phrase")
    completed: bool = Field(..., description="Completion status flag")
    order: int = Field(..., description="Position in the canonical sequence")
    scheduledAt: Optional[str] = Field(default=None, description="Due instant (UTC ISO-8601)")
    scheduleText: Optional[str] = Field(default=None, description="Schedule phrase as typed")
    scheduledDisplay: Optional[str] = Field(default=None, description="Human-readable due date")

    @classmethod
    def from_entity(cls, todo: TodoEntity) -> "TodoOut":
        return cls(**todo, scheduledDisplay=format_scheduled_at(todo["scheduledAt"]))


# PUBLIC_INTERFACE
class TagOut(BaseModel):
    tag: str
    background_color: str
    color: str


# PUBLIC_INTERFACE
class StateOut(BaseModel):
    """
    Snapshot of the engine for rendering: canonical todos, the displayed view and
    the cursor/filter state.
    """

    todos: List[TodoOut]
    view: List[TodoOut]
    selected_index: int
    editing_index: Optional[int]
    completion_filter: CompletionFilter
    selected_tag: Optional[str]
    tags: List[TagOut]
    tag_color_map: Dict[str, int]

    @classmethod
    def from_state(cls, state: EngineState, view: List[TodoEntity], tags: List[str]) -> "StateOut":
        return cls(
            todos=[TodoOut.from_entity(t) for t in state.todos],
            view=[TodoOut.from_entity(t) for t in view],
            selected_index=state.selected_index,
            editing_index=state.editing_index,
            completion_filter=state.completion_filter,  # type: ignore[arg-type]
            selected_tag=state.selected_tag,
            tags=[TagOut(tag=t, **asdict(get_tag_colors(t, state.tag_color_map))) for t in tags],
            tag_color_map=state.tag_color_map,
        )


# PUBLIC_INTERFACE
class MutationOut(BaseModel):
    """Result of an engine operation: whether state changed, and the state after it."""

    changed: bool = Field(..., description="False when the operation was a no-op")
    state: StateOut
