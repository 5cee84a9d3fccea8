from __future__ import annotations

import json
import logging
from datetime import datetime
from threading import RLock
from typing import Any, Callable, List, Optional, Tuple

from .models import COMPLETION_FILTERS, EngineState, TodoEntity
from .schedule import parse_schedule
from .storage import (
    COMPLETION_FILTER_KEY,
    TAG_COLOR_MAP_KEY,
    TODOS_KEY,
    InMemoryStorage,
    KeyValueStorage,
    get_storage,
    load_state,
)
from .tags import all_tags, filtered_view, reconcile_tag_colors

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def editable_text(todo: TodoEntity) -> str:
    """Text to prefill an edit box with: the stored text plus its schedule phrase."""
    if todo.get("scheduleText"):
        return f"{todo['text']} {todo['scheduleText']}".strip()
    return todo["text"]


def _shift_index(index: int, from_index: int, to_index: int) -> int:
    """Where a view position ends up after moving the item at from_index to to_index."""
    if index == from_index:
        return to_index
    if from_index < index <= to_index:
        return index - 1
    if to_index <= index < from_index:
        return index + 1
    return index


# PUBLIC_INTERFACE
class TodoStore:
    """
    Single owner of the canonical todo sequence and the UI selection state.

    Every operation runs under one re-entrant lock and either applies fully or not at
    all. Operations return True when state changed and False for a no-op (unknown id,
    out-of-range reorder, nothing to do). After each change to the canonical sequence
    the todos and tag colors are mirrored to storage; storage failures are logged and
    never undo the in-memory change.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        state: Optional[EngineState] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._lock = RLock()
        self._storage = storage if storage is not None else InMemoryStorage()
        self._state = state if state is not None else load_state(self._storage)
        self._clock = clock
        self._last_id = max((t["id"] for t in self._state.todos), default=0)
        self._sync_tag_colors()

    # -------------------- read side --------------------
    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state.snapshot()

    @property
    def todos(self) -> List[TodoEntity]:
        with self._lock:
            return [t.copy() for t in self._state.todos]

    @property
    def selected_index(self) -> int:
        return self._state.selected_index

    @property
    def editing_index(self) -> Optional[int]:
        return self._state.editing_index

    @property
    def completion_filter(self) -> str:
        return self._state.completion_filter

    @property
    def selected_tag(self) -> Optional[str]:
        return self._state.selected_tag

    @property
    def tag_color_map(self) -> dict:
        with self._lock:
            return dict(self._state.tag_color_map)

    def now(self) -> datetime:
        return self._clock()

    def all_tags(self) -> List[str]:
        with self._lock:
            return all_tags(self._state.todos)

    def filtered_view(self) -> List[TodoEntity]:
        """The currently displayed view (active tag/sentinel and completion filter)."""
        with self._lock:
            return [t.copy() for t in self._view()]

    def snapshot(self) -> Tuple[EngineState, List[TodoEntity], List[str]]:
        """State, displayed view and tag list captured under one lock."""
        with self._lock:
            view = [t.copy() for t in self._view()]
            return self._state.snapshot(), view, all_tags(self._state.todos)

    def get(self, todo_id: int) -> Optional[TodoEntity]:
        with self._lock:
            index = self._find(todo_id)
            return None if index is None else self._state.todos[index].copy()

    def selected_todo(self) -> Optional[TodoEntity]:
        with self._lock:
            view = self._view()
            index = self._state.selected_index
            return view[index].copy() if 0 <= index < len(view) else None

    def editing_todo(self) -> Optional[TodoEntity]:
        with self._lock:
            view = self._view()
            index = self._state.editing_index
            if index is None or not 0 <= index < len(view):
                return None
            return view[index].copy()

    # -------------------- internals --------------------
    def _view(self) -> List[TodoEntity]:
        s = self._state
        return filtered_view(s.todos, s.selected_tag, s.completion_filter, self._clock())

    def _find(self, todo_id: int) -> Optional[int]:
        for index, todo in enumerate(self._state.todos):
            if todo["id"] == todo_id:
                return index
        return None

    def _allocate_id(self) -> int:
        candidate = int(self._clock().timestamp() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id

    def _renumber(self) -> None:
        for position, todo in enumerate(self._state.todos):
            todo["order"] = position

    def _new_todo(self, text: str) -> TodoEntity:
        todo: TodoEntity = {
            "id": self._allocate_id(),
            "text": "",
            "completed": False,
            "order": len(self._state.todos),
            "scheduledAt": None,
            "scheduleText": None,
        }
        self._apply_text(todo, text)
        return todo

    def _apply_text(self, todo: TodoEntity, text: str) -> None:
        parsed = parse_schedule(text, self._clock())
        todo["text"] = parsed.cleaned_text
        todo["scheduledAt"] = parsed.scheduled_at
        todo["scheduleText"] = parsed.schedule_text

    def _clamp_selection(self) -> None:
        length = len(self._view())
        s = self._state
        s.selected_index = max(0, min(s.selected_index, length - 1))
        if s.editing_index is not None and not 0 <= s.editing_index < length:
            s.editing_index = None

    def _place_cursor_on(self, todo_id: int) -> None:
        view = self._view()
        for index, todo in enumerate(view):
            if todo["id"] == todo_id:
                self._state.selected_index = index
                self._state.editing_index = index
                return
        # Hidden by the active filter: keep the selection in range and do not edit a row
        # nobody can see.
        logger.debug("New todo %s is hidden by the active filters; not opening it for editing", todo_id)
        self._state.selected_index = max(0, len(view) - 1)
        self._state.editing_index = None

    def _persist(self, key: str, value: Any) -> None:
        try:
            self._storage.set(key, json.dumps(value))
        except Exception:
            logger.exception("Failed to persist %r; keeping in-memory state", key)

    def _sync_tag_colors(self) -> None:
        colors = reconcile_tag_colors(self._state.tag_color_map, all_tags(self._state.todos))
        if colors != self._state.tag_color_map:
            self._state.tag_color_map = colors
            self._persist(TAG_COLOR_MAP_KEY, colors)

    def _commit_todos(self) -> None:
        self._persist(TODOS_KEY, self._state.todos)
        self._sync_tag_colors()

    # -------------------- mutations --------------------
    # PUBLIC_INTERFACE
    def add(self, text: str = "") -> TodoEntity:
        """
        Append a todo parsed from `text` and open it for editing.

        The selection and editing cursor move to the new entry's position in the current
        view. When the active filters hide the new entry, the selection is clamped to the
        view and no edit is opened.

        Returns:
            A copy of the created entity.
        """
        with self._lock:
            todo = self._new_todo(text)
            self._state.todos.append(todo)
            self._place_cursor_on(todo["id"])
            self._commit_todos()
            logger.debug("Added todo %s at order %s", todo["id"], todo["order"])
            return todo.copy()

    # PUBLIC_INTERFACE
    def save_current_and_add_new(self, current_id: int, current_text: str) -> Optional[TodoEntity]:
        """
        Save `current_text` into `current_id` and append a blank todo opened for editing,
        as a single state transition with a single storage write.

        Returns:
            A copy of the new blank entity, or None (and no change) when `current_id`
            is unknown.
        """
        with self._lock:
            index = self._find(current_id)
            if index is None:
                logger.debug("save_current_and_add_new: todo %s not found", current_id)
                return None
            self._apply_text(self._state.todos[index], current_text)
            todo = self._new_todo("")
            self._state.todos.append(todo)
            self._place_cursor_on(todo["id"])
            self._commit_todos()
            return todo.copy()

    # PUBLIC_INTERFACE
    def toggle_completed(self, todo_id: int) -> bool:
        """Flip 'completed' on the matching todo; order and selection are untouched."""
        with self._lock:
            index = self._find(todo_id)
            if index is None:
                logger.debug("toggle_completed: todo %s not found", todo_id)
                return False
            todo = self._state.todos[index]
            todo["completed"] = not todo["completed"]
            self._clamp_selection()
            self._commit_todos()
            return True

    # PUBLIC_INTERFACE
    def delete(self, todo_id: int) -> bool:
        """
        Remove the matching todo and compact 'order'.

        The selection is clamped to the shrunken view and any open edit is closed.
        """
        with self._lock:
            index = self._find(todo_id)
            if index is None:
                logger.debug("delete: todo %s not found", todo_id)
                return False
            del self._state.todos[index]
            self._renumber()
            view_length = len(self._view())
            self._state.selected_index = max(0, min(self._state.selected_index, view_length - 1))
            self._state.editing_index = None
            self._commit_todos()
            logger.debug("Deleted todo %s", todo_id)
            return True

    # PUBLIC_INTERFACE
    def update(self, todo_id: int, text: str) -> bool:
        """Re-parse `text` into the matching todo's text and schedule fields."""
        with self._lock:
            index = self._find(todo_id)
            if index is None:
                logger.debug("update: todo %s not found", todo_id)
                return False
            self._apply_text(self._state.todos[index], text)
            self._clamp_selection()
            self._commit_todos()
            return True

    # PUBLIC_INTERFACE
    def reorder(self, from_index: int, to_index: int) -> bool:
        """
        Move the todo at canonical position `from_index` to `to_index`.

        Out-of-range indices are rejected without touching state. The selection follows
        the moved item, and items displaced by the move shift by one.
        """
        with self._lock:
            length = len(self._state.todos)
            if not (0 <= from_index < length and 0 <= to_index < length):
                logger.debug("reorder(%s, %s) rejected for %s todos", from_index, to_index, length)
                return False
            moved = self._state.todos.pop(from_index)
            self._state.todos.insert(to_index, moved)
            self._renumber()
            s = self._state
            s.selected_index = _shift_index(s.selected_index, from_index, to_index)
            if s.editing_index is not None:
                s.editing_index = _shift_index(s.editing_index, from_index, to_index)
            self._clamp_selection()
            self._commit_todos()
            return True

    # PUBLIC_INTERFACE
    def clear_all(self) -> bool:
        """
        Drop every todo and reset the cursor. Destructive; callers confirm with the user first.
        """
        with self._lock:
            s = self._state
            changed = bool(s.todos) or s.selected_index != 0 or s.editing_index is not None
            s.todos = []
            s.selected_index = 0
            s.editing_index = None
            self._commit_todos()
            logger.info("Cleared all todos")
            return changed

    # PUBLIC_INTERFACE
    def set_completion_filter(self, mode: str) -> bool:
        """Switch between 'all', 'hideCompleted' and 'showCompletedOnly' and persist it."""
        with self._lock:
            if mode not in COMPLETION_FILTERS:
                logger.warning("Ignoring unknown completion filter %r", mode)
                return False
            if mode == self._state.completion_filter:
                return False
            self._state.completion_filter = mode
            self._state.editing_index = None
            self._clamp_selection()
            self._persist(COMPLETION_FILTER_KEY, mode)
            return True

    # PUBLIC_INTERFACE
    def set_selected_tag(self, tag: Optional[str]) -> bool:
        """Filter by a '#tag' or built-in sentinel (None clears it); the selection resets to 0."""
        with self._lock:
            s = self._state
            tag = tag or None
            changed = tag != s.selected_tag or s.selected_index != 0 or s.editing_index is not None
            s.selected_tag = tag
            s.selected_index = 0
            s.editing_index = None
            return changed

    # -------------------- selection --------------------
    def select(self, index: int) -> bool:
        """Point the selection at a view index; ignored while editing or when out of range."""
        with self._lock:
            if self._state.editing_index is not None:
                return False
            if not 0 <= index < len(self._view()) or index == self._state.selected_index:
                return False
            self._state.selected_index = index
            return True

    def move_selection(self, delta: int) -> bool:
        """Move the selection by `delta`, clamped to the current view."""
        with self._lock:
            length = len(self._view())
            target = max(0, min(self._state.selected_index + delta, length - 1))
            if target == self._state.selected_index:
                return False
            self._state.selected_index = target
            return True

    # -------------------- editing --------------------
    def begin_edit(self, index: int) -> bool:
        """Open the view row at `index` for editing. Only one edit may be open at a time."""
        with self._lock:
            if self._state.editing_index is not None:
                logger.debug("begin_edit(%s) refused: row %s is already being edited", index, self._state.editing_index)
                return False
            if not 0 <= index < len(self._view()):
                return False
            self._state.editing_index = index
            self._state.selected_index = index
            return True

    def commit_edit(self, text: str) -> bool:
        """Save the open edit and close it. Blank text is saved as-is."""
        with self._lock:
            todo = self.editing_todo()
            if todo is None:
                return False
            self.update(todo["id"], text)
            self._state.editing_index = None
            return True

    def commit_or_discard_edit(self, text: str) -> bool:
        """Save the open edit, or delete the row when `text` is blank."""
        with self._lock:
            todo = self.editing_todo()
            if todo is None:
                return False
            if not text.strip():
                return self.delete(todo["id"])
            return self.commit_edit(text)

    def cancel_edit(self, text: Optional[str] = None) -> bool:
        """
        Close the open edit without saving. The row is deleted when the typed `text`
        (or, when not given, the stored text with its schedule phrase) is blank.
        """
        with self._lock:
            todo = self.editing_todo()
            if todo is None:
                return False
            typed = editable_text(todo) if text is None else text
            if not typed.strip():
                return self.delete(todo["id"])
            self._state.editing_index = None
            return True

    def blur_edit(self, text: Optional[str] = None) -> bool:
        """Focus left the edit box: same rule as cancel."""
        return self.cancel_edit(text)


_default_store: Optional[TodoStore] = None
_default_store_lock = RLock()


# PUBLIC_INTERFACE
def get_store() -> TodoStore:
    """
    Return the process-wide store, loading it from the configured storage on first use.
    """
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = TodoStore(storage=get_storage())
        return _default_store
