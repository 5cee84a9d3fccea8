"""
Keyboard and pointer wiring for the todo store.

The UI forwards discrete events here; this module decides which store operation
(if any) they mean. Events that arrive while an input field holds focus are ignored
unless they come through the edit path (handle_edit_key).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .store import TodoStore

logger = logging.getLogger(__name__)

CLEAR_ALL_PROMPT = "Are you sure you want to clear all todos?"
SPACE_KEYS = {" ", "Space", "Spacebar"}
NAVIGATION_KEYS = {"ArrowUp", "ArrowDown", "/"}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class KeyEvent:
    """
    A single key press.

    Fields:
    - key: DOM-style key name ('ArrowUp', 'Enter', 'Escape', 'Delete', ' ', 'e', ...)
    - shift: Whether Shift was held
    - in_input: Whether a text field held focus when the key was pressed
    """

    key: str
    shift: bool = False
    in_input: bool = False


def _deny(_: str) -> bool:
    return False


def _noop() -> None:
    return None


# PUBLIC_INTERFACE
class CommandDispatcher:
    """
    Map key, drag and click events to TodoStore operations.

    `confirm` is asked before destructive operations (clear all) and must return True
    to proceed; it refuses by default. `show_shortcuts` is invoked for '?'.
    """

    def __init__(
        self,
        store: TodoStore,
        confirm: Callable[[str], bool] = _deny,
        show_shortcuts: Callable[[], None] = _noop,
    ) -> None:
        self._store = store
        self._confirm = confirm
        self._show_shortcuts = show_shortcuts

    @property
    def store(self) -> TodoStore:
        return self._store

    def _selected_id(self) -> Optional[int]:
        todo = self._store.selected_todo()
        return None if todo is None else todo["id"]

    def _reselect(self, todo_id: Optional[int]) -> None:
        if todo_id is None:
            return
        for index, todo in enumerate(self._store.filtered_view()):
            if todo["id"] == todo_id:
                self._store.select(index)
                return

    def _move_in_view(self, from_view_index: int, to_view_index: int) -> bool:
        view = self._store.filtered_view()
        if not (0 <= from_view_index < len(view) and 0 <= to_view_index < len(view)):
            return False
        selected_id = self._selected_id()
        # 'order' is the canonical position of each row in the view
        moved = self._store.reorder(view[from_view_index]["order"], view[to_view_index]["order"])
        if moved:
            self._reselect(selected_id)
        return moved

    # PUBLIC_INTERFACE
    def handle_key(self, event: KeyEvent) -> bool:
        """
        Apply a global shortcut. Returns True when the key was acted on.

        Ignored while a text field holds focus or an edit is open.
        """
        store = self._store
        if event.in_input or store.editing_index is not None:
            return False

        key = event.key
        if key == "/":
            store.add("")
            return True
        if key == "?":
            self._show_shortcuts()
            return True
        if not store.todos:
            return False

        if event.shift and key in ("ArrowUp", "ArrowDown"):
            # Reordering through a tag filter would be ambiguous
            if store.selected_tag:
                return False
            index = store.selected_index
            target = index - 1 if key == "ArrowUp" else index + 1
            return self._move_in_view(index, target)
        if key == "ArrowUp":
            return store.move_selection(-1)
        if key == "ArrowDown":
            return store.move_selection(1)
        if key in SPACE_KEYS:
            todo_id = self._selected_id()
            return todo_id is not None and store.toggle_completed(todo_id)
        if event.shift and key == "Delete":
            if not self._confirm(CLEAR_ALL_PROMPT):
                logger.debug("Clear all declined")
                return False
            return store.clear_all()
        if key in ("Backspace", "Delete"):
            todo_id = self._selected_id()
            return todo_id is not None and store.delete(todo_id)
        if key == "e":
            return store.begin_edit(store.selected_index)
        if key == "f":
            mode = "all" if store.completion_filter == "hideCompleted" else "hideCompleted"
            return store.set_completion_filter(mode)
        if key == "c":
            mode = "all" if store.completion_filter == "showCompletedOnly" else "showCompletedOnly"
            return store.set_completion_filter(mode)
        if key == "Escape" and store.selected_tag:
            return store.set_selected_tag(None)
        return False

    # PUBLIC_INTERFACE
    def handle_edit_key(self, event: KeyEvent, text: str) -> bool:
        """
        Handle a key pressed inside the open edit box holding `text`.

        Enter saves (even blank text), Escape cancels (deleting a blank row), and
        ArrowUp/ArrowDown/'/' save or discard a blank row first and then run as global
        shortcuts. Any other key belongs to the text
        field and returns False.
        """
        store = self._store
        if store.editing_index is None:
            return False
        if event.key == "Enter":
            return store.commit_edit(text)
        if event.key == "Escape":
            return store.cancel_edit(text)
        if event.key in NAVIGATION_KEYS:
            store.commit_or_discard_edit(text)
            self.handle_key(KeyEvent(event.key, shift=event.shift))
            return True
        return False

    # PUBLIC_INTERFACE
    def drag_end(self, from_view_index: int, to_view_index: int) -> bool:
        """Drop a dragged row: view positions are translated to canonical positions."""
        return self._move_in_view(from_view_index, to_view_index)

    # PUBLIC_INTERFACE
    def click(self, view_index: int) -> bool:
        """Select a row by clicking it (ignored while editing)."""
        return self._store.select(view_index)
