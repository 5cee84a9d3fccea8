from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import require_basic_auth
from ..dispatcher import CommandDispatcher, KeyEvent
from ..schedule import format_scheduled_at, parse_schedule
from ..schemas import (
    CompletionFilterIn,
    DragEndIn,
    KeyEventIn,
    MutationOut,
    ReorderIn,
    ScheduleParseIn,
    ScheduleParseOut,
    SelectedTagIn,
    StateOut,
    TodoText,
)
from ..store import TodoStore, get_store

router = APIRouter(
    prefix="/api/v1",
    tags=["todos"],
    dependencies=[Depends(require_basic_auth)],
)


def _get_store(store: TodoStore = Depends(get_store)) -> TodoStore:
    """
    Dependency wrapper for the store to keep signatures clean.
    """
    return store


def _state(store: TodoStore) -> StateOut:
    state, view, tags = store.snapshot()
    return StateOut.from_state(state, view, tags)


def _result(store: TodoStore, changed: bool) -> MutationOut:
    return MutationOut(changed=changed, state=_state(store))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found")


# PUBLIC_INTERFACE
@router.get(
    "/state",
    response_model=StateOut,
    summary="Engine State",
    description="Canonical todos, the displayed view, selection/editing cursor, filters and tags.",
)
def get_state(store: TodoStore = Depends(_get_store)) -> StateOut:
    """
    Return the current engine snapshot.
    """
    return _state(store)


# PUBLIC_INTERFACE
@router.post(
    "/todos",
    response_model=MutationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Todo",
    description=(
        "Append a todo. A schedule phrase in the text (e.g. 'tomorrow 9am') is extracted "
        "into scheduledAt/scheduleText. The new todo is selected and opened for editing."
    ),
)
def add_todo(payload: TodoText, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Create a new Todo.
    """
    store.add(payload.text)
    return _result(store, True)


# PUBLIC_INTERFACE
@router.post(
    "/todos/reorder",
    response_model=MutationOut,
    summary="Reorder Todos",
    description="Move a todo between canonical positions. Out-of-range positions leave state unchanged (changed=false).",
)
def reorder_todos(payload: ReorderIn, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Reorder the canonical sequence.
    """
    changed = store.reorder(payload.from_index, payload.to_index)
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.post(
    "/todos/{todo_id}/save-and-add",
    response_model=MutationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Save And Add",
    description="Save the text of the todo being edited and append a new blank todo in one step.",
    responses={404: {"description": "Todo not found"}},
)
def save_and_add(todo_id: int, payload: TodoText, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Atomically update one todo and add a blank one after it.
    """
    if store.save_current_and_add_new(todo_id, payload.text) is None:
        raise _not_found()
    return _result(store, True)


# PUBLIC_INTERFACE
@router.patch(
    "/todos/{todo_id}",
    response_model=MutationOut,
    summary="Update Todo",
    description="Replace a todo's text; its schedule is re-parsed from the new text.",
    responses={404: {"description": "Todo not found"}},
)
def update_todo(todo_id: int, payload: TodoText, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Update the text of a Todo item.
    """
    if not store.update(todo_id, payload.text):
        raise _not_found()
    return _result(store, True)


# PUBLIC_INTERFACE
@router.post(
    "/todos/{todo_id}/toggle",
    response_model=MutationOut,
    summary="Toggle Todo",
    description="Flip the completion flag of a todo.",
    responses={404: {"description": "Todo not found"}},
)
def toggle_todo(todo_id: int, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Toggle completion of a Todo item.
    """
    if not store.toggle_completed(todo_id):
        raise _not_found()
    return _result(store, True)


# PUBLIC_INTERFACE
@router.delete(
    "/todos/{todo_id}",
    response_model=MutationOut,
    summary="Delete Todo",
    description="Delete a todo by ID. The selection is clamped to the remaining view.",
    responses={404: {"description": "Todo not found"}},
)
def delete_todo(todo_id: int, store: TodoStore = Depends(_get_store)) -> MutationOut:
    """
    Delete a Todo. Returns 404 if not found.
    """
    if not store.delete(todo_id):
        raise _not_found()
    return _result(store, True)


# PUBLIC_INTERFACE
@router.delete(
    "/todos",
    response_model=MutationOut,
    summary="Clear All Todos",
    description="Delete every todo. Destructive: the caller must pass confirm=true after asking the user.",
    responses={400: {"description": "Confirmation missing"}},
)
def clear_todos(
    confirm: bool = Query(False, description="Must be true to clear all todos"),
    store: TodoStore = Depends(_get_store),
) -> MutationOut:
    """
    Clear the whole collection once the user has confirmed.
    """
    if not confirm:
        raise HTTPException(status_code=400, detail="Clearing all todos requires confirm=true")
    changed = store.clear_all()
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.put(
    "/filters/completion",
    response_model=MutationOut,
    summary="Set Completion Filter",
    description="Show all todos, hide completed ones, or show only completed ones. Persisted.",
)
def set_completion_filter(payload: CompletionFilterIn, store: TodoStore = Depends(_get_store)) -> MutationOut:
    changed = store.set_completion_filter(payload.mode)
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.put(
    "/filters/tag",
    response_model=MutationOut,
    summary="Set Tag Filter",
    description="Filter by a '#tag' or a built-in schedule filter (__PAST_DUE__, __TODAY__, __TOMORROW__); null clears.",
)
def set_selected_tag(payload: SelectedTagIn, store: TodoStore = Depends(_get_store)) -> MutationOut:
    changed = store.set_selected_tag(payload.tag)
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.post(
    "/keys",
    response_model=MutationOut,
    summary="Key Event",
    description=(
        "Forward a key press. With editing_text set the key is treated as typed in the open "
        "edit box. Shift+Delete clears everything only when confirmed=true."
    ),
)
def key_event(
    payload: KeyEventIn,
    confirmed: bool = Query(False, description="The user already confirmed a destructive shortcut"),
    store: TodoStore = Depends(_get_store),
) -> MutationOut:
    """
    Dispatch a keyboard shortcut to the engine.
    """
    dispatcher = CommandDispatcher(store, confirm=lambda _: confirmed)
    event = KeyEvent(payload.key, shift=payload.shift, in_input=payload.in_input)
    if payload.editing_text is not None:
        changed = dispatcher.handle_edit_key(event, payload.editing_text)
    else:
        changed = dispatcher.handle_key(event)
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.post(
    "/drag-end",
    response_model=MutationOut,
    summary="Drag End",
    description="Drop a dragged row. Positions refer to the displayed view.",
)
def drag_end(payload: DragEndIn, store: TodoStore = Depends(_get_store)) -> MutationOut:
    changed = CommandDispatcher(store).drag_end(payload.from_view_index, payload.to_view_index)
    return _result(store, changed)


# PUBLIC_INTERFACE
@router.post(
    "/schedule/parse",
    response_model=ScheduleParseOut,
    summary="Preview Schedule",
    description="Show how a text would be split into todo text and due date, without storing anything.",
)
def preview_schedule(payload: ScheduleParseIn, store: TodoStore = Depends(_get_store)) -> ScheduleParseOut:
    """
    Run the schedule parser against the given (or the engine's current) reference time.
    """
    parsed = parse_schedule(payload.text, payload.reference or store.now())
    return ScheduleParseOut(
        cleaned_text=parsed.cleaned_text,
        scheduled_at=parsed.scheduled_at,
        schedule_text=parsed.schedule_text,
        display=format_scheduled_at(parsed.scheduled_at),
    )
