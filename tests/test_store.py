import json
import logging
from datetime import datetime

from todo_engine.storage import InMemoryStorage, KeyValueStorage, load_state
from todo_engine.store import TodoStore, editable_text

NOW = datetime(2024, 1, 1, 8, 0)


def fixed_clock():
    return NOW


def make_store(*texts, storage=None):
    store = TodoStore(storage if storage is not None else InMemoryStorage(), clock=fixed_clock)
    for text in texts:
        store.add(text)
        store.cancel_edit()
    return store


def texts(store):
    return [t["text"] for t in store.todos]


def assert_dense(store):
    assert [t["order"] for t in store.todos] == list(range(len(store.todos)))


class BrokenStorage(KeyValueStorage):
    def get(self, key):
        return None

    def set(self, key, value):
        raise OSError("disk full")

    def remove(self, key):
        raise OSError("disk full")


class TestAdd:
    def test_add_appends_selects_and_opens_edit(self):
        store = make_store("A", "B")
        todo = store.add("C")
        assert texts(store) == ["A", "B", "C"]
        assert todo["order"] == 2
        assert store.selected_index == 2
        assert store.editing_index == 2
        assert_dense(store)

    def test_ids_are_unique_and_increasing(self):
        store = make_store("A", "B", "C")
        ids = [t["id"] for t in store.todos]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3
        assert ids[0] == int(NOW.timestamp() * 1000)

    def test_schedule_is_extracted(self):
        store = make_store()
        todo = store.add("Buy milk tomorrow 9am #errands")
        assert todo["text"] == "Buy milk #errands"
        assert todo["scheduleText"] == "tomorrow 9am"
        assert todo["scheduledAt"] is not None
        assert editable_text(todo) == "Buy milk #errands tomorrow 9am"

    def test_add_blank_then_delete_restores_collection(self):
        store = make_store("A", "B")
        before = store.todos
        blank = store.add("")
        assert blank["text"] == ""
        assert store.delete(blank["id"])
        assert store.todos == before

    def test_add_blank_to_empty_then_delete_resets_cursor(self):
        store = make_store()
        blank = store.add("")
        assert store.delete(blank["id"])
        assert store.todos == []
        assert store.selected_index == 0
        assert store.editing_index is None

    def test_add_hidden_by_tag_filter_does_not_open_edit(self):
        store = make_store("A #work", "B #work")
        store.set_selected_tag("#work")
        store.add("plain")
        assert store.editing_index is None
        assert store.selected_index == 1
        assert len(store.filtered_view()) == 2

    def test_changes_are_persisted(self):
        storage = InMemoryStorage()
        store = make_store("A #x", storage=storage)
        assert json.loads(storage.get("todos")) == store.todos
        assert json.loads(storage.get("tagColorMap")) == {"#x": 0}


class TestMutations:
    def test_toggle_and_unknown_ids(self):
        store = make_store("A")
        todo_id = store.todos[0]["id"]
        assert store.toggle_completed(todo_id)
        assert store.todos[0]["completed"] is True
        assert not store.toggle_completed(12345)
        assert not store.delete(12345)
        assert not store.update(12345, "x")

    def test_update_reparses_schedule(self):
        store = make_store("Call mom tomorrow")
        todo_id = store.todos[0]["id"]
        assert store.update(todo_id, "Call dad")
        todo = store.get(todo_id)
        assert todo["text"] == "Call dad"
        assert todo["scheduledAt"] is None
        assert todo["scheduleText"] is None

    def test_delete_compacts_order_and_clamps_selection(self):
        store = make_store("A", "B", "C")
        store.select(2)
        assert store.delete(store.todos[2]["id"])
        assert texts(store) == ["A", "B"]
        assert store.selected_index == 1
        assert_dense(store)

    def test_reorder_moves_and_selection_follows(self):
        store = make_store("A", "B", "C")
        store.select(0)
        assert store.reorder(0, 2)
        assert texts(store) == ["B", "C", "A"]
        assert store.selected_index == 2
        assert_dense(store)

    def test_reorder_round_trip(self):
        store = make_store("A", "B", "C", "D")
        before = store.todos
        store.reorder(1, 3)
        store.reorder(3, 1)
        assert store.todos == before

    def test_reorder_shifts_displaced_selection(self):
        store = make_store("A", "B", "C")
        store.select(1)
        store.reorder(0, 2)
        assert store.selected_index == 0

    def test_reorder_out_of_range_is_noop(self):
        store = make_store("A", "B")
        before = store.todos
        assert not store.reorder(0, 5)
        assert not store.reorder(-1, 0)
        assert store.todos == before

    def test_clear_all(self):
        storage = InMemoryStorage()
        store = make_store("A", "B", storage=storage)
        assert store.clear_all()
        assert store.todos == []
        assert store.selected_index == 0
        assert json.loads(storage.get("todos")) == []
        assert not store.clear_all()

    def test_save_current_and_add_new(self):
        store = make_store()
        first = store.add("")
        blank = store.save_current_and_add_new(first["id"], "Write tests #dev")
        assert texts(store) == ["Write tests #dev", ""]
        assert blank["text"] == ""
        assert store.editing_index == 1
        assert store.tag_color_map == {"#dev": 0}


    def test_save_current_and_add_new_unknown_id_is_noop(self):
        store = make_store("A")
        before = store.todos
        assert store.save_current_and_add_new(12345, "ghost") is None
        assert store.todos == before


class TestFilters:
    def test_completion_filter_is_persisted(self):
        storage = InMemoryStorage()
        store = make_store("A", "B", storage=storage)
        store.toggle_completed(store.todos[0]["id"])
        assert store.set_completion_filter("hideCompleted")
        assert [t["text"] for t in store.filtered_view()] == ["B"]
        assert json.loads(storage.get("completionFilter")) == "hideCompleted"
        assert not store.set_completion_filter("hideCompleted")
        assert not store.set_completion_filter("bogus")

    def test_selected_tag_resets_selection(self):
        store = make_store("A #x", "B", "C #x")
        store.select(2)
        assert store.set_selected_tag("#x")
        assert store.selected_index == 0
        assert [t["text"] for t in store.filtered_view()] == ["A #x", "C #x"]
        assert store.set_selected_tag(None)
        assert store.selected_tag is None

    def test_tag_colors_follow_tags(self):
        store = make_store("A #b", "B #a")
        assert store.tag_color_map == {"#b": 0, "#a": 1}
        store.delete(store.todos[0]["id"])
        assert store.tag_color_map == {"#a": 1}
        store.add("C #c")
        assert store.tag_color_map == {"#a": 1, "#c": 0}


class TestEditing:
    def test_only_one_edit_at_a_time(self):
        store = make_store("A", "B")
        assert store.begin_edit(0)
        assert not store.begin_edit(1)
        assert store.editing_index == 0
        assert not store.select(1)

    def test_commit_edit_saves_text(self):
        store = make_store("A")
        store.begin_edit(0)
        assert store.commit_edit("A tonight")
        todo = store.todos[0]
        assert todo["text"] == "A"
        assert todo["scheduleText"] == "tonight"
        assert store.editing_index is None

    def test_commit_blank_keeps_row(self):
        store = make_store("A", "B")
        store.begin_edit(1)
        assert store.commit_edit("   ")
        assert texts(store) == ["A", ""]
        assert store.editing_index is None

    def test_commit_or_discard_blank_deletes_row(self):
        store = make_store("A", "B")
        store.begin_edit(1)
        assert store.commit_or_discard_edit("   ")
        assert texts(store) == ["A"]
        assert store.editing_index is None

    def test_commit_or_discard_saves_text(self):
        store = make_store("A")
        store.begin_edit(0)
        assert store.commit_or_discard_edit("A edited")
        assert texts(store) == ["A edited"]
        assert store.editing_index is None

    def test_cancel_keeps_text_unless_blank(self):
        store = make_store("A")
        store.begin_edit(0)
        assert store.cancel_edit("changed but cancelled")
        assert texts(store) == ["A"]

        store.add("")
        assert store.cancel_edit()
        assert texts(store) == ["A"]

    def test_blur_behaves_like_cancel(self):
        store = make_store("A")
        store.begin_edit(0)
        assert store.blur_edit("")
        assert store.todos == []

    def test_move_selection_clamps(self):
        store = make_store("A", "B")
        store.select(0)
        assert not store.move_selection(-1)
        assert store.move_selection(5)
        assert store.selected_index == 1


class TestPersistence:
    def test_storage_failures_do_not_undo_changes(self, caplog):
        store = TodoStore(BrokenStorage(), clock=fixed_clock)
        with caplog.at_level(logging.ERROR, logger="todo_engine.store"):
            store.add("still here")
        assert texts(store) == ["still here"]
        assert any("Failed to persist" in r.getMessage() for r in caplog.records)

    def test_reload_from_storage(self):
        storage = InMemoryStorage()
        first = make_store("A #x", "B", storage=storage)
        first.set_completion_filter("showCompletedOnly")
        second = TodoStore(storage, clock=fixed_clock)
        assert second.todos == first.todos
        assert second.completion_filter == "showCompletedOnly"
        assert second.tag_color_map == {"#x": 0}
        assert second.selected_index == 0
        assert second.editing_index is None

    def test_new_ids_stay_above_loaded_ids(self):
        storage = InMemoryStorage({"todos": json.dumps([{"id": 10**15, "text": "future", "order": 0}])})
        store = TodoStore(storage, clock=fixed_clock)
        assert store.add("next")["id"] == 10**15 + 1


class TestLoadState:
    def test_legacy_hide_completed_is_migrated(self):
        storage = InMemoryStorage({"hideCompleted": "true"})
        state = load_state(storage)
        assert state.completion_filter == "hideCompleted"
        assert storage.get("hideCompleted") is None
        assert json.loads(storage.get("completionFilter")) == "hideCompleted"

    def test_valid_filter_wins_over_legacy_key(self):
        storage = InMemoryStorage({"completionFilter": '"showCompletedOnly"', "hideCompleted": "true"})
        assert load_state(storage).completion_filter == "showCompletedOnly"
        assert storage.get("hideCompleted") is None

    def test_defaults_when_empty(self):
        state = load_state(InMemoryStorage())
        assert state.todos == []
        assert state.completion_filter == "all"
        assert state.tag_color_map == {}

    def test_todos_are_normalized(self):
        raw = [
            {"id": 2, "text": "second", "completed": True, "order": 5, "scheduledAt": "2024-01-02T09:00:00.000Z"},
            {"id": 1, "text": "first", "order": 1},
            {"text": "no id"},
            "garbage",
        ]
        storage = InMemoryStorage({"todos": json.dumps(raw)})
        todos = load_state(storage).todos
        assert [t["id"] for t in todos] == [1, 2]
        assert [t["order"] for t in todos] == [0, 1]
        assert todos[1]["completed"] is True
        # scheduledAt without scheduleText is dropped as a pair
        assert todos[1]["scheduledAt"] is None
        assert todos[1]["scheduleText"] is None

    def test_duplicate_ids_keep_first_record(self, caplog):
        raw = [{"id": 5, "text": "first", "order": 0}, {"id": 5, "text": "again", "order": 1}, {"id": 6, "text": "other"}]
        storage = InMemoryStorage({"todos": json.dumps(raw)})
        with caplog.at_level(logging.WARNING, logger="todo_engine.storage"):
            todos = load_state(storage).todos
        assert [(t["id"], t["text"]) for t in todos] == [(5, "first"), (6, "other")]
        assert [t["order"] for t in todos] == [0, 1]
        assert any("duplicate id" in r.getMessage() for r in caplog.records)

        store = TodoStore(storage, clock=fixed_clock)
        assert store.delete(5)
        assert store.get(5) is None

    def test_malformed_json_is_ignored(self):
        storage = InMemoryStorage({"todos": "{not json", "tagColorMap": '{"#a": 2, "#b": "x"}'})
        state = load_state(storage)
        assert state.todos == []
        assert state.tag_color_map == {"#a": 2}
