from datetime import datetime

from dateutil import tz

from todo_engine.tags import (
    DARK_TEXT,
    LIGHT_TEXT,
    TAG_COLOR_PALETTE,
    all_tags,
    extract_tags,
    filtered_view,
    get_tag_colors,
    reconcile_tag_colors,
)

NOW = datetime(2024, 1, 1, 8, 0)


def utc(year, month, day, hour):
    local = datetime(year, month, day, hour, tzinfo=tz.tzlocal())
    return local.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def todo(id, text, completed=False, scheduled_at=None):
    return {
        "id": id,
        "text": text,
        "completed": completed,
        "order": id - 1,
        "scheduledAt": scheduled_at,
        "scheduleText": "phrase" if scheduled_at else None,
    }


class TestTagExtraction:
    def test_extract_tags(self):
        assert extract_tags("Buy #milk and #eggs, #milk again") == {"#milk", "#eggs"}
        assert extract_tags("Ship #release notes #urgent") == {"#release", "#urgent"}
        assert extract_tags("no tags here") == set()
        assert extract_tags("#Work vs #work") == {"#Work", "#work"}

    def test_all_tags_sorted_union(self):
        todos = [todo(1, "a #zeta"), todo(2, "b #alpha #zeta"), todo(3, "c")]
        assert all_tags(todos) == ["#alpha", "#zeta"]


class TestFilteredView:
    def test_tag_and_completion_filters_combine(self):
        todos = [todo(1, "a #work"), todo(2, "b #work", completed=True), todo(3, "c #home")]
        assert [t["id"] for t in filtered_view(todos, "#work")] == [1, 2]
        assert [t["id"] for t in filtered_view(todos, "#work", "hideCompleted")] == [1]
        assert [t["id"] for t in filtered_view(todos, None, "showCompletedOnly")] == [2]
        assert [t["id"] for t in filtered_view(todos)] == [1, 2, 3]

    def test_builtin_filters_partition_scheduled_todos(self):
        todos = [
            todo(1, "overdue", scheduled_at=utc(2024, 1, 1, 7)),
            todo(2, "later", scheduled_at=utc(2024, 1, 1, 17)),
            todo(3, "tomorrow", scheduled_at=utc(2024, 1, 2, 9)),
            todo(4, "unscheduled"),
        ]
        assert [t["id"] for t in filtered_view(todos, "__PAST_DUE__", now=NOW)] == [1]
        assert [t["id"] for t in filtered_view(todos, "__TODAY__", now=NOW)] == [2]
        assert [t["id"] for t in filtered_view(todos, "__TOMORROW__", now=NOW)] == [3]

    def test_view_does_not_modify_input(self):
        todos = [todo(1, "a #x"), todo(2, "b")]
        filtered_view(todos, "#x")
        assert len(todos) == 2


class TestTagColors:
    def test_existing_tags_keep_slots_and_new_tags_fill_gaps(self):
        old = {"#a": 0, "#b": 1}
        assert reconcile_tag_colors(old, ["#b", "#c"]) == {"#b": 1, "#c": 0}

    def test_new_tags_assigned_in_sorted_order(self):
        assert reconcile_tag_colors({}, ["#z", "#m", "#a"]) == {"#a": 0, "#m": 1, "#z": 2}

    def test_removed_tags_are_released(self):
        assert reconcile_tag_colors({"#gone": 3}, []) == {}

    def test_text_color_follows_luminance(self):
        light_bg = get_tag_colors("#a", {"#a": 0})
        assert light_bg.background_color == TAG_COLOR_PALETTE[0]
        assert light_bg.color == DARK_TEXT

        dark_bg = get_tag_colors("#b", {"#b": 19})
        assert dark_bg.background_color == "#6c7086"
        assert dark_bg.color == LIGHT_TEXT

    def test_slots_wrap_around_palette(self):
        wrapped = get_tag_colors("#a", {"#a": len(TAG_COLOR_PALETTE)})
        assert wrapped.background_color == TAG_COLOR_PALETTE[0]
