"""Unit tests for StudyStore."""

from dataclasses import replace
from datetime import date, datetime

import pytest

from studytrack.core.errors import PersistenceWriteFailure
from studytrack.core.models import (
    AggregateTimers,
    AttributionLevel,
    NodeRef,
    SessionRecord,
    TopicSelection,
)
from studytrack.persistence.store import StudyStore


def _record(session_id: str, project_id: str = "p1", minutes: int = 5) -> SessionRecord:
    selection = TopicSelection(NodeRef(project_id, "Thesis"), NodeRef("t1", "Chapter 3"))
    record = SessionRecord.create(selection, minutes * 60000, datetime(2025, 3, 10, 10, 0, 0))
    return replace(record, id=session_id)


# ------------------------------------------------------------------
# Schema / init_db
# ------------------------------------------------------------------

def test_init_db_creates_tables(store: StudyStore):
    conn = store._get_conn()
    tables = {
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    assert {"projects", "topics", "subtopics", "aggregate_times", "sessions", "settings"} <= tables


def test_init_db_creates_indexes(store: StudyStore):
    conn = store._get_conn()
    indexes = {
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='index'"
        ).fetchall()
    }
    assert "idx_projects_user" in indexes
    assert "idx_sessions_user_project" in indexes


def test_init_db_idempotent(store: StudyStore):
    """Calling init_db twice should not raise."""
    store.init_db()


# ------------------------------------------------------------------
# Sessions and aggregate totals
# ------------------------------------------------------------------

def test_empty_snapshot(store: StudyStore):
    timers, history = store.load_snapshot("alice")
    assert timers == AggregateTimers()
    assert history == []


def test_commit_session_round_trip(store: StudyStore):
    record = _record("session_1")
    store.commit_session("alice", record, 300000)
    timers, history = store.load_snapshot("alice")

    assert timers.topics == {"t1": 300000}
    assert len(history) == 1
    loaded = history[0]
    assert loaded == record
    assert loaded.date == date(2025, 3, 10)
    assert loaded.level == AttributionLevel.TOPIC
    assert loaded.subtopic_id is None


def test_history_is_most_recent_first(store: StudyStore):
    store.commit_session("alice", _record("session_1"), 300000)
    store.commit_session("alice", _record("session_2"), 600000)
    _, history = store.load_snapshot("alice")
    assert [r.id for r in history] == ["session_2", "session_1"]


def test_total_is_replaced_not_added(store: StudyStore):
    store.commit_session("alice", _record("session_1"), 300000)
    store.commit_session("alice", _record("session_2"), 600000)
    timers, _ = store.load_snapshot("alice")
    assert timers.topics == {"t1": 600000}


def test_failed_commit_raises_and_rolls_back(store: StudyStore):
    store.commit_session("alice", _record("session_1"), 300000)
    with pytest.raises(PersistenceWriteFailure) as excinfo:
        store.commit_session("alice", _record("session_1"), 999999)
    assert excinfo.value.operation == "session commit"
    timers, _ = store.load_snapshot("alice")
    assert timers.topics == {"t1": 300000}


def test_save_snapshot_replaces_everything(store: StudyStore):
    store.commit_session("alice", _record("session_old"), 1)
    timers = AggregateTimers(projects={"p1": 1000}, subtopics={"s1": 2000})
    history = [_record("session_b"), _record("session_a")]
    store.save_snapshot("alice", timers, history)

    loaded_timers, loaded_history = store.load_snapshot("alice")
    assert loaded_timers == timers
    assert [r.id for r in loaded_history] == ["session_b", "session_a"]


def test_delete_history_for_project(store: StudyStore):
    store.commit_session("alice", _record("session_1", "p1"), 1)
    store.commit_session("alice", _record("session_2", "p2"), 1)
    store.delete_history_for_project("alice", "p1")
    _, history = store.load_snapshot("alice")
    assert [r.project_id for r in history] == ["p2"]


def test_clear_history_is_per_user(store: StudyStore):
    store.commit_session("alice", _record("session_1"), 1)
    store.commit_session("bob", _record("session_2"), 1)
    store.clear_history("alice")
    assert store.load_snapshot("alice")[1] == []
    assert len(store.load_snapshot("bob")[1]) == 1


def test_delete_aggregates(store: StudyStore):
    store.save_snapshot("alice", AggregateTimers(projects={"p1": 1}, topics={"t1": 2, "t2": 3}), [])
    store.delete_aggregates("alice", ["p1", "t1"])
    timers, _ = store.load_snapshot("alice")
    assert timers == AggregateTimers(topics={"t2": 3})


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------

def test_setting_default(store: StudyStore):
    assert store.get_setting("alice", "timer_mode") is None
    assert store.get_setting("alice", "timer_mode", "stopwatch") == "stopwatch"


def test_setting_overwrite(store: StudyStore):
    store.set_setting("alice", "timer_mode", "focus")
    store.set_setting("alice", "timer_mode", "stopwatch")
    assert store.get_setting("alice", "timer_mode") == "stopwatch"


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------

def test_add_project_with_tree(store: StudyStore):
    pid = store.add_project(
        "alice",
        "Thesis",
        [{"name": "Chapter 3", "subtopics": [{"name": "Intro"}, {"name": "Method"}]}],
    )
    projects = store.get_projects("alice")
    assert len(projects) == 1
    project = projects[0]
    assert project.id == pid
    assert project.topics[0].name == "Chapter 3"
    assert [s.name for s in project.topics[0].subtopics] == ["Intro", "Method"]
    assert isinstance(project.created_at, datetime)


def test_projects_newest_first(store: StudyStore):
    first = store.add_project("alice", "A")
    second = store.add_project("alice", "B")
    assert [p.id for p in store.get_projects("alice")] == [second, first]


def test_projects_are_per_user(store: StudyStore):
    store.add_project("alice", "Thesis")
    assert store.get_projects("bob") == []


def test_update_project_keeps_given_ids(store: StudyStore):
    pid = store.add_project("alice", "Thesis", [{"name": "A", "id": "t1"}, {"name": "B", "id": "t2"}])
    store.update_project("alice", pid, name="Dissertation", topics=[{"name": "B", "id": "t2"}])
    project = store.get_projects("alice")[0]
    assert project.name == "Dissertation"
    assert [t.id for t in project.topics] == ["t2"]


def test_update_project_is_per_user(store: StudyStore):
    pid = store.add_project("alice", "Thesis", [{"name": "A", "id": "t1"}])
    with pytest.raises(KeyError):
        store.update_project("bob", pid, name="Mine now", topics=[])
    project = store.get_projects("alice")[0]
    assert project.name == "Thesis"
    assert [t.id for t in project.topics] == ["t1"]


def test_delete_project_cascades(store: StudyStore):
    pid = store.add_project("alice", "Thesis", [{"name": "A", "subtopics": [{"name": "x"}]}])
    store.delete_project("alice", pid)
    conn = store._get_conn()
    assert store.get_projects("alice") == []
    assert conn.execute("SELECT COUNT(*) FROM topics").fetchone()[0] == 0
    assert conn.execute("SELECT COUNT(*) FROM subtopics").fetchone()[0] == 0


def test_subscribe_calls_now_and_on_change(store: StudyStore):
    seen = []
    unsubscribe = store.subscribe("alice", lambda projects: seen.append([p.name for p in projects]))
    store.add_project("alice", "Thesis")
    unsubscribe()
    store.add_project("alice", "Other")
    assert seen == [[], ["Thesis"]]
