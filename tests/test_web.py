"""Tests for the JSON API."""

import pytest

from studytrack.core.engine import StudyEngine
from studytrack.core.errors import PersistenceWriteFailure
from studytrack.persistence.store import StudyStore
from studytrack.ui.web import create_flask_app


@pytest.fixture
def store(tmp_path):
    db = tmp_path / "test.db"
    s = StudyStore(str(db))
    s.init_db()
    yield s
    s.close()


@pytest.fixture
def engine(store, clock):
    e = StudyEngine(store, clock=clock)
    e.load()
    yield e
    e.dispose()


@pytest.fixture
def client(engine):
    flask_app = create_flask_app(engine)
    flask_app.config["TESTING"] = True
    with flask_app.test_client() as c:
        yield c


def _create_thesis(client) -> dict:
    resp = client.post("/api/projects", json={
        "name": "Thesis",
        "topics": [{"name": "Chapter 3"}, {"name": "Chapter 4"}],
    })
    assert resp.status_code == 201
    project_id = resp.get_json()["id"]
    projects = client.get("/api/projects").get_json()
    return next(p for p in projects if p["id"] == project_id)


class TestStatusAndSelection:
    def test_status(self, client):
        data = client.get("/api/status").get_json()
        assert data["ready"] is True
        assert data["selection"] is None
        assert data["mode"] == "stopwatch"

    def test_select_requires_project_id(self, client):
        assert client.post("/api/select", json={}).status_code == 400

    def test_select_unknown_project(self, client):
        assert client.post("/api/select", json={"project_id": "missing"}).status_code == 404

    def test_select_topic(self, client):
        project = _create_thesis(client)
        resp = client.post("/api/select", json={
            "project_id": project["id"],
            "topic_id": project["topics"][0]["id"],
        })
        assert resp.status_code == 200
        assert resp.get_json()["status"]["selection"]["topic"]["name"] == "Chapter 3"

    def test_switch_while_running_needs_confirm(self, client, clock):
        project = _create_thesis(client)
        ch3, ch4 = project["topics"]
        client.post("/api/select", json={"project_id": project["id"], "topic_id": ch3["id"]})
        client.post("/api/timer/start")
        clock.advance(30)

        resp = client.post("/api/select", json={"project_id": project["id"], "topic_id": ch4["id"]})
        assert resp.status_code == 409
        assert resp.get_json()["result"] == "declined"

        resp = client.post("/api/select", json={
            "project_id": project["id"],
            "topic_id": ch4["id"],
            "confirm": True,
        })
        assert resp.status_code == 200
        sessions = client.get("/api/history").get_json()["sessions"]
        assert sessions[0]["topic_id"] == ch3["id"]
        assert sessions[0]["duration_ms"] == 30000


class TestTimer:
    def test_start_without_selection(self, client):
        resp = client.post("/api/timer/start")
        assert resp.status_code == 409
        assert "Please select a project" in resp.get_json()["error"]

    def test_start_pause_stop(self, client, clock):
        project = _create_thesis(client)
        client.post("/api/select", json={"project_id": project["id"]})
        assert client.post("/api/timer/start").get_json()["result"] == "started"
        clock.advance(65)
        assert client.post("/api/timer/pause").get_json()["paused"] is True
        client.post("/api/timer/start")
        clock.advance(5)
        data = client.post("/api/timer/stop").get_json()
        assert data["session"]["duration_ms"] == 70000
        assert data["status"]["stopwatch"]["status"] == "idle"

    def test_reset(self, client, clock):
        project = _create_thesis(client)
        client.post("/api/select", json={"project_id": project["id"]})
        client.post("/api/timer/start")
        clock.advance(10)
        client.post("/api/timer/reset")
        assert client.post("/api/timer/stop").get_json()["session"] is None

    def test_mode(self, client):
        assert client.post("/api/mode", json={"mode": "pomodoro"}).status_code == 400
        resp = client.post("/api/mode", json={"mode": "focus"})
        assert resp.status_code == 200
        assert resp.get_json()["status"]["mode"] == "focus"


class TestProjectsAndHistory:
    def test_create_requires_name(self, client):
        assert client.post("/api/projects", json={"name": "  "}).status_code == 400

    @pytest.mark.parametrize(
        "topics",
        [
            [{"title": "Chapter 3"}],
            [{"name": "  "}],
            "Chapter 3",
            [{"name": "Chapter 3", "subtopics": [{}]}],
        ],
    )
    def test_create_rejects_malformed_topics(self, client, topics):
        resp = client.post("/api/projects", json={"name": "Thesis", "topics": topics})
        assert resp.status_code == 400
        assert client.get("/api/projects").get_json() == []

    def test_delete_needs_confirm(self, client):
        project = _create_thesis(client)
        assert client.delete(f"/api/projects/{project['id']}").status_code == 409
        resp = client.delete(f"/api/projects/{project['id']}", json={"confirm": True})
        assert resp.status_code == 200
        assert client.get("/api/projects").get_json() == []

    def test_delete_unknown(self, client):
        assert client.delete("/api/projects/missing", json={"confirm": True}).status_code == 404

    def test_history_and_summary(self, client, clock):
        project = _create_thesis(client)
        ch3 = project["topics"][0]
        client.post("/api/select", json={"project_id": project["id"], "topic_id": ch3["id"]})
        client.post("/api/timer/start")
        clock.advance(70)
        client.post("/api/timer/stop")

        history = client.get("/api/history").get_json()
        assert len(history["sessions"]) == 1
        assert list(history["daily_totals"].values()) == [70000]
        assert history["totals"] == {"project": {}, "topic": {ch3["id"]: 70000}, "subtopic": {}}

        [summary] = client.get("/api/summary").get_json()
        assert summary["total_ms"] == 70000
        assert summary["total"] == "01:10"
        assert summary["children"][0]["total_ms"] == 70000

    def test_clear_history(self, client, clock):
        project = _create_thesis(client)
        client.post("/api/select", json={"project_id": project["id"]})
        client.post("/api/timer/start")
        clock.advance(5)
        client.post("/api/timer/stop")
        assert client.delete("/api/history").status_code == 409
        assert client.delete("/api/history", json={"confirm": True}).status_code == 200
        assert client.get("/api/history").get_json()["sessions"] == []


class TestPersistenceErrors:
    def test_write_failure_returns_503_then_flush(self, client, engine, clock, monkeypatch):
        project = _create_thesis(client)
        client.post("/api/select", json={"project_id": project["id"]})
        client.post("/api/timer/start")
        clock.advance(10)

        def _fail(*args, **kwargs):
            raise PersistenceWriteFailure("session commit")

        monkeypatch.setattr(engine.store, "commit_session", _fail)
        resp = client.post("/api/timer/stop")
        assert resp.status_code == 503
        assert resp.get_json()["retry"] == "/api/flush"

        monkeypatch.undo()
        data = client.post("/api/flush").get_json()
        assert data["status"]["persistence_error"] is None
        assert len(client.get("/api/history").get_json()["sessions"]) == 1
