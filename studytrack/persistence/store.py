"""SQLite-backed persistence for projects, aggregate times and session history."""

import logging
import sqlite3
import uuid
from datetime import date, datetime
from typing import Any, Callable, Optional

from studytrack.core.errors import PersistenceWriteFailure
from studytrack.core.models import (
    AggregateTimers,
    AttributionLevel,
    Project,
    SessionRecord,
    SubTopic,
    Topic,
)

logger = logging.getLogger(__name__)

ProjectsCallback = Callable[[list[Project]], None]


class StudyStore:
    """Read/write interface to the local SQLite database.

    Holds the project hierarchy, the three aggregate-time maps, the
    session history and per-user settings, all keyed by user id.
    Timestamps are persisted as ISO 8601 text and durations as integer
    milliseconds.  Writes raise ``PersistenceWriteFailure`` on any
    ``sqlite3.Error``.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._subscribers: dict[str, list[ProjectsCallback]] = {}

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Create tables and indexes if they don't already exist."""
        conn = self._get_conn()
        conn.executescript(
            """\
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS topics (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                name TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS subtopics (
                id TEXT PRIMARY KEY,
                topic_id TEXT NOT NULL,
                name TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (topic_id) REFERENCES topics(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS aggregate_times (
                user_id TEXT NOT NULL,
                level TEXT NOT NULL,
                node_id TEXT NOT NULL,
                total_ms INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, level, node_id)
            );

            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                project_id TEXT NOT NULL,
                project_name TEXT NOT NULL,
                topic_id TEXT,
                topic_name TEXT,
                subtopic_id TEXT,
                subtopic_name TEXT,
                duration_ms INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                date TEXT NOT NULL,
                level TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS settings (
                user_id TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (user_id, key)
            );

            CREATE INDEX IF NOT EXISTS idx_projects_user
                ON projects(user_id);

            CREATE INDEX IF NOT EXISTS idx_topics_project
                ON topics(project_id);

            CREATE INDEX IF NOT EXISTS idx_subtopics_topic
                ON subtopics(topic_id);

            CREATE INDEX IF NOT EXISTS idx_sessions_user_project
                ON sessions(user_id, project_id);
            """
        )
        conn.commit()

    def _write(self, operation: str, statements: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run *statements* in one transaction; roll back and wrap any error."""
        conn = self._get_conn()
        try:
            with conn:
                return statements(conn)
        except sqlite3.Error as exc:
            logger.error("Write failed (%s): %s", operation, exc)
            raise PersistenceWriteFailure(operation, exc) from exc

    # ------------------------------------------------------------------
    # Aggregate times and history
    # ------------------------------------------------------------------

    def load_snapshot(self, user_id: str) -> tuple[AggregateTimers, list[SessionRecord]]:
        """Return the user's aggregate maps and history (most recent first)."""
        conn = self._get_conn()
        timers = AggregateTimers()
        for row in conn.execute(
            "SELECT level, node_id, total_ms FROM aggregate_times WHERE user_id = ?",
            (user_id,),
        ):
            timers.map_for(AttributionLevel(row["level"]))[row["node_id"]] = row["total_ms"]
        rows = conn.execute(
            "SELECT * FROM sessions WHERE user_id = ? ORDER BY rowid DESC", (user_id,)
        ).fetchall()
        return timers, [self._row_to_session(r) for r in rows]

    def commit_session(
        self,
        user_id: str,
        record: SessionRecord,
        total_ms: int,
    ) -> None:
        """Write the node's new total and the history row atomically."""

        def _statements(conn: sqlite3.Connection) -> None:
            self._upsert_total(conn, user_id, record.level, record.node_id, total_ms)
            self._insert_session(conn, user_id, record)

        self._write("session commit", _statements)

    def save_snapshot(
        self,
        user_id: str,
        timers: AggregateTimers,
        history: list[SessionRecord],
    ) -> None:
        """Replace everything stored for *user_id* with the given state."""

        def _statements(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM aggregate_times WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
            for level in AttributionLevel:
                for node_id, total in timers.map_for(level).items():
                    self._upsert_total(conn, user_id, level, node_id, total)
            # Oldest first, so rowid order matches history order.
            for record in reversed(history):
                self._insert_session(conn, user_id, record)

        self._write("snapshot", _statements)

    def delete_history_for_project(self, user_id: str, project_id: str) -> None:
        self._write(
            "history delete",
            lambda conn: conn.execute(
                "DELETE FROM sessions WHERE user_id = ? AND project_id = ?",
                (user_id, project_id),
            ),
        )

    def clear_history(self, user_id: str) -> None:
        self._write(
            "history clear",
            lambda conn: conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,)),
        )

    def delete_aggregates(self, user_id: str, node_ids: list[str]) -> None:
        def _statements(conn: sqlite3.Connection) -> None:
            conn.executemany(
                "DELETE FROM aggregate_times WHERE user_id = ? AND node_id = ?",
                [(user_id, node_id) for node_id in node_ids],
            )

        self._write("aggregate delete", _statements)

    @staticmethod
    def _upsert_total(
        conn: sqlite3.Connection,
        user_id: str,
        level: AttributionLevel,
        node_id: str,
        total_ms: int,
    ) -> None:
        conn.execute(
            """\
            INSERT OR REPLACE INTO aggregate_times (user_id, level, node_id, total_ms)
            VALUES (?, ?, ?, ?)
            """,
            (user_id, level.value, node_id, total_ms),
        )

    @staticmethod
    def _insert_session(conn: sqlite3.Connection, user_id: str, record: SessionRecord) -> None:
        conn.execute(
            """\
            INSERT INTO sessions
                (id, user_id, project_id, project_name, topic_id, topic_name,
                 subtopic_id, subtopic_name, duration_ms, start_time, end_time,
                 date, level)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                user_id,
                record.project_id,
                record.project_name,
                record.topic_id,
                record.topic_name,
                record.subtopic_id,
                record.subtopic_name,
                record.duration_ms,
                record.start_time.isoformat(),
                record.end_time.isoformat(),
                record.date.isoformat(),
                record.level.value,
            ),
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, user_id: str, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self._get_conn().execute(
            "SELECT value FROM settings WHERE user_id = ? AND key = ?", (user_id, key)
        ).fetchone()
        return row["value"] if row is not None else default

    def set_setting(self, user_id: str, key: str, value: str) -> None:
        self._write(
            "setting",
            lambda conn: conn.execute(
                "INSERT OR REPLACE INTO settings (user_id, key, value) VALUES (?, ?, ?)",
                (user_id, key, value),
            ),
        )

    # ------------------------------------------------------------------
    # Project store
    # ------------------------------------------------------------------

    def subscribe(self, user_id: str, callback: ProjectsCallback) -> Callable[[], None]:
        """Call *callback* with the user's projects now and after every change.

        Returns a function that removes the subscription.
        """
        self._subscribers.setdefault(user_id, []).append(callback)
        callback(self.get_projects(user_id))

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(user_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def _notify(self, user_id: str) -> None:
        callbacks = list(self._subscribers.get(user_id, []))
        if not callbacks:
            return
        projects = self.get_projects(user_id)
        for callback in callbacks:
            callback(projects)

    def add_project(
        self,
        user_id: str,
        name: str,
        topics: Optional[list[dict[str, Any]]] = None,
    ) -> str:
        """Create a project with nested topics/sub-topics. Returns its id.

        *topics* is a list of ``{"name": ..., "subtopics": [{"name": ...}]}``
        dicts; an ``"id"`` key is used when present, otherwise one is generated.
        """
        project_id = uuid.uuid4().hex
        now = datetime.now().isoformat()

        def _statements(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO projects (id, user_id, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (project_id, user_id, name, now, now),
            )
            self._insert_topics(conn, project_id, topics or [])

        self._write("project create", _statements)
        logger.info("Project created: %s (%s)", name, project_id)
        self._notify(user_id)
        return project_id

    def update_project(
        self,
        user_id: str,
        project_id: str,
        name: Optional[str] = None,
        topics: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        """Rename a project and/or replace its topic tree.

        Raises ``KeyError`` when *user_id* has no project *project_id*.
        """

        def _statements(conn: sqlite3.Connection) -> None:
            owned = conn.execute(
                "SELECT 1 FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id)
            ).fetchone()
            if owned is None:
                raise KeyError(f"Unknown project: {project_id}")
            if name is not None:
                conn.execute(
                    "UPDATE projects SET name = ? WHERE id = ? AND user_id = ?",
                    (name, project_id, user_id),
                )
            if topics is not None:
                conn.execute("DELETE FROM topics WHERE project_id = ?", (project_id,))
                self._insert_topics(conn, project_id, topics)
            conn.execute(
                "UPDATE projects SET updated_at = ? WHERE id = ? AND user_id = ?",
                (datetime.now().isoformat(), project_id, user_id),
            )

        self._write("project update", _statements)
        self._notify(user_id)

    def delete_project(self, user_id: str, project_id: str) -> None:
        self._write(
            "project delete",
            lambda conn: conn.execute(
                "DELETE FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id)
            ),
        )
        logger.info("Project deleted: %s", project_id)
        self._notify(user_id)

    def get_projects(self, user_id: str) -> list[Project]:
        """Return the user's projects, newest first, with their topic trees."""
        conn = self._get_conn()
        projects: list[Project] = []
        for row in conn.execute(
            "SELECT * FROM projects WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        ).fetchall():
            topics = []
            for t in conn.execute(
                "SELECT * FROM topics WHERE project_id = ? ORDER BY position", (row["id"],)
            ).fetchall():
                subtopics = [
                    SubTopic(id=s["id"], name=s["name"])
                    for s in conn.execute(
                        "SELECT * FROM subtopics WHERE topic_id = ? ORDER BY position", (t["id"],)
                    ).fetchall()
                ]
                topics.append(Topic(id=t["id"], name=t["name"], subtopics=subtopics))
            projects.append(
                Project(
                    id=row["id"],
                    name=row["name"],
                    topics=topics,
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
            )
        return projects

    @staticmethod
    def _insert_topics(conn: sqlite3.Connection, project_id: str, topics: list[dict[str, Any]]) -> None:
        for position, topic in enumerate(topics):
            topic_id = topic.get("id") or uuid.uuid4().hex
            conn.execute(
                "INSERT INTO topics (id, project_id, name, position) VALUES (?, ?, ?, ?)",
                (topic_id, project_id, topic["name"], position),
            )
            for sub_position, subtopic in enumerate(topic.get("subtopics", [])):
                conn.execute(
                    "INSERT INTO subtopics (id, topic_id, name, position) VALUES (?, ?, ?, ?)",
                    (subtopic.get("id") or uuid.uuid4().hex, topic_id, subtopic["name"], sub_position),
                )

    # ------------------------------------------------------------------
    # Row mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=row["id"],
            project_id=row["project_id"],
            project_name=row["project_name"],
            topic_id=row["topic_id"],
            topic_name=row["topic_name"],
            subtopic_id=row["subtopic_id"],
            subtopic_name=row["subtopic_name"],
            duration_ms=row["duration_ms"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            date=date.fromisoformat(row["date"]),
            level=AttributionLevel(row["level"]),
        )
