"""Session recorder: turns finalized intervals into durable state.

Owns the in-memory aggregate maps and history log for one user, which
are the source of truth for the running process, and writes every
change back through the persisted store.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from studytrack.core.errors import NoTaskSelected, PersistenceWriteFailure, SessionTooShort
from studytrack.core.models import (
    AggregateTimers,
    AttributionLevel,
    Selection,
    SessionRecord,
    make_selection,
)
from studytrack.persistence.store import StudyStore

logger = logging.getLogger(__name__)

MIN_SESSION_MS = 1000


class SessionRecorder:
    """Sole writer of the aggregate-time maps and the history log.

    If the store rejects a write, the in-memory change is kept, the
    recorder is marked dirty and ``PersistenceWriteFailure`` is raised.
    The next successful write (or an explicit ``flush()``) rewrites the
    whole snapshot.
    """

    def __init__(
        self,
        store: StudyStore,
        user_id: str,
        min_duration_ms: int = MIN_SESSION_MS,
        wall_clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.min_duration_ms = min_duration_ms
        self._wall = wall_clock or datetime.now
        self.timers = AggregateTimers()
        self.history: list[SessionRecord] = []
        self.dirty = False

    def load(self) -> None:
        """Read the persisted snapshot. Called once before the engine is ready."""
        self.timers, self.history = self.store.load_snapshot(self.user_id)
        self.dirty = False
        logger.info(
            "Loaded %d sessions and %d aggregate entries for %s",
            len(self.history),
            sum(len(self.timers.map_for(level)) for level in AttributionLevel),
            self.user_id,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        duration_ms: int,
        project: Any,
        topic: Any = None,
        subtopic: Any = None,
    ) -> SessionRecord:
        """Commit an interval against the deepest of the given nodes."""
        if project is None:
            raise NoTaskSelected("Cannot commit a session without a selected project")
        return self.commit_selection(duration_ms, make_selection(project, topic, subtopic))

    def commit_selection(self, duration_ms: int, selection: Optional[Selection]) -> SessionRecord:
        """Add *duration_ms* to the selected node and prepend a history record.

        Raises ``SessionTooShort`` below the minimum and ``NoTaskSelected``
        without a selection; neither changes any state.
        """
        if selection is None:
            raise NoTaskSelected("Cannot commit a session without a selected project")
        duration_ms = int(duration_ms)
        if duration_ms < self.min_duration_ms:
            raise SessionTooShort(duration_ms, self.min_duration_ms)

        record = SessionRecord.create(selection, duration_ms, self._wall())
        totals = self.timers.map_for(selection.level)
        new_total = totals.get(selection.node_id, 0) + duration_ms

        totals[selection.node_id] = new_total
        self.history.insert(0, record)
        logger.info(
            "Committed %d ms to %s %s (%s)",
            duration_ms,
            selection.level.value,
            selection.node_id,
            selection.describe(),
        )

        self._persist(lambda: self.store.commit_session(self.user_id, record, new_total))
        return record

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def forget_project(self, project_id: str, node_ids: Iterable[str]) -> int:
        """Drop the project's history records and the given nodes' totals.

        Returns the number of history records removed.
        """
        node_ids = list(node_ids)
        before = len(self.history)
        self.history = [r for r in self.history if r.project_id != project_id]
        removed = before - len(self.history)
        self._drop_totals(node_ids)
        logger.info("Removed %d history records for project %s", removed, project_id)

        def _write() -> None:
            self.store.delete_history_for_project(self.user_id, project_id)
            self.store.delete_aggregates(self.user_id, node_ids)

        self._persist(_write)
        return removed

    def forget_nodes(self, node_ids: Iterable[str]) -> None:
        """Drop the totals of nodes that no longer exist."""
        node_ids = list(node_ids)
        self._drop_totals(node_ids)
        self._persist(lambda: self.store.delete_aggregates(self.user_id, node_ids))

    def clear_history(self) -> None:
        self.history = []
        logger.info("Study history cleared")
        self._persist(lambda: self.store.clear_history(self.user_id))

    def flush(self) -> None:
        """Rewrite the full snapshot. Used to retry after a failed write."""
        self.store.save_snapshot(self.user_id, self.timers, self.history)
        self.dirty = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _drop_totals(self, node_ids: list[str]) -> None:
        for level in AttributionLevel:
            totals = self.timers.map_for(level)
            for node_id in node_ids:
                totals.pop(node_id, None)

    def _persist(self, write: Callable[[], None]) -> None:
        try:
            if self.dirty:
                self.flush()
            else:
                write()
        except PersistenceWriteFailure:
            self.dirty = True
            logger.warning("Keeping in-memory state; store will be rewritten on next write")
            raise
