"""StudyEngine orchestrator for StudyTrack.

One engine instance exists per logged-in user.  It owns the count-up
timer, the focus-cycle scheduler, the session recorder and the task
selection context, and is the only object the presentation layer talks
to.  A re-entrant lock serialises user actions and periodic ticks, so a
commit never interleaves with a second start of the same timer.
"""

import logging
import threading
from enum import Enum
from typing import Any, Optional

from studytrack.core.clock import Clock, Ticker
from studytrack.core.errors import (
    InvalidPhaseTransition,
    NoTaskSelected,
    PersistenceWriteFailure,
    SessionTooShort,
)
from studytrack.core.hierarchy import (
    effective_time,
    find_node,
    find_project,
    removed_nodes,
    resolve_selection,
)
from studytrack.core.models import (
    AggregateTimers,
    ConfirmRequest,
    Project,
    Selection,
    SessionRecord,
    TimerMode,
)
from studytrack.core.notifier import Notifier, NullNotifier
from studytrack.core.pomodoro import FocusCycleScheduler, PomodoroSettings
from studytrack.core.recorder import MIN_SESSION_MS, SessionRecorder
from studytrack.core.selection import (
    Confirm,
    LiveTimer,
    SelectResult,
    TaskSelectionContext,
    decline,
)
from studytrack.core.stopwatch import CountUpTimer
from studytrack.persistence.store import StudyStore

logger = logging.getLogger(__name__)

MODE_SETTING = "timer_mode"


class StartResult(Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    NEEDS_SELECTION = "needs_selection"


class StudyEngine(LiveTimer):
    """Timer and session-accounting engine for one user."""

    def __init__(
        self,
        store: StudyStore,
        user_id: str = "local",
        settings: Optional[PomodoroSettings] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        confirm: Optional[Confirm] = None,
        min_session_ms: int = MIN_SESSION_MS,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.clock = clock or Clock()
        self.notifier = notifier or NullNotifier()
        self.confirm = confirm or decline
        self.recorder = SessionRecorder(store, user_id, min_session_ms, self.clock.wall)
        self.stopwatch = CountUpTimer(self.clock)
        self.focus = FocusCycleScheduler(settings, self.clock, self._on_work_completed, self.notifier)
        self.selection_context = TaskSelectionContext(self.recorder, self, self.confirm)
        self.mode = TimerMode.STOPWATCH
        self.projects: list[Project] = []
        self.ready = False
        self.last_error: Optional[PersistenceWriteFailure] = None
        self._lock = threading.RLock()
        self._ticker: Optional[Ticker] = None
        self._unsubscribe = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self, default_mode: TimerMode = TimerMode.STOPWATCH) -> None:
        """Load persisted state and subscribe to the project store."""
        with self._lock:
            self.recorder.load()
            stored_mode = self.store.get_setting(self.user_id, MODE_SETTING)
            try:
                self.mode = TimerMode(stored_mode) if stored_mode else default_mode
            except ValueError:
                logger.warning("Ignoring unknown stored timer mode %r", stored_mode)
                self.mode = default_mode
            self._unsubscribe = self.store.subscribe(self.user_id, self._on_projects_changed)
            self.ready = True
            logger.info("Engine ready for %s in %s mode", self.user_id, self.mode.value)

    def start_ticking(self, interval: float = 1.0) -> None:
        """Start the periodic wake source that drives ``tick()``."""
        if self._ticker is None:
            self._ticker = Ticker(interval, self.tick)
        self._ticker.start()

    def dispose(self) -> None:
        """Stop ticking, commit owed time and detach from the store."""
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
        with self._lock:
            try:
                self.finalize()
            except PersistenceWriteFailure:
                logger.error("Could not persist the final session on dispose")
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self.ready = False

    # ------------------------------------------------------------------
    # LiveTimer
    # ------------------------------------------------------------------

    def is_active(self) -> bool:
        return self.stopwatch.is_running or self.focus.is_active or self.focus.restart_pending

    def has_pending_time(self) -> bool:
        return self.stopwatch.has_interval or self.focus.elapsed_work_ms() > 0

    def finalize(self) -> Optional[SessionRecord]:
        """Stop whichever timer is live, commit owed time and reset both."""
        with self._lock:
            selection = self.selection_context.selection
            stopwatch_ms = self.stopwatch.end_session_and_get_duration()
            focus_ms = self.focus.elapsed_work_ms()
            focus_owner = self.focus.owner or selection
            self.stopwatch.reset()
            self.focus.reset_cycle()

            record = None
            if stopwatch_ms > 0:
                record = self._commit(stopwatch_ms, selection)
            if focus_ms > 0:
                record = self._commit(focus_ms, focus_owner)
            return record

    def discard(self) -> None:
        with self._lock:
            self.stopwatch.reset()
            self.focus.reset_cycle()

    # ------------------------------------------------------------------
    # Timer controls
    # ------------------------------------------------------------------

    @property
    def selection(self) -> Optional[Selection]:
        return self.selection_context.selection

    def start(self) -> StartResult:
        with self._lock:
            try:
                selection = self.selection_context.require_selection_before_start()
            except NoTaskSelected:
                logger.info("Start refused: no task selected")
                return StartResult.NEEDS_SELECTION

            if self.mode is TimerMode.STOPWATCH:
                started = self.stopwatch.start()
            else:
                started = bool(self.focus.start_timer(owner=selection))
            return StartResult.STARTED if started else StartResult.ALREADY_RUNNING

    def pause(self) -> bool:
        with self._lock:
            if self.mode is TimerMode.STOPWATCH:
                return self.stopwatch.pause()
            try:
                return bool(self.focus.pause_timer())
            except InvalidPhaseTransition as exc:
                logger.warning("Ignored: %s", exc)
                return False

    def stop(self) -> Optional[SessionRecord]:
        """End the current interval and commit it."""
        return self.finalize()

    def reset(self) -> None:
        """Cancel the current interval without committing anything."""
        self.discard()

    def tick(self) -> list[str]:
        """Periodic wake-up: refresh displays and detect phase completion."""
        with self._lock:
            self.stopwatch.sample()
            return self.focus.tick()

    def set_mode(self, mode: TimerMode, confirm: Optional[Confirm] = None) -> bool:
        """Switch between stopwatch and focus-cycle mode.

        Returns False when the user declined ending a running interval.
        """
        with self._lock:
            if mode is self.mode:
                return True
            if self.is_active():
                ask = confirm or self.confirm
                if not ask(ConfirmRequest.SWITCH_MODE):
                    return False
            self.mode = mode
            logger.info("Timer mode set to %s", mode.value)
            try:
                self.finalize()
            finally:
                self._save_mode()
            return True

    # ------------------------------------------------------------------
    # Selection and hierarchy
    # ------------------------------------------------------------------

    def select(
        self,
        project_id: str,
        topic_id: Optional[str] = None,
        subtopic_id: Optional[str] = None,
        confirm: Optional[Confirm] = None,
    ) -> SelectResult:
        with self._lock:
            selection = resolve_selection(self.projects, project_id, topic_id, subtopic_id)
            try:
                return self.selection_context.select(selection, confirm)
            except PersistenceWriteFailure as exc:
                self.last_error = exc
                raise

    def add_project(self, name: str, topics: Optional[list[dict[str, Any]]] = None) -> str:
        with self._lock:
            return self.store.add_project(self.user_id, name, topics)

    def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        topics: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        with self._lock:
            self.store.update_project(self.user_id, project_id, name, topics)

    def delete_project(self, project_id: str, confirm: Optional[Confirm] = None) -> bool:
        """Delete a project and everything recorded against it, after confirmation."""
        with self._lock:
            project = find_project(self.projects, project_id)
            if project is None:
                raise KeyError(f"Unknown project: {project_id}")
            ask = confirm or self.confirm
            if not ask(ConfirmRequest.DELETE_PROJECT):
                return False
            self.store.delete_project(self.user_id, project_id)
            if find_project(self.projects, project_id) is not None:
                # Store did not call back; apply the deletion ourselves.
                self.on_project_deleted(project_id)
            return True

    def on_project_deleted(self, project_id: str) -> None:
        with self._lock:
            project = find_project(self.projects, project_id)
            if project is None:
                self.recorder.forget_project(project_id, [project_id])
                return
            self.projects = [p for p in self.projects if p.id != project_id]
            self.selection_context.on_node_deleted(project)

    def clear_history(self, confirm: Optional[Confirm] = None) -> bool:
        with self._lock:
            ask = confirm or self.confirm
            if not ask(ConfirmRequest.CLEAR_HISTORY):
                return False
            self.recorder.clear_history()
            return True

    def flush(self) -> None:
        """Retry persisting the full in-memory state."""
        with self._lock:
            self.recorder.flush()
            self.last_error = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[SessionRecord]:
        return self.recorder.history

    @property
    def timers(self) -> AggregateTimers:
        return self.recorder.timers

    def effective_time(self, node_id: str) -> int:
        node = find_node(self.projects, node_id)
        if node is None:
            raise KeyError(f"Unknown node: {node_id}")
        return effective_time(node, self.recorder.timers)

    def status(self) -> dict[str, Any]:
        with self._lock:
            selection = self.selection_context.selection
            focus = self.focus.state()
            return {
                "ready": self.ready,
                "mode": self.mode.value,
                "selection": _selection_dict(selection),
                "stopwatch": {
                    "status": self.stopwatch.status.value,
                    "elapsed_ms": self.stopwatch.elapsed_ms(),
                },
                "focus": {
                    "phase": focus.phase.value,
                    "is_active": focus.is_active,
                    "seconds_remaining": focus.seconds_remaining,
                    "cycle_count": focus.cycle_count,
                },
                "persistence_error": str(self.last_error) if self.last_error else None,
            }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, duration_ms: int, selection: Optional[Selection]) -> Optional[SessionRecord]:
        try:
            return self.recorder.commit_selection(duration_ms, selection)
        except SessionTooShort as exc:
            logger.info("Discarded: %s", exc)
        except NoTaskSelected:
            logger.warning("Discarded %d ms with no task selected", duration_ms)
        except PersistenceWriteFailure as exc:
            self.last_error = exc
            raise
        return None

    def _on_work_completed(self, duration_ms: int, owner: Optional[Selection]) -> None:
        try:
            self._commit(duration_ms, owner or self.selection_context.selection)
        except PersistenceWriteFailure:
            logger.error("Completed work phase kept in memory only")

    def _on_projects_changed(self, projects: list[Project]) -> None:
        with self._lock:
            removed = removed_nodes(self.projects, projects)
            self.projects = projects
            self._refresh_selection()
            for node in removed:
                try:
                    self.selection_context.on_node_deleted(node)
                except PersistenceWriteFailure as exc:
                    self.last_error = exc

    def _refresh_selection(self) -> None:
        """Pick up renamed nodes in the current selection."""
        selection = self.selection_context.selection
        if selection is None:
            return
        ids = [ref.id for ref in selection.path]
        try:
            self.selection_context.selection = resolve_selection(self.projects, *ids)
        except (KeyError, ValueError):
            pass

    def _save_mode(self) -> None:
        try:
            self.store.set_setting(self.user_id, MODE_SETTING, self.mode.value)
        except PersistenceWriteFailure as exc:
            self.last_error = exc


def _selection_dict(selection: Optional[Selection]) -> Optional[dict[str, Any]]:
    if selection is None:
        return None
    topic = selection.topic_ref
    subtopic = selection.subtopic_ref
    return {
        "level": selection.level.value,
        "project": {"id": selection.project.id, "name": selection.project.name},
        "topic": {"id": topic.id, "name": topic.name} if topic else None,
        "subtopic": {"id": subtopic.id, "name": subtopic.name} if subtopic else None,
    }
