"""Core data models for StudyTrack.

Defines all dataclasses and enums used across the application:
- Hierarchy: Project, Topic, SubTopic, NodeRef
- Selection: ProjectSelection, TopicSelection, SubTopicSelection
- Accounting: AttributionLevel, AggregateTimers, SessionRecord
- Live timers: TimerMode, StopwatchStatus, StopwatchState, FocusPhase,
  FocusCycleState
- Collaborators: Cue, ConfirmRequest
"""

import random
import string
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Optional, Union


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeRef:
    """Id and display name of one hierarchy node."""
    id: str
    name: str


@dataclass
class SubTopic:
    id: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Topic:
    id: str
    name: str
    subtopics: list[SubTopic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "subtopics": [s.to_dict() for s in self.subtopics],
        }


@dataclass
class Project:
    """A top-level node. Owns its topics, which own their sub-topics."""
    id: str
    name: str
    topics: list[Topic] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "topics": [t.to_dict() for t in self.topics],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class AttributionLevel(Enum):
    """Level of the deepest selected node a session is attributed to."""
    PROJECT = "project"
    TOPIC = "topic"
    SUBTOPIC = "subtopic"


class _SelectionBase:
    """Behaviour shared by the three selection variants."""

    level: ClassVar[AttributionLevel]

    @property
    def path(self) -> tuple[NodeRef, ...]:
        raise NotImplementedError

    @property
    def node(self) -> NodeRef:
        """The deepest selected node."""
        return self.path[-1]

    @property
    def node_id(self) -> str:
        return self.node.id

    @property
    def topic_ref(self) -> Optional[NodeRef]:
        path = self.path
        return path[1] if len(path) > 1 else None

    @property
    def subtopic_ref(self) -> Optional[NodeRef]:
        path = self.path
        return path[2] if len(path) > 2 else None

    def contains(self, node_id: str) -> bool:
        """True when *node_id* is the selected node or one of its ancestors."""
        return any(ref.id == node_id for ref in self.path)

    def describe(self) -> str:
        return " > ".join(ref.name for ref in self.path)


@dataclass(frozen=True)
class ProjectSelection(_SelectionBase):
    project: NodeRef
    level: ClassVar[AttributionLevel] = AttributionLevel.PROJECT

    @property
    def path(self) -> tuple[NodeRef, ...]:
        return (self.project,)


@dataclass(frozen=True)
class TopicSelection(_SelectionBase):
    project: NodeRef
    topic: NodeRef
    level: ClassVar[AttributionLevel] = AttributionLevel.TOPIC

    @property
    def path(self) -> tuple[NodeRef, ...]:
        return (self.project, self.topic)


@dataclass(frozen=True)
class SubTopicSelection(_SelectionBase):
    project: NodeRef
    topic: NodeRef
    subtopic: NodeRef
    level: ClassVar[AttributionLevel] = AttributionLevel.SUBTOPIC

    @property
    def path(self) -> tuple[NodeRef, ...]:
        return (self.project, self.topic, self.subtopic)


Selection = Union[ProjectSelection, TopicSelection, SubTopicSelection]


def _as_ref(node: Any) -> NodeRef:
    if isinstance(node, NodeRef):
        return node
    return NodeRef(node.id, node.name)


def make_selection(project: Any, topic: Any = None, subtopic: Any = None) -> Selection:
    """Build the selection variant matching the deepest non-null node.

    Accepts hierarchy nodes or NodeRefs.  Raises ``ValueError`` for an
    inconsistent combination (a sub-topic without its topic, or no project).
    """
    if project is None:
        raise ValueError("A selection requires a project")
    if subtopic is not None:
        if topic is None:
            raise ValueError("A sub-topic selection requires its topic")
        return SubTopicSelection(_as_ref(project), _as_ref(topic), _as_ref(subtopic))
    if topic is not None:
        return TopicSelection(_as_ref(project), _as_ref(topic))
    return ProjectSelection(_as_ref(project))


# ---------------------------------------------------------------------------
# Accounting
# ---------------------------------------------------------------------------

@dataclass
class AggregateTimers:
    """Per-level maps of node id -> own total time in milliseconds."""
    projects: dict[str, int] = field(default_factory=dict)
    topics: dict[str, int] = field(default_factory=dict)
    subtopics: dict[str, int] = field(default_factory=dict)

    def map_for(self, level: AttributionLevel) -> dict[str, int]:
        if level is AttributionLevel.PROJECT:
            return self.projects
        if level is AttributionLevel.TOPIC:
            return self.topics
        return self.subtopics

    def total(self, level: AttributionLevel, node_id: str) -> int:
        return self.map_for(level).get(node_id, 0)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            AttributionLevel.PROJECT.value: dict(self.projects),
            AttributionLevel.TOPIC.value: dict(self.topics),
            AttributionLevel.SUBTOPIC.value: dict(self.subtopics),
        }


def new_session_id(now: datetime) -> str:
    """Return an id like ``session_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(now.timestamp() * 1000)}_{suffix}"


@dataclass(frozen=True)
class SessionRecord:
    """One committed focus interval. Immutable once appended to history."""
    id: str
    project_id: str
    project_name: str
    topic_id: Optional[str]
    topic_name: Optional[str]
    subtopic_id: Optional[str]
    subtopic_name: Optional[str]
    duration_ms: int
    start_time: datetime
    end_time: datetime
    date: date
    level: AttributionLevel

    @classmethod
    def create(cls, selection: Selection, duration_ms: int, end_time: datetime) -> "SessionRecord":
        """Build a record ending at *end_time*; the start is derived from the duration."""
        start_time = end_time - timedelta(milliseconds=duration_ms)
        topic = selection.topic_ref
        subtopic = selection.subtopic_ref
        return cls(
            id=new_session_id(end_time),
            project_id=selection.project.id,
            project_name=selection.project.name,
            topic_id=topic.id if topic else None,
            topic_name=topic.name if topic else None,
            subtopic_id=subtopic.id if subtopic else None,
            subtopic_name=subtopic.name if subtopic else None,
            duration_ms=duration_ms,
            start_time=start_time,
            end_time=end_time,
            date=start_time.date(),
            level=selection.level,
        )

    @property
    def node_id(self) -> str:
        """Id of the node whose own total this session was added to."""
        if self.level is AttributionLevel.SUBTOPIC:
            return self.subtopic_id  # type: ignore[return-value]
        if self.level is AttributionLevel.TOPIC:
            return self.topic_id  # type: ignore[return-value]
        return self.project_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "subtopic_id": self.subtopic_id,
            "subtopic_name": self.subtopic_name,
            "duration_ms": self.duration_ms,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "date": self.date.isoformat(),
            "level": self.level.value,
        }


# ---------------------------------------------------------------------------
# Live timers
# ---------------------------------------------------------------------------

class TimerMode(Enum):
    """Which timer is live for the current user."""
    STOPWATCH = "stopwatch"
    FOCUS = "focus"


class StopwatchStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class StopwatchState:
    """Snapshot of the count-up timer."""
    status: StopwatchStatus
    anchor: Optional[float]      # monotonic ms of the last start/resume
    accumulated_ms: float        # time banked before the anchor
    display_ms: int              # cosmetic value refreshed by ticks


class FocusPhase(Enum):
    WORK = "work"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"


@dataclass
class FocusCycleState:
    """Snapshot of the focus-cycle countdown."""
    phase: FocusPhase
    is_active: bool
    seconds_remaining: int
    cycle_count: int


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class Cue(Enum):
    """Symbolic sound/notification names passed to the notifier."""
    START = "start"
    END = "end"
    COUNTDOWN = "countdown"


class ConfirmRequest(Enum):
    """Destructive actions that need a yes/no answer from the user."""
    SWITCH_TASK = "A session is running. Do you want to end it and switch tasks?"
    SWITCH_MODE = "A session is running. Do you want to end it and switch timer mode?"
    DELETE_PROJECT = "Are you sure you want to delete this project and all its history?"
    CLEAR_HISTORY = "Are you sure you want to clear all study history? This cannot be undone."
