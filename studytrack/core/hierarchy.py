"""Lookups and effective-time traversal over the project hierarchy.

Aggregate maps only hold each node's own time.  A node's displayed
(effective) time is its own total plus the totals of all its
descendants, computed here by walking the tree on every read.
"""

from typing import Iterable, Iterator, Optional, Union

from studytrack.core.models import (
    AggregateTimers,
    AttributionLevel,
    Project,
    Selection,
    SubTopic,
    Topic,
    make_selection,
)

HierarchyNode = Union[Project, Topic, SubTopic]


def level_of(node: HierarchyNode) -> AttributionLevel:
    if isinstance(node, Project):
        return AttributionLevel.PROJECT
    if isinstance(node, Topic):
        return AttributionLevel.TOPIC
    return AttributionLevel.SUBTOPIC


def iter_nodes(node: HierarchyNode) -> Iterator[HierarchyNode]:
    """Yield *node* and all of its descendants, depth first."""
    yield node
    if isinstance(node, Project):
        for topic in node.topics:
            yield from iter_nodes(topic)
    elif isinstance(node, Topic):
        yield from node.subtopics


def find_project(projects: Iterable[Project], project_id: str) -> Optional[Project]:
    for project in projects:
        if project.id == project_id:
            return project
    return None


def find_node(projects: Iterable[Project], node_id: str) -> Optional[HierarchyNode]:
    for project in projects:
        for node in iter_nodes(project):
            if node.id == node_id:
                return node
    return None


def resolve_selection(
    projects: Iterable[Project],
    project_id: str,
    topic_id: Optional[str] = None,
    subtopic_id: Optional[str] = None,
) -> Selection:
    """Turn ids into a Selection, checking that each node belongs to its parent.

    Raises ``KeyError`` for unknown ids and ``ValueError`` for a sub-topic
    without its topic.
    """
    project = find_project(projects, project_id)
    if project is None:
        raise KeyError(f"Unknown project: {project_id}")
    topic = None
    subtopic = None
    if topic_id is not None:
        topic = next((t for t in project.topics if t.id == topic_id), None)
        if topic is None:
            raise KeyError(f"Unknown topic {topic_id} in project {project_id}")
    if subtopic_id is not None:
        if topic is None:
            raise ValueError("A sub-topic selection requires its topic")
        subtopic = next((s for s in topic.subtopics if s.id == subtopic_id), None)
        if subtopic is None:
            raise KeyError(f"Unknown sub-topic {subtopic_id} in topic {topic_id}")
    return make_selection(project, topic, subtopic)


def effective_time(node: HierarchyNode, timers: AggregateTimers) -> int:
    """Own total of *node* plus the own totals of all its descendants."""
    return sum(timers.total(level_of(n), n.id) for n in iter_nodes(node))


def removed_nodes(old: Iterable[Project], new: Iterable[Project]) -> list[HierarchyNode]:
    """Return the top-most nodes present in *old* but missing from *new*.

    A removed project is reported alone, not together with its topics.
    """
    new_ids = {n.id for p in new for n in iter_nodes(p)}
    removed: list[HierarchyNode] = []

    def _walk(node: HierarchyNode) -> None:
        if node.id not in new_ids:
            removed.append(node)
            return
        if isinstance(node, Project):
            for topic in node.topics:
                _walk(topic)
        elif isinstance(node, Topic):
            for subtopic in node.subtopics:
                _walk(subtopic)

    for project in old:
        _walk(project)
    return removed
