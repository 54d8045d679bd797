"""Task selection context.

Holds the single selected node and decides what happens to an
in-progress interval when the selection changes or the selected node is
deleted.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from studytrack.core.errors import NoTaskSelected
from studytrack.core.hierarchy import HierarchyNode, iter_nodes
from studytrack.core.models import ConfirmRequest, Project, Selection
from studytrack.core.recorder import SessionRecorder

logger = logging.getLogger(__name__)

Confirm = Callable[[ConfirmRequest], bool]


def decline(request: ConfirmRequest) -> bool:
    """Confirmation answer used when no collaborator is wired in."""
    return False


class SelectResult(Enum):
    SWITCHED = "switched"
    RESELECTED = "reselected"
    DECLINED = "declined"


class LiveTimer(ABC):
    """What the selection context needs to know about the live timer."""

    @abstractmethod
    def is_active(self) -> bool:
        """True while time is being counted right now."""
        pass

    @abstractmethod
    def has_pending_time(self) -> bool:
        """True when paused time exists that has not been committed."""
        pass

    @abstractmethod
    def finalize(self) -> None:
        """Stop, commit what is owed and reset."""
        pass

    @abstractmethod
    def discard(self) -> None:
        """Stop and reset without committing anything."""
        pass


class TaskSelectionContext:
    """Mediates selection changes against a possibly running timer."""

    def __init__(
        self,
        recorder: SessionRecorder,
        timer: LiveTimer,
        confirm: Optional[Confirm] = None,
    ) -> None:
        self.recorder = recorder
        self.timer = timer
        self.confirm = confirm or decline
        self.selection: Optional[Selection] = None

    def select(self, selection: Selection, confirm: Optional[Confirm] = None) -> SelectResult:
        """Apply *selection*.

        Switching to a different node while the timer is active needs a
        yes from *confirm*; a no leaves every piece of state as it was.
        Otherwise any owed time is committed against the current node and
        the timer is reset before the selection takes effect.  Reselecting
        the same node never asks.
        """
        current = self.selection
        same = current is not None and current.node_id == selection.node_id

        if not same and self.timer.is_active():
            ask = confirm or self.confirm
            if not ask(ConfirmRequest.SWITCH_TASK):
                logger.info("Task switch declined; keeping %s", current.describe() if current else "none")
                return SelectResult.DECLINED

        if self.timer.is_active() or self.timer.has_pending_time():
            self._finalize_then_apply(selection)
        else:
            self.selection = selection
        logger.info("Selected %s", selection.describe())
        return SelectResult.RESELECTED if same else SelectResult.SWITCHED

    def clear(self) -> None:
        self.selection = None

    def require_selection_before_start(self) -> Selection:
        """Return the current selection or raise ``NoTaskSelected``."""
        if self.selection is None:
            raise NoTaskSelected()
        return self.selection

    def on_node_deleted(self, node: HierarchyNode) -> None:
        """React to a node (and its subtree) disappearing from the hierarchy.

        In-flight time on a deleted node is discarded, the selection is
        cleared, and the node's history (for projects) and totals are
        removed.
        """
        node_ids = [n.id for n in iter_nodes(node)]
        if self.selection is not None and self.selection.contains(node.id):
            if self.timer.is_active() or self.timer.has_pending_time():
                logger.warning("Selected node %s deleted; discarding in-flight time", node.id)
            self.timer.discard()
            self.selection = None

        if isinstance(node, Project):
            self.recorder.forget_project(node.id, node_ids)
        else:
            self.recorder.forget_nodes(node_ids)

    def _finalize_then_apply(self, selection: Selection) -> None:
        try:
            self.timer.finalize()
        finally:
            self.selection = selection
