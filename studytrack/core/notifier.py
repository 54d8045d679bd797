"""Notification/audio collaborator interface.

The engine fires symbolic cues (``start``, ``countdown``, ``end``) and
never waits for, or depends on, what the collaborator does with them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from studytrack.core.models import Cue, FocusPhase

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Common interface for anything that reacts to timer cues."""

    @abstractmethod
    def notify(self, cue: Cue, phase: Optional[FocusPhase] = None) -> None:
        """Handle *cue*. Must not block."""
        pass


class NullNotifier(Notifier):
    def notify(self, cue: Cue, phase: Optional[FocusPhase] = None) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes cues to the log. Used by the dashboard and the CLI."""

    def notify(self, cue: Cue, phase: Optional[FocusPhase] = None) -> None:
        if phase is None:
            logger.info("Cue: %s", cue.value)
        else:
            logger.info("Cue: %s (%s)", cue.value, phase.value)
