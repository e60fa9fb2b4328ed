"""
Run events

The orchestrator emits events instead of calling notification transports
directly; sinks subscribe to the ones they care about.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, List, Optional, Type

from samsdeploy.logger import DeployLogger
from samsdeploy.models.rollback import RollbackResult
from samsdeploy.models.run import RunReport


@dataclass
class RunCompleted:
    """Emitted once at the end of every orchestrator run."""

    report: RunReport


@dataclass
class RollbackCompleted:
    """Emitted when a rollback reaches a terminal state."""

    result: RollbackResult


Handler = Callable[[object], None]


class EventBus:
    """Synchronous in-process publish/subscribe."""

    def __init__(self, logger: Optional[DeployLogger] = None):
        self.logger = logger
        self._handlers: DefaultDict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def emit(self, event: object) -> None:
        """
        Deliver an event to every subscriber.

        A failing subscriber is logged and never breaks the run.
        """
        for handler in self._handlers.get(type(event), []):
            try:
                handler(event)
            except Exception as e:
                if self.logger:
                    self.logger.warning(
                        f"Event handler for {type(event).__name__} failed: {e}"
                    )
