"""SAMS Deploy CLI commands"""

from samsdeploy.commands.deploy import deploy
from samsdeploy.commands.history import (
    history,
    history_cleanup,
    history_export,
    history_stats,
)
from samsdeploy.commands.rollback import rollback, rollback_candidates

__all__ = [
    "deploy",
    "history",
    "history_stats",
    "history_cleanup",
    "history_export",
    "rollback",
    "rollback_candidates",
]
