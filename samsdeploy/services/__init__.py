"""
SAMS Deploy Services Layer

Process execution, platform adapters, cache busting, history and rollback.
"""

from .cache_buster import CacheBuster
from .firebase_service import FirebaseService
from .hosting_service import HostedDeployment, HostingService
from .notification_service import WebhookNotifier
from .process_service import ProcessExecutor
from .rollback_service import RollbackManager
from .tracker_service import DeploymentTracker

__all__ = [
    "CacheBuster",
    "DeploymentTracker",
    "FirebaseService",
    "HostedDeployment",
    "HostingService",
    "ProcessExecutor",
    "RollbackManager",
    "WebhookNotifier",
]
