"""Verification checks run against deployed URLs"""

from .battery import VerificationBattery
from .http_checks import HttpVerifier, build_session
from .ui_checks import BrowserVerifier, PageSnapshot

__all__ = [
    "BrowserVerifier",
    "HttpVerifier",
    "PageSnapshot",
    "VerificationBattery",
    "build_session",
]
