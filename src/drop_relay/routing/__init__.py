"""
Routing Layer - DomainEvents to webhook submissions.

This module provides:
    - GroupConfig: per-group notification settings
    - ScreenshotPolicy: which events carry a screenshot
    - SubmissionRouter: group qualification and fan-out folding
    - build_payload: Discord-style webhook body for an event
    - SubmissionHistory: bounded record of tracked submissions
"""

from .models import (
    GroupConfig,
    ScreenshotPolicy,
    SubmissionIntent,
    SubmissionRecord,
    SubmissionStatus,
)
from .webhook import SCREENSHOT_FILENAME, Embed, EmbedField, WebhookBody, build_payload
from .history import SessionStats, SubmissionHistory
from .router import RouterConfig, ScreenshotProvider, SubmissionRouter, load_group_configs

__all__ = [
    # Models
    "GroupConfig",
    "ScreenshotPolicy",
    "SubmissionIntent",
    "SubmissionRecord",
    "SubmissionStatus",
    # Payload
    "SCREENSHOT_FILENAME",
    "Embed",
    "EmbedField",
    "WebhookBody",
    "build_payload",
    # History
    "SessionStats",
    "SubmissionHistory",
    # Router
    "RouterConfig",
    "ScreenshotProvider",
    "SubmissionRouter",
    "load_group_configs",
]
