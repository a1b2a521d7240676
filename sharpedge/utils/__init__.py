"""Utility modules."""

from sharpedge.utils.alerts import WebhookDispatcher
from sharpedge.utils.logging import setup_logging

__all__ = ["WebhookDispatcher", "setup_logging"]
