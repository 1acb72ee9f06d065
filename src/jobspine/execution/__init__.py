"""Execution callbacks: the ``JobExecutor`` protocol, handler registry and notifiers."""

from jobspine.core.protocols import JobExecutor, Notifier
from jobspine.execution.notifier import CallbackNotifier, LoggingNotifier
from jobspine.execution.registry import (
    HandlerRegistry,
    get_default_registry,
    register_handler,
    reset_default_registry,
)

__all__ = [
    "JobExecutor",
    "Notifier",
    "CallbackNotifier",
    "LoggingNotifier",
    "HandlerRegistry",
    "get_default_registry",
    "register_handler",
    "reset_default_registry",
]
