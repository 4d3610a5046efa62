"""Runtime services: telemetry and user-facing reporting."""

from .reporting import ErrorQueue, LoggingNotifier, Notifier, RecordingNotifier

__all__ = ["ErrorQueue", "LoggingNotifier", "Notifier", "RecordingNotifier"]
