"""Schedule monitoring services."""

from .exam_scheduler import ExamScheduler, MonitoringSession, SessionStatus

__all__ = ["ExamScheduler", "MonitoringSession", "SessionStatus"]
