"""Exam finder API monitoring."""

from .api_monitor import ExamApiMonitor, select_exam_with_oid

__all__ = ["ExamApiMonitor", "select_exam_with_oid"]
