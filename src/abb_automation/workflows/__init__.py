"""Builders for workflows this project deploys."""
from abb_automation.workflows.daily_progress import build_daily_progress, build_timesheet_sync
from abb_automation.workflows.progress_logger import build_progress_logger

__all__ = ["build_daily_progress", "build_progress_logger", "build_timesheet_sync"]
