"""Utility functions and helpers."""

from .debug_stats import DebugStatsTracker, get_stats_tracker
from .logger import setup_logger

__all__ = ["DebugStatsTracker", "get_stats_tracker", "setup_logger"]
