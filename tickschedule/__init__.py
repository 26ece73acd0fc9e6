"""Tick-driven cooperative task schedulers (run-to-completion and round robin) built on software timers."""

__version__ = "0.1.0"

__all__ = ["tasks", "timers", "scheduler", "rtc", "rr"]