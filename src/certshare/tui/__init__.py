"""Terminal UI for the worker table view."""

from certshare.tui.monitor_app import MonitorApp

__all__ = ["MonitorApp"]
