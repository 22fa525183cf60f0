"""Runtime configuration."""

from task_mgmt.config.settings import Settings, resolve_settings

__all__ = ["Settings", "resolve_settings"]
