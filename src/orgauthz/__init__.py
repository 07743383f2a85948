"""Organization-scoped role hierarchy authorization engine."""

from orgauthz.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]

__version__ = "0.1.0"
