"""tvremote - session manager and remote control for webOS smart TVs."""

__version__ = "0.1.0"
__logo__ = "📺"
