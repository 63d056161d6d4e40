"""Tziakcha bot bridge: game server accounts driven by external agents."""

__version__ = "1.0.0"
