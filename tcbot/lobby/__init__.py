"""Lobby mirror: room registry, observer connection and text rendering."""
