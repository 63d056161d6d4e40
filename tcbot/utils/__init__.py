"""Shared helpers: JSON codec, async task management, error taxonomy."""
