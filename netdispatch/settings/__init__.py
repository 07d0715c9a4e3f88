"""Dispatcher settings loading."""

from .app import DispatchSettings, get_settings


__all__ = ["DispatchSettings", "get_settings"]
