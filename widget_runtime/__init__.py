"""
widget_runtime package.

Process-level pieces of the widget engine: logging configuration and the
headless entry point.
"""

__all__ = [
    "logger",
    "main",
]
