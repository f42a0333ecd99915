"""
Core engine package: configuration, scoring and session lifecycle.
"""
from .config import settings

__all__ = ["settings"]
