"""Wisdom generation."""

from archive_wisdom.wisdom.generator import WisdomGenerator

__all__ = ["WisdomGenerator"]
