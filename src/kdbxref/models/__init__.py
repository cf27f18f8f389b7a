"""Data models for the record tree.

This module provides typed Python classes for the read-only snapshot the
reference engine works on: entries and the groups that contain them.
"""

from .entry import Entry, StringField
from .group import EntryVisitor, Group, Visit

__all__ = [
    "Entry",
    "EntryVisitor",
    "Group",
    "StringField",
    "Visit",
]
