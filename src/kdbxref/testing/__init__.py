"""Test utilities for kdbxref.

Helpers for exercising the reference compiler: a hook that records every
reference expansion, and a builder for chains of entries that reference
each other.

Example:
    >>> from kdbxref import Database, ReferenceCompiler
    >>> db = Database.create()
    >>> recorder = ResolutionRecorder()
    >>> compiler = ReferenceCompiler(on_resolve=recorder)
    >>> compiler.compile("no references here", None, db)
    'no references here'
    >>> recorder.count
    0
"""

from __future__ import annotations

from dataclasses import dataclass, field

from kdbxref.models import Entry, Group
from kdbxref.reference import FieldReference


@dataclass(frozen=True)
class Resolution:
    """One recorded reference expansion."""

    token: str
    target: Entry
    level: int


@dataclass
class ResolutionRecorder:
    """on_resolve hook that records each expansion the compiler performs.

    Attributes:
        resolutions: Expansions in the order they happened
    """

    resolutions: list[Resolution] = field(default_factory=list)

    def __call__(self, reference: FieldReference, target: Entry, level: int) -> None:
        self.resolutions.append(Resolution(token=reference.raw, target=target, level=level))

    @property
    def count(self) -> int:
        """Number of expansions recorded."""
        return len(self.resolutions)

    @property
    def max_level(self) -> int:
        """Deepest recursion level reached, 0 if nothing was expanded."""
        return max((r.level for r in self.resolutions), default=0)

    def count_for(self, token: str) -> int:
        """Number of expansions of a token, compared case-insensitively."""
        folded = token.lower()
        return sum(1 for r in self.resolutions if r.token.lower() == folded)


def build_reference_chain(
    group: Group,
    length: int,
    final_title: str = "end",
    prefix: str = "node",
) -> list[Entry]:
    """Create entries whose titles each reference the next entry's title.

    Entry i gets username "<prefix><i>" (zero-padded) and title
    "{REF:T@U:<prefix><i+1>}"; the last entry's title is final_title.
    Expanding the first title therefore recurses once per link.

    Args:
        group: Group to add the entries to
        length: Number of entries
        final_title: Literal title of the last entry
        prefix: Username prefix; must not be a substring of other usernames

    Returns:
        The created entries, first to last
    """
    if length < 1:
        raise ValueError("Chain length must be at least 1")

    width = max(2, len(str(length)))
    entries = []
    for i in range(length):
        if i == length - 1:
            title = final_title
        else:
            title = f"{{REF:T@U:{prefix}{i + 1:0{width}d}}}"
        entries.append(group.create_entry(title=title, username=f"{prefix}{i:0{width}d}"))
    return entries


__all__ = [
    "Resolution",
    "ResolutionRecorder",
    "build_reference_chain",
]
