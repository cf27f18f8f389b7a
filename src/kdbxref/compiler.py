"""Recursive expansion of field references.

The compiler repeatedly scans a value for {REF:...} tokens, resolves each
one to a field of the first matching entry, expands that field's own
references one level deeper, and substitutes the result back. Work is
bounded by MAX_ITERATIONS scan passes per level and MAX_RECURSION_DEPTH
levels, so self-referencing or cyclic entries always terminate.

Resolved tokens are kept in a ReferenceCache shared by every level of one
top-level call. Once a token has a value it is never resolved again, which
both avoids repeated searches and cuts reference cycles short.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from .constants import MAX_ITERATIONS, MAX_RECURSION_DEPTH
from .models import Entry
from .reference import FieldReference, find_reference, parse_reference, read_field
from .search import RecordTree, SearchCriteria, search_entries

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)

# Called with (reference, target entry, recursion level) before each expansion
ResolveHook = Callable[[FieldReference, Entry, int], None]


class ReferenceCache:
    """Raw token text mapped to its resolved value.

    Tokens are compared case-insensitively with the same simple case
    mapping apply() uses, and kept in insertion order.
    The first value stored for a token wins.
    """

    def __init__(self) -> None:
        self._items: dict[str, tuple[str, str]] = {}

    @staticmethod
    def _key(token: str) -> str:
        return token.lower()

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and self._key(token) in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return (token for token, _ in self._items.values())

    def get(self, token: str) -> str | None:
        """Return the cached value for a token, if any."""
        item = self._items.get(self._key(token))
        return item[1] if item is not None else None

    def add(self, token: str, value: str) -> bool:
        """Store a value unless the token is already cached.

        Returns:
            True if the value was stored
        """
        key = self._key(token)
        if key in self._items:
            return False
        self._items[key] = (token, value)
        return True

    def apply(self, text: str) -> str:
        """Replace every occurrence of every cached token in text."""
        for token, value in self._items.values():
            # Function replacement keeps backslashes in value literal
            text = re.sub(re.escape(token), lambda _m, v=value: v, text, flags=re.IGNORECASE)
        return text


@dataclass(frozen=True)
class CompilationContext:
    """State for one top-level compilation.

    Attributes:
        root: Tree searched for reference targets
        entry: Entry whose field is currently being expanded
        cache: Resolved tokens, shared by all derived contexts
    """

    root: RecordTree
    entry: Entry | None
    cache: ReferenceCache = field(default_factory=ReferenceCache)

    def derive(self, entry: Entry) -> CompilationContext:
        """Context for expanding a field of another entry, sharing the cache."""
        return replace(self, entry=entry)


class ReferenceCompiler:
    """Expands {REF:...} tokens in entry field values.

    A compiler holds only its limits and an optional instrumentation hook,
    so one instance can serve any number of concurrent calls.

    Example:
        compiler = ReferenceCompiler()
        password = compiler.compile(entry.password, entry, db)
    """

    def __init__(
        self,
        max_depth: int = MAX_RECURSION_DEPTH,
        max_iterations: int = MAX_ITERATIONS,
        on_resolve: ResolveHook | None = None,
    ) -> None:
        """Initialize the compiler.

        Args:
            max_depth: Recursion level at which expansion yields ""
            max_iterations: Scan passes per recursion level
            on_resolve: Hook called once for every reference expanded
        """
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._max_depth = max_depth
        self._max_iterations = max_iterations
        self._on_resolve = on_resolve

    @property
    def max_depth(self) -> int:
        """Recursion level at which expansion yields an empty string."""
        return self._max_depth

    @property
    def max_iterations(self) -> int:
        """Scan passes allowed per recursion level."""
        return self._max_iterations

    def compile(
        self,
        text: str | None,
        entry: Entry | None,
        database: Database | None,
    ) -> str:
        """Expand all field references in text.

        Never raises for bad input: malformed or unresolvable references
        are left in place.

        Args:
            text: Raw field value
            entry: Entry the value belongs to
            database: Snapshot to resolve references against

        Returns:
            Expanded text; "" if text is empty or there is no database
        """
        if not text or database is None:
            return ""
        context = CompilationContext(root=database.root_group, entry=entry)
        return self.compile_with_context(text, context)

    def compile_with_context(self, text: str | None, context: CompilationContext) -> str:
        """Expand text against an existing context, reusing its cache."""
        return self._compile(text, context, 0)

    def _compile(self, text: str | None, context: CompilationContext, level: int) -> str:
        if not text:
            return ""
        if level >= self._max_depth:
            logger.debug("Reference depth limit reached at level %d", level)
            return ""
        return self._fill_references(text, context, level)

    def _fill_references(self, text: str, context: CompilationContext, level: int) -> str:
        offset = 0
        for _ in range(self._max_iterations):
            text = context.cache.apply(text)

            span = find_reference(text, offset)
            if span is None:
                break
            start, end = span
            raw = text[start:end]

            target = self._find_target(raw, context)
            if target is None:
                offset = start + 1
                continue
            reference, found = target

            wanted = reference.wanted_field
            if wanted is None:
                logger.debug("Unknown wanted field %r at level %d", reference.wanted, level)
                offset = start + 1
                continue

            if self._on_resolve is not None:
                self._on_resolve(reference, found, level + 1)

            data = read_field(found, wanted)
            inner = self._compile(data, context.derive(found), level + 1)
            context.cache.add(raw, inner)
            text = context.cache.apply(text)
            if text[start:end] == raw:
                # Token unchanged by the cache; don't resolve it again
                offset = start + 1
        else:
            logger.debug("Iteration limit reached at level %d", level)

        return text

    def _find_target(
        self, raw: str, context: CompilationContext
    ) -> tuple[FieldReference, Entry] | None:
        """Parse a raw token and find the first entry it refers to."""
        reference = parse_reference(raw)
        if reference is None:
            logger.debug("Skipping malformed reference (%d chars)", len(raw))
            return None

        matches = search_entries(context.root, SearchCriteria.for_reference(reference))
        if not matches:
            logger.debug("No entry matches reference scanning %s", reference.scan.name)
            return None
        return reference, matches[0]


_default_compiler = ReferenceCompiler()


def compile_references(
    text: str | None,
    entry: Entry | None,
    database: Database | None,
) -> str:
    """Expand all field references in text with the default limits.

    Args:
        text: Raw field value
        entry: Entry the value belongs to
        database: Snapshot to resolve references against

    Returns:
        Expanded text; "" if text is empty or there is no database
    """
    return _default_compiler.compile(text, entry, database)
