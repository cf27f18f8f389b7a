"""Entry search used to locate reference targets.

A search string is split into terms. A single term (or a regular
expression) is matched in one pass over the tree. Several terms are
evaluated one at a time, shortest first: a plain term replaces the
candidate list with its matches, a term prefixed with "-" removes its
matches from the candidates.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, fields
from typing import Protocol

from .models import Entry, EntryVisitor, Visit
from .reference import FieldReference, RefField, read_field

logger = logging.getLogger(__name__)

NEGATION_PREFIX = "-"

_FLAG_BY_FIELD: dict[RefField, str] = {
    RefField.TITLE: "search_in_titles",
    RefField.USERNAME: "search_in_usernames",
    RefField.URL: "search_in_urls",
    RefField.PASSWORD: "search_in_passwords",
    RefField.NOTES: "search_in_notes",
    RefField.UUID: "search_in_uuids",
    RefField.OTHER: "search_in_other",
}


class RecordTree(Protocol):
    """Read-only view of a tree the search can walk."""

    @property
    def entries(self) -> list[Entry]: ...

    def traverse(self, visitor: EntryVisitor) -> bool: ...


@dataclass
class SearchCriteria:
    """What to search for and which fields are eligible.

    Attributes:
        search_string: Text (or pattern) to search for
        search_in_titles: Match against titles
        search_in_usernames: Match against usernames
        search_in_urls: Match against URLs
        search_in_passwords: Match against passwords
        search_in_notes: Match against notes
        search_in_uuids: Match against UUIDs (upper-case hex)
        search_in_other: Match against custom string field values
        regular_expression: Treat search_string as a regex
        case_sensitive: Compare case-sensitively
        respect_search_disabled: Skip entries in groups with searching disabled
    """

    search_string: str = ""
    search_in_titles: bool = True
    search_in_usernames: bool = True
    search_in_urls: bool = True
    search_in_passwords: bool = False
    search_in_notes: bool = True
    search_in_uuids: bool = False
    search_in_other: bool = True
    regular_expression: bool = False
    case_sensitive: bool = False
    respect_search_disabled: bool = True

    def setup_none(self) -> None:
        """Turn every field flag off."""
        for name in _FLAG_BY_FIELD.values():
            setattr(self, name, False)

    def enable(self, field: RefField) -> None:
        """Make a field eligible for matching."""
        setattr(self, _FLAG_BY_FIELD[field], True)

    @property
    def selected_fields(self) -> list[RefField]:
        """Fields currently eligible for matching, in selector order."""
        return [field for field, name in _FLAG_BY_FIELD.items() if getattr(self, name)]

    @classmethod
    def for_reference(cls, reference: FieldReference) -> SearchCriteria:
        """Criteria matching a reference's search term against its Scan field only."""
        criteria = cls(search_string=reference.search_term)
        criteria.setup_none()
        criteria.enable(reference.scan)
        return criteria

    def __str__(self) -> str:
        flags = ", ".join(
            f.name for f in fields(self)
            if f.name.startswith("search_in_") and getattr(self, f.name)
        )
        return f"SearchCriteria(<{len(self.search_string)} chars> in {flags or 'nothing'})"


def split_search_terms(text: str) -> list[str]:
    """Split a search string into terms.

    Terms are separated by whitespace; a double-quoted phrase forms a single
    term with the quotes removed. A "-" directly before the quotes is kept,
    so '-"two words"' yields the negated term '-two words'.
    """
    terms: list[str] = []
    current: list[str] = []
    quoted = False
    for ch in text:
        if ch == '"':
            quoted = not quoted
        elif ch.isspace() and not quoted:
            if current:
                terms.append("".join(current))
                current = []
        else:
            current.append(ch)
    if current:
        terms.append("".join(current))
    return terms


def _field_values(entry: Entry, selected: list[RefField]) -> Iterator[str]:
    for field in selected:
        if field is RefField.OTHER:
            for value in entry.custom_properties.values():
                if value is not None:
                    yield value
        else:
            yield read_field(entry, field)


def _build_predicate(criteria: SearchCriteria, term: str) -> Callable[[str], bool] | None:
    if criteria.regular_expression:
        flags = 0 if criteria.case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(term, flags)
        except re.error as exc:
            logger.debug("Invalid search pattern: %s", exc)
            return None
        return lambda value: pattern.search(value) is not None

    if criteria.case_sensitive:
        return lambda value: term in value

    folded = term.casefold()
    return lambda value: folded in value.casefold()


def _run_pass(root: RecordTree, criteria: SearchCriteria, term: str) -> list[Entry] | None:
    """Collect entries matching term in traversal order.

    Returns None if the traversal was aborted.
    """
    predicate = _build_predicate(criteria, term)
    if predicate is None:
        return []

    selected = criteria.selected_fields
    matches: list[Entry] = []

    def visit(entry: Entry) -> Visit:
        if criteria.respect_search_disabled and not entry.is_searchable:
            return Visit.CONTINUE
        if any(predicate(value) for value in _field_values(entry, selected)):
            matches.append(entry)
        return Visit.CONTINUE

    if not root.traverse(visit):
        return None
    return matches


def search_entries(root: RecordTree, criteria: SearchCriteria) -> list[Entry]:
    """Find entries matching the criteria.

    Multi-term searches sort their terms by ascending length before
    evaluating them. The candidate list starts as the root's own entries;
    each plain term replaces it with that term's matches (anywhere in the
    tree) and each negated term filters its matches out.

    Args:
        root: Tree to search
        criteria: Search string, eligible fields and matching options

    Returns:
        Matching entries in traversal order; empty if nothing matched or a
        traversal was aborted
    """
    terms = split_search_terms(criteria.search_string)
    if len(terms) <= 1 or criteria.regular_expression:
        matches = _run_pass(root, criteria, criteria.search_string)
        if matches is None:
            logger.debug("Search traversal aborted")
            return []
        return matches

    terms.sort(key=len)

    candidates = list(root.entries)
    for index, term in enumerate(terms):
        negate = False
        if term.startswith(NEGATION_PREFIX):
            term = term[len(NEGATION_PREFIX):]
            negate = bool(term)

        matches = _run_pass(root, criteria, term)
        if matches is None:
            logger.debug("Search traversal aborted on term %d of %d", index + 1, len(terms))
            return []

        if negate:
            excluded = set(matches)
            candidates = [entry for entry in candidates if entry not in excluded]
        else:
            candidates = matches

    return candidates
