"""Field reference tokens: scanning, parsing and building.

A field reference embeds a field of another entry inside a value:

    {REF:<Wanted>@<Scan>:<SearchTerm>}

Wanted selects the field copied from the target entry, Scan selects the
field the search term is matched against. The marker and both selectors
are case-insensitive. For example ``{REF:P@I:46C9B1FFBD4ABC4BBB260C6190BAD20C}``
is the password of the entry with that UUID.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .constants import REF_END, REF_SCAN_SEPARATOR, REF_START, REF_WANTED_SEPARATOR
from .exceptions import InvalidReferenceError
from .models import Entry

_REF_START_PATTERN = re.compile(re.escape(REF_START), re.IGNORECASE)

# Shortest valid body: "<W>@<S>:<one char>"
_MIN_BODY_LENGTH = 5


class RefField(Enum):
    """Field selector characters used in reference tokens."""

    TITLE = "T"
    USERNAME = "U"
    URL = "A"
    PASSWORD = "P"
    NOTES = "N"
    UUID = "I"
    OTHER = "O"  # custom string fields, scan only

    @classmethod
    def from_code(cls, code: str) -> RefField | None:
        """Look up a selector character, or None if it is not one."""
        try:
            return cls(code.upper())
        except ValueError:
            return None

    @property
    def wantable(self) -> bool:
        """Whether this field can be the Wanted side of a reference."""
        return self is not RefField.OTHER


_FIELD_READERS: dict[RefField, Callable[[Entry], str | None]] = {
    RefField.TITLE: lambda entry: entry.title,
    RefField.USERNAME: lambda entry: entry.username,
    RefField.URL: lambda entry: entry.url,
    RefField.PASSWORD: lambda entry: entry.password,
    RefField.NOTES: lambda entry: entry.notes,
    RefField.UUID: lambda entry: entry.uuid_hex,
}


def read_field(entry: Entry, field: RefField) -> str:
    """Read the raw value of a single-valued field.

    Args:
        entry: Entry to read from
        field: Field selector (any but OTHER)

    Returns:
        Raw field text, "" if unset

    Raises:
        ValueError: If field is OTHER, which spans several values
    """
    reader = _FIELD_READERS.get(field)
    if reader is None:
        raise ValueError(f"{field.name} does not name a single field")
    return reader(entry) or ""


@dataclass(frozen=True)
class FieldReference:
    """A parsed reference token.

    Attributes:
        raw: Token text exactly as it appeared, braces included
        wanted: Upper-cased Wanted selector character
        scan: Field the search term is matched against
        search_term: Upper-cased search term
    """

    raw: str
    wanted: str
    scan: RefField
    search_term: str

    @property
    def wanted_field(self) -> RefField | None:
        """Wanted selector as a field, or None if it names no readable field."""
        field = RefField.from_code(self.wanted)
        if field is None or not field.wantable:
            return None
        return field


def find_reference(text: str, offset: int = 0) -> tuple[int, int] | None:
    """Locate the next reference token at or after offset.

    Args:
        text: Text to scan
        offset: Position to start scanning from

    Returns:
        (start, end) slice bounds of the raw token, or None when there is no
        further {REF: marker or it is never closed
    """
    match = _REF_START_PATTERN.search(text, offset)
    if match is None:
        return None
    start = match.start()
    end = text.find(REF_END, start + 1)
    if end < 0:
        return None
    return start, end + 1


def contains_reference(text: str | None) -> bool:
    """Check whether text contains a (possibly malformed) reference token."""
    return bool(text) and find_reference(text) is not None


def parse_reference(raw: str | None) -> FieldReference | None:
    """Parse a raw token into its selectors and search term.

    Args:
        raw: Token text from {REF: to } inclusive

    Returns:
        Parsed reference, or None if the grammar is invalid or the Scan
        selector is unknown. An unknown Wanted selector still parses;
        see FieldReference.wanted_field.
    """
    if not raw:
        return None

    ref = raw.upper()
    if not ref.startswith(REF_START) or not ref.endswith(REF_END):
        return None

    body = ref[len(REF_START):-len(REF_END)]
    if len(body) < _MIN_BODY_LENGTH:
        return None
    if body[1] != REF_WANTED_SEPARATOR or body[3] != REF_SCAN_SEPARATOR:
        return None

    scan = RefField.from_code(body[2])
    if scan is None:
        return None

    return FieldReference(raw=raw, wanted=body[0], scan=scan, search_term=body[4:])


def build_reference(
    target: Entry | str,
    wanted: RefField,
    scan: RefField = RefField.UUID,
) -> str:
    """Build a reference token.

    Referencing by UUID is the stable choice: titles and usernames may be
    shared by several entries, in which case the first one in tree order wins.

    Args:
        target: Entry to reference, or a literal search term
        wanted: Field to copy from the target
        scan: Field to identify the target by

    Returns:
        Token text such as "{REF:P@I:<uuid hex>}"

    Raises:
        InvalidReferenceError: If wanted is OTHER, an entry is given with
            scan OTHER, or the search term is empty or contains "}"
    """
    if not wanted.wantable:
        raise InvalidReferenceError(f"{wanted.name} cannot be a wanted field")

    if isinstance(target, Entry):
        if scan is RefField.OTHER:
            raise InvalidReferenceError("Cannot derive a search term from custom fields")
        term = read_field(target, scan)
    else:
        term = target

    if not term:
        raise InvalidReferenceError("Search term must not be empty")
    if REF_END in term:
        raise InvalidReferenceError(f"Search term must not contain {REF_END!r}")

    return (
        f"{REF_START}{wanted.value}{REF_WANTED_SEPARATOR}"
        f"{scan.value}{REF_SCAN_SEPARATOR}{term}{REF_END}"
    )
