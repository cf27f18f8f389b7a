"""Custom exception hierarchy for kdbxref.

The reference compiler itself never raises: malformed or unresolvable
references are left in the text verbatim. These exceptions come from the
surrounding library APIs (snapshot loading, reference building).

Exception Hierarchy:
    KdbxRefError (base)
    ├── InvalidReferenceError
    └── DatabaseError
        ├── EntryNotFoundError
        ├── GroupNotFoundError
        └── InvalidXmlError

Security Note:
    Exception messages never include field values, since referenced
    fields are frequently passwords.
"""

from __future__ import annotations


class KdbxRefError(Exception):
    """Base exception for all kdbxref errors.

    All exceptions raised by kdbxref inherit from this class,
    making it easy to catch all library-specific errors.
    """


class InvalidReferenceError(KdbxRefError):
    """A field reference could not be built.

    Raised when the requested selectors or search term cannot be
    expressed as a {REF:...} token.
    """

    def __init__(self, message: str = "Invalid field reference") -> None:
        super().__init__(message)


# --- Database Errors ---


class DatabaseError(KdbxRefError):
    """Error in database snapshot operations."""


class EntryNotFoundError(DatabaseError):
    """Entry not found in database.

    The requested entry doesn't exist or was not found
    in the specified location.
    """

    def __init__(self, message: str = "Entry not found") -> None:
        super().__init__(message)


class GroupNotFoundError(DatabaseError):
    """Group not found in database."""

    def __init__(self, message: str = "Group not found") -> None:
        super().__init__(message)


class InvalidXmlError(DatabaseError):
    """Invalid or malformed XML payload.

    The XML content doesn't conform to the KeePass XML export schema.
    """

    def __init__(self, message: str = "Invalid KeePass XML structure") -> None:
        super().__init__(message)
