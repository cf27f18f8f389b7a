"""kdbxref - KeePass field reference resolution for Python.

This library expands field references of the form
``{REF:<Wanted>@<Scan>:<SearchTerm>}`` embedded in credential entries:
each token is replaced by a field of the first entry whose Scan field
matches the search term, recursively, with hard bounds on depth and
iterations so cyclic references always terminate.

Example:
    from kdbxref import Database, RefField

    db = Database.create()
    admin = db.root_group.create_entry(title="Admin", username="admin001")
    site = db.root_group.create_entry(title="Site", notes="Login: {REF:U@T:Admin}")

    db.deref_field(site, RefField.NOTES)  # "Login: admin001"
"""

__version__ = "0.1.0"

from .compiler import (
    CompilationContext,
    ReferenceCache,
    ReferenceCompiler,
    compile_references,
)
from .constants import MAX_ITERATIONS, MAX_RECURSION_DEPTH
from .database import Database, DatabaseSettings
from .exceptions import (
    DatabaseError,
    EntryNotFoundError,
    GroupNotFoundError,
    InvalidReferenceError,
    InvalidXmlError,
    KdbxRefError,
)
from .models import Entry, Group, StringField, Visit
from .reference import (
    FieldReference,
    RefField,
    build_reference,
    contains_reference,
    find_reference,
    parse_reference,
    read_field,
)
from .search import SearchCriteria, search_entries, split_search_terms

__all__ = [
    # Core classes
    "CompilationContext",
    "Database",
    "DatabaseSettings",
    "Entry",
    "FieldReference",
    "Group",
    "RefField",
    "ReferenceCache",
    "ReferenceCompiler",
    "SearchCriteria",
    "StringField",
    "Visit",
    # Functions
    "build_reference",
    "compile_references",
    "contains_reference",
    "find_reference",
    "parse_reference",
    "read_field",
    "search_entries",
    "split_search_terms",
    # Limits
    "MAX_ITERATIONS",
    "MAX_RECURSION_DEPTH",
    # Exceptions
    "KdbxRefError",
    "InvalidReferenceError",
    "DatabaseError",
    "EntryNotFoundError",
    "GroupNotFoundError",
    "InvalidXmlError",
]
