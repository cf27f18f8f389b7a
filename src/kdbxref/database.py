"""High-level Database API for record snapshots.

This module provides the main interface for resolving field references:
- Creating an in-memory snapshot or loading one from a KeePass XML export
- Searching for entries and groups
- Expanding {REF:...} tokens in entry fields
"""

from __future__ import annotations

import base64
import binascii
import logging
import uuid as uuid_module
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from .compiler import ReferenceCompiler, compile_references
from .exceptions import EntryNotFoundError, GroupNotFoundError, InvalidXmlError
from .models import Entry, Group, StringField
from .reference import RefField, read_field
from .search import SearchCriteria, search_entries

logger = logging.getLogger(__name__)


@dataclass
class DatabaseSettings:
    """Settings for a database snapshot.

    Attributes:
        generator: Generator application name
        database_name: Name of the database
        database_description: Description of the database
        default_username: Default username for new entries
    """

    generator: str = "kdbxref"
    database_name: str = "Database"
    database_description: str = ""
    default_username: str = ""


class Database:
    """Read-only view of a record tree with reference resolution.

    Example usage:
        # Load a KeePass XML export
        db = Database.open_xml("export.xml")

        # Find an entry and show its dereferenced password
        entry = db.find_entries(title="GitHub")[0]
        print(db.deref_field(entry, RefField.PASSWORD))

        # Expand arbitrary text in the context of an entry
        db.resolve("Login: {REF:U@T:GitHub}", entry)
    """

    def __init__(
        self,
        root_group: Group,
        settings: DatabaseSettings | None = None,
    ) -> None:
        """Initialize database.

        Usually you should use Database.create() or Database.open_xml() instead.

        Args:
            root_group: Root group containing all entries/groups
            settings: Database settings
        """
        self._root_group = root_group
        self._settings = settings or DatabaseSettings()
        self._filepath: Path | None = None

    @property
    def root_group(self) -> Group:
        """Get the root group of the database."""
        return self._root_group

    @property
    def settings(self) -> DatabaseSettings:
        """Get database settings."""
        return self._settings

    @property
    def filepath(self) -> Path | None:
        """Get the file path the snapshot was loaded from, if any."""
        return self._filepath

    # --- Creating and loading ---

    @classmethod
    def create(cls, database_name: str = "Database") -> Database:
        """Create an empty snapshot.

        Args:
            database_name: Name for the database and its root group

        Returns:
            New Database instance
        """
        root_group = Group.create_root(database_name)
        return cls(root_group=root_group, settings=DatabaseSettings(database_name=database_name))

    @classmethod
    def open_xml(cls, filepath: str | Path) -> Database:
        """Load a snapshot from a KeePass XML export file.

        Args:
            filepath: Path to the XML file

        Returns:
            Database instance

        Raises:
            FileNotFoundError: If the file doesn't exist
            InvalidXmlError: If the file isn't a KeePass XML export
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Database file not found: {filepath}")

        db = cls.open_xml_bytes(filepath.read_bytes())
        db._filepath = filepath
        return db

    @classmethod
    def open_xml_bytes(cls, data: bytes) -> Database:
        """Load a snapshot from KeePass XML export bytes.

        Args:
            data: XML document

        Returns:
            Database instance

        Raises:
            InvalidXmlError: If the data isn't a KeePass XML export
        """
        root_group, settings = cls._parse_xml(data)
        logger.debug("Loaded snapshot with %d entries", sum(1 for _ in root_group.iter_entries()))
        return cls(root_group=root_group, settings=settings)

    # --- Search operations ---

    def find_entries(
        self,
        title: str | None = None,
        username: str | None = None,
        url: str | None = None,
        uuid: uuid_module.UUID | None = None,
        recursive: bool = True,
    ) -> list[Entry]:
        """Find entries matching criteria.

        Args:
            title: Match entries with this title
            username: Match entries with this username
            url: Match entries with this URL
            uuid: Match entry with this UUID
            recursive: Search in subgroups

        Returns:
            List of matching entries
        """
        if uuid is not None:
            entry = self._root_group.find_entry_by_uuid(uuid, recursive=recursive)
            return [entry] if entry else []

        return self._root_group.find_entries(
            title=title,
            username=username,
            url=url,
            recursive=recursive,
        )

    def search(self, criteria: SearchCriteria) -> list[Entry]:
        """Run a KeePass-style term search (see kdbxref.search)."""
        return search_entries(self._root_group, criteria)

    def get_entry(self, uuid: uuid_module.UUID) -> Entry:
        """Get an entry by UUID.

        Raises:
            EntryNotFoundError: If no entry has this UUID
        """
        entry = self._root_group.find_entry_by_uuid(uuid)
        if entry is None:
            raise EntryNotFoundError(f"No entry with UUID {uuid}")
        return entry

    def get_group(self, uuid: uuid_module.UUID) -> Group:
        """Get a group by UUID, including the root group.

        Raises:
            GroupNotFoundError: If no group has this UUID
        """
        if self._root_group.uuid == uuid:
            return self._root_group
        for group in self._root_group.iter_groups():
            if group.uuid == uuid:
                return group
        raise GroupNotFoundError(f"No group with UUID {uuid}")

    def iter_entries(self, recursive: bool = True) -> Iterator[Entry]:
        """Iterate over all entries in the database.

        Args:
            recursive: Include entries from all subgroups

        Yields:
            Entry objects
        """
        yield from self._root_group.iter_entries(recursive=recursive)

    def iter_groups(self, recursive: bool = True) -> Iterator[Group]:
        """Iterate over all groups in the database.

        Args:
            recursive: Include nested subgroups

        Yields:
            Group objects
        """
        yield from self._root_group.iter_groups(recursive=recursive)

    # --- Reference resolution ---

    def resolve(
        self,
        text: str | None,
        entry: Entry | None = None,
        compiler: ReferenceCompiler | None = None,
    ) -> str:
        """Expand field references in text.

        Args:
            text: Text possibly containing {REF:...} tokens
            entry: Entry the text belongs to
            compiler: Compiler to use (default limits if omitted)

        Returns:
            Expanded text
        """
        if compiler is not None:
            return compiler.compile(text, entry, self)
        return compile_references(text, entry, self)

    def deref_field(
        self,
        entry: Entry,
        field: RefField,
        compiler: ReferenceCompiler | None = None,
    ) -> str:
        """Get a field of an entry with its references expanded.

        Args:
            entry: Entry to read
            field: Field to read (any but OTHER)
            compiler: Compiler to use (default limits if omitted)

        Returns:
            Expanded field value
        """
        return self.resolve(read_field(entry, field), entry, compiler)

    # --- XML parsing ---

    @classmethod
    def _parse_xml(cls, xml_data: bytes) -> tuple[Group, DatabaseSettings]:
        """Parse KeePass XML into models.

        Args:
            xml_data: XML document bytes

        Returns:
            Tuple of (root_group, settings)
        """
        try:
            root = DefusedET.fromstring(xml_data)
        except (ParseError, DefusedXmlException) as e:
            raise InvalidXmlError(f"Invalid KeePass XML: {type(e).__name__}") from e

        settings = cls._parse_meta(root.find("Meta"))

        root_elem = root.find("Root")
        if root_elem is None:
            raise InvalidXmlError("Invalid KeePass XML: missing Root element")

        group_elem = root_elem.find("Group")
        if group_elem is None:
            raise InvalidXmlError("Invalid KeePass XML: missing root Group element")

        root_group = cls._parse_group(group_elem)
        root_group._is_root = True

        return root_group, settings

    @classmethod
    def _parse_meta(cls, meta_elem: Element | None) -> DatabaseSettings:
        """Parse Meta element into DatabaseSettings."""
        settings = DatabaseSettings()

        if meta_elem is None:
            return settings

        def get_text(tag: str) -> str | None:
            elem = meta_elem.find(tag)
            return elem.text if elem is not None else None

        if name := get_text("DatabaseName"):
            settings.database_name = name
        if desc := get_text("DatabaseDescription"):
            settings.database_description = desc
        if username := get_text("DefaultUserName"):
            settings.default_username = username
        if gen := get_text("Generator"):
            settings.generator = gen

        return settings

    @classmethod
    def _parse_uuid(cls, elem: Element | None) -> uuid_module.UUID | None:
        """Decode a base64 UUID element, or None if absent."""
        if elem is None or not elem.text:
            return None
        try:
            return uuid_module.UUID(bytes=base64.b64decode(elem.text, validate=True))
        except (binascii.Error, ValueError) as e:
            raise InvalidXmlError("Invalid KeePass XML: malformed UUID") from e

    @classmethod
    def _parse_group(cls, elem: Element) -> Group:
        """Parse a Group element into a Group model."""
        group = Group()

        if (group_uuid := cls._parse_uuid(elem.find("UUID"))) is not None:
            group.uuid = group_uuid

        name_elem = elem.find("Name")
        if name_elem is not None:
            group.name = name_elem.text

        notes_elem = elem.find("Notes")
        if notes_elem is not None:
            group.notes = notes_elem.text

        # "null" (or absent) means inherit from the parent group
        searching_elem = elem.find("EnableSearching")
        if searching_elem is not None and searching_elem.text:
            value = searching_elem.text.strip().lower()
            if value in ("true", "false"):
                group.enable_searching = value == "true"

        for entry_elem in elem.findall("Entry"):
            group.add_entry(cls._parse_entry(entry_elem))

        for subgroup_elem in elem.findall("Group"):
            group.add_subgroup(cls._parse_group(subgroup_elem))

        return group

    @classmethod
    def _parse_entry(cls, elem: Element) -> Entry:
        """Parse an Entry element into an Entry model.

        History is not read: references always resolve against current values.
        """
        entry = Entry()

        if (entry_uuid := cls._parse_uuid(elem.find("UUID"))) is not None:
            entry.uuid = entry_uuid

        for string_elem in elem.findall("String"):
            key_elem = string_elem.find("Key")
            value_elem = string_elem.find("Value")
            if key_elem is not None and key_elem.text:
                key = key_elem.text
                value = value_elem.text if value_elem is not None else None
                # Exports mark protected values with ProtectInMemory instead of Protected
                protected = value_elem is not None and (
                    value_elem.get("Protected") == "True"
                    or value_elem.get("ProtectInMemory") == "True"
                )
                entry.strings[key] = StringField(key=key, value=value, protected=protected)

        return entry

    def __str__(self) -> str:
        entry_count = sum(1 for _ in self.iter_entries())
        group_count = sum(1 for _ in self.iter_groups())
        name = self._settings.database_name
        return f'Database: "{name}" ({entry_count} entries, {group_count} groups)'
