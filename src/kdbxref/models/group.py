"""Group model for the record tree."""

from __future__ import annotations

import uuid as uuid_module
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from .entry import Entry


class Visit(Enum):
    """Signal returned by a traversal visitor for each entry.

    CONTINUE keeps walking, STOP ends the walk early as a success,
    ABORT ends it and marks the traversal as failed.
    """

    CONTINUE = "continue"
    STOP = "stop"
    ABORT = "abort"


EntryVisitor = Callable[[Entry], Visit]


@dataclass
class Group:
    """A group (folder) in the record tree.

    Groups organize entries into a hierarchical structure. Each group can
    contain entries and subgroups. The reference engine only reads groups;
    the mutation helpers here exist to assemble a snapshot.

    Attributes:
        uuid: Unique identifier for the group
        name: Display name of the group
        notes: Optional notes/description
        enable_searching: Whether entries in this group are searchable
            (None = inherit from parent)
        entries: List of entries in this group
        subgroups: List of subgroups
    """

    uuid: uuid_module.UUID = field(default_factory=uuid_module.uuid4)
    name: str | None = None
    notes: str | None = None
    enable_searching: bool | None = None  # None = inherit from parent
    entries: list[Entry] = field(default_factory=list)
    subgroups: list[Group] = field(default_factory=list)

    # Runtime reference to parent group (not serialized)
    _parent: Group | None = field(default=None, repr=False, compare=False)
    # Flag for root group
    _is_root: bool = field(default=False, repr=False)

    @property
    def parent(self) -> Group | None:
        """Get parent group, or None if this is the root."""
        return self._parent

    @property
    def is_root_group(self) -> bool:
        """Check if this is the database root group."""
        return self._is_root

    @property
    def path(self) -> list[str]:
        """Get path from root to this group.

        Returns:
            List of group names from root (exclusive) to this group (inclusive).
            Empty list for the root group.
        """
        if self.is_root_group or self._parent is None:
            return []
        parts: list[str] = []
        current: Group | None = self
        while current is not None and not current.is_root_group:
            if current.name is not None:
                parts.insert(0, current.name)
            current = current._parent
        return parts

    @property
    def searching_enabled(self) -> bool:
        """Effective searching flag, resolving inheritance up to the root."""
        current: Group | None = self
        while current is not None:
            if current.enable_searching is not None:
                return current.enable_searching
            current = current._parent
        return True

    # --- Entry management ---

    def add_entry(self, entry: Entry) -> Entry:
        """Add an entry to this group.

        Args:
            entry: Entry to add

        Returns:
            The added entry
        """
        entry._parent = self
        self.entries.append(entry)
        return entry

    def create_entry(
        self,
        title: str | None = None,
        username: str | None = None,
        password: str | None = None,
        url: str | None = None,
        notes: str | None = None,
        uuid: uuid_module.UUID | None = None,
    ) -> Entry:
        """Create and add a new entry to this group.

        Args:
            title: Entry title
            username: Username
            password: Password
            url: URL
            notes: Notes
            uuid: Fixed UUID (random if omitted)

        Returns:
            Newly created entry
        """
        entry = Entry.create(
            title=title,
            username=username,
            password=password,
            url=url,
            notes=notes,
            uuid=uuid,
        )
        return self.add_entry(entry)

    # --- Subgroup management ---

    def add_subgroup(self, group: Group) -> Group:
        """Add a subgroup to this group.

        Args:
            group: Group to add

        Returns:
            The added group
        """
        group._parent = self
        self.subgroups.append(group)
        return group

    def create_subgroup(
        self,
        name: str,
        notes: str | None = None,
        enable_searching: bool | None = None,
    ) -> Group:
        """Create and add a new subgroup.

        Args:
            name: Group name
            notes: Optional notes
            enable_searching: Searching flag (None = inherit)

        Returns:
            Newly created group
        """
        group = Group(name=name, notes=notes, enable_searching=enable_searching)
        return self.add_subgroup(group)

    # --- Iteration and search ---

    def traverse(self, visitor: EntryVisitor) -> bool:
        """Visit every entry below this group depth-first.

        Entries of a group are visited before its subgroups, in list order.
        The walk ends as soon as the visitor returns STOP or ABORT.

        Args:
            visitor: Callable receiving each entry and returning a Visit signal

        Returns:
            False if the visitor aborted the traversal, True otherwise
        """
        return self._traverse(visitor) is not Visit.ABORT

    def _traverse(self, visitor: EntryVisitor) -> Visit:
        for entry in self.entries:
            signal = visitor(entry)
            if signal is not Visit.CONTINUE:
                return signal
        for subgroup in self.subgroups:
            signal = subgroup._traverse(visitor)
            if signal is not Visit.CONTINUE:
                return signal
        return Visit.CONTINUE

    def iter_entries(self, recursive: bool = True) -> Iterator[Entry]:
        """Iterate over entries in this group.

        Args:
            recursive: If True, include entries from all subgroups

        Yields:
            Entry objects
        """
        yield from self.entries
        if recursive:
            for subgroup in self.subgroups:
                yield from subgroup.iter_entries(recursive=True)

    def iter_groups(self, recursive: bool = True) -> Iterator[Group]:
        """Iterate over subgroups.

        Args:
            recursive: If True, include nested subgroups

        Yields:
            Group objects
        """
        for subgroup in self.subgroups:
            yield subgroup
            if recursive:
                yield from subgroup.iter_groups(recursive=True)

    def find_entry_by_uuid(
        self, uuid: uuid_module.UUID, recursive: bool = True
    ) -> Entry | None:
        """Find an entry by UUID.

        Args:
            uuid: Entry UUID to find
            recursive: Search in subgroups

        Returns:
            Entry if found, None otherwise
        """
        for entry in self.iter_entries(recursive=recursive):
            if entry.uuid == uuid:
                return entry
        return None

    def find_entries(
        self,
        title: str | None = None,
        username: str | None = None,
        url: str | None = None,
        recursive: bool = True,
    ) -> list[Entry]:
        """Find entries matching criteria.

        All criteria are combined with AND logic. None means "any value".
        Values are compared against the raw (unresolved) field text.

        Args:
            title: Match entries with this title (exact)
            username: Match entries with this username (exact)
            url: Match entries with this URL (exact)
            recursive: Search in subgroups

        Returns:
            List of matching entries
        """
        results = []
        for entry in self.iter_entries(recursive=recursive):
            if title is not None and entry.title != title:
                continue
            if username is not None and entry.username != username:
                continue
            if url is not None and entry.url != url:
                continue
            results.append(entry)
        return results

    def __str__(self) -> str:
        path_str = "/".join(self.path) if self.path else "(root)"
        return f'Group: "{path_str}"'

    def __hash__(self) -> int:
        return hash(self.uuid)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Group):
            return self.uuid == other.uuid
        return NotImplemented

    @classmethod
    def create_root(cls, name: str = "Root") -> Group:
        """Create a root group for a new database.

        Args:
            name: Name for the root group

        Returns:
            New root Group instance
        """
        group = cls(name=name)
        group._is_root = True
        return group
