"""Entry model for credential records."""

from __future__ import annotations

import uuid as uuid_module
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .group import Group


# Fields that have special handling and shouldn't be treated as custom properties
RESERVED_KEYS = frozenset({
    "Title",
    "UserName",
    "Password",
    "URL",
    "Notes",
})


@dataclass
class StringField:
    """A string field in an entry.

    Attributes:
        key: Field name (e.g., "Title", "UserName", "Password")
        value: Field value, which may contain {REF:...} tokens
        protected: Whether the field is marked as protected
    """

    key: str
    value: Optional[str] = None
    protected: bool = False


@dataclass
class Entry:
    """A credential entry.

    Entries store credentials: standard fields (title, username, password,
    url, notes) plus custom string fields. Any field value may embed field
    references to other entries; the stored value is always the raw,
    unresolved text.

    Attributes:
        uuid: Unique identifier for the entry
        strings: Dictionary of string fields (key -> StringField)
    """

    uuid: uuid_module.UUID = field(default_factory=uuid_module.uuid4)
    strings: dict[str, StringField] = field(default_factory=dict)

    # Runtime reference to parent group (not serialized)
    _parent: Optional[Group] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Initialize default string fields if not present."""
        for key in ("Title", "UserName", "Password", "URL", "Notes"):
            if key not in self.strings:
                protected = key == "Password"
                self.strings[key] = StringField(key=key, protected=protected)

    # --- Standard field properties ---

    @property
    def title(self) -> Optional[str]:
        """Get or set entry title."""
        return self.strings.get("Title", StringField("Title")).value

    @title.setter
    def title(self, value: Optional[str]) -> None:
        if "Title" not in self.strings:
            self.strings["Title"] = StringField("Title")
        self.strings["Title"].value = value

    @property
    def username(self) -> Optional[str]:
        """Get or set entry username."""
        return self.strings.get("UserName", StringField("UserName")).value

    @username.setter
    def username(self, value: Optional[str]) -> None:
        if "UserName" not in self.strings:
            self.strings["UserName"] = StringField("UserName")
        self.strings["UserName"].value = value

    @property
    def password(self) -> Optional[str]:
        """Get or set entry password."""
        return self.strings.get("Password", StringField("Password")).value

    @password.setter
    def password(self, value: Optional[str]) -> None:
        if "Password" not in self.strings:
            self.strings["Password"] = StringField("Password", protected=True)
        self.strings["Password"].value = value

    @property
    def url(self) -> Optional[str]:
        """Get or set entry URL."""
        return self.strings.get("URL", StringField("URL")).value

    @url.setter
    def url(self, value: Optional[str]) -> None:
        if "URL" not in self.strings:
            self.strings["URL"] = StringField("URL")
        self.strings["URL"].value = value

    @property
    def notes(self) -> Optional[str]:
        """Get or set entry notes."""
        return self.strings.get("Notes", StringField("Notes")).value

    @notes.setter
    def notes(self, value: Optional[str]) -> None:
        if "Notes" not in self.strings:
            self.strings["Notes"] = StringField("Notes")
        self.strings["Notes"].value = value

    @property
    def uuid_hex(self) -> str:
        """UUID as 32 upper-case hex digits, the form used inside references."""
        return self.uuid.hex.upper()

    # --- Custom properties ---

    def get_custom_property(self, key: str) -> Optional[str]:
        """Get a custom property value.

        Args:
            key: Property name (must not be a reserved key)

        Returns:
            Property value, or None if not set

        Raises:
            ValueError: If key is a reserved key
        """
        if key in RESERVED_KEYS:
            raise ValueError(f"{key} is a reserved key, use the property instead")
        field = self.strings.get(key)
        return field.value if field else None

    def set_custom_property(
        self, key: str, value: str, protected: bool = False
    ) -> None:
        """Set a custom property.

        Args:
            key: Property name (must not be a reserved key)
            value: Property value
            protected: Whether to mark as protected

        Raises:
            ValueError: If key is a reserved key
        """
        if key in RESERVED_KEYS:
            raise ValueError(f"{key} is a reserved key, use the property instead")
        self.strings[key] = StringField(key=key, value=value, protected=protected)

    @property
    def custom_properties(self) -> dict[str, Optional[str]]:
        """Get all custom properties as a dictionary."""
        return {
            k: v.value
            for k, v in self.strings.items()
            if k not in RESERVED_KEYS
        }

    # --- Convenience methods ---

    @property
    def parent(self) -> Optional[Group]:
        """Get parent group."""
        return self._parent

    @property
    def is_searchable(self) -> bool:
        """Whether the owning group chain allows this entry to be searched."""
        if self._parent is None:
            return True
        return self._parent.searching_enabled

    def __str__(self) -> str:
        return f'Entry: "{self.title}" ({self.username})'

    def __hash__(self) -> int:
        return hash(self.uuid)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Entry):
            return self.uuid == other.uuid
        return NotImplemented

    @classmethod
    def create(
        cls,
        title: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        url: Optional[str] = None,
        notes: Optional[str] = None,
        uuid: Optional[uuid_module.UUID] = None,
    ) -> Entry:
        """Create a new entry with common fields.

        Args:
            title: Entry title
            username: Username
            password: Password
            url: URL
            notes: Notes
            uuid: Fixed UUID (a random one is generated if omitted)

        Returns:
            New Entry instance
        """
        entry = cls()
        if uuid is not None:
            entry.uuid = uuid
        entry.title = title
        entry.username = username
        entry.password = password
        entry.url = url
        entry.notes = notes
        return entry
