"""
Data models for the decrypted vault: entries, folders, settings
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import CorruptVaultError, DuplicateEntryError, FolderCycleError, ValidationError


VAULT_FORMAT_VERSION = "1.0"

# Go-style zero time some writers use for "never"
_ZERO_TIME_PREFIX = "0001-01-01"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return str(uuid.uuid4())


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if str(value).startswith(_ZERO_TIME_PREFIX):
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EntryType(Enum):
    # Closed set of entry kinds; value is the on-disk tag
    LOGIN = 0
    SECURE_NOTE = 1
    CARD = 2
    IDENTITY = 3

    @property
    def label(self) -> str:
        return {
            EntryType.LOGIN: "Login",
            EntryType.SECURE_NOTE: "Secure Note",
            EntryType.CARD: "Card",
            EntryType.IDENTITY: "Identity",
        }[self]

    @classmethod
    def parse(cls, value: Any) -> "EntryType":
        """Accept the numeric tag, the member name or the display label."""
        if isinstance(value, EntryType):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        normalized = text.upper().replace(" ", "_").replace("-", "_")
        for member in cls:
            if member.name == normalized or member.label.upper() == text.upper():
                return member
        raise ValueError(f"unknown entry type: {value!r}")


class CardDetails:
    """
        Payment card payload for CARD entries
    """

    __slots__ = ('cardholder_name', 'number', 'brand', 'exp_month', 'exp_year', 'cvv')

    def __init__(self, cardholder_name="", number="", brand="", exp_month="", exp_year="", cvv=""):
        self.cardholder_name = cardholder_name
        self.number = number
        self.brand = brand
        self.exp_month = exp_month
        self.exp_year = exp_year
        self.cvv = cvv

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in self.__slots__}

    def __eq__(self, other):
        if not isinstance(other, CardDetails):
            return NotImplemented
        return self.to_dict() == other.to_dict()


class IdentityDetails:
    """
        Personal identity payload for IDENTITY entries
    """

    __slots__ = (
        'title', 'first_name', 'middle_name', 'last_name',
        'address1', 'address2', 'city', 'state', 'postal_code', 'country',
        'phone', 'email', 'ssn', 'passport_number',
    )

    def __init__(self, **fields: str):
        for name in self.__slots__:
            setattr(self, name, fields.pop(name, ""))
        if fields:
            raise TypeError(f"unknown identity fields: {', '.join(sorted(fields))}")

    @property
    def full_name(self) -> str:
        parts = (self.first_name, self.middle_name, self.last_name)
        return " ".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in self.__slots__}

    def __eq__(self, other):
        if not isinstance(other, IdentityDetails):
            return NotImplemented
        return self.to_dict() == other.to_dict()


def _details_from_dict(cls, data: Optional[Dict[str, Any]]):
    if not data:
        return None
    return cls(**{k: str(v) for k, v in data.items() if k in cls.__slots__})


class Entry:
    """
        A single credential record
    """

    __slots__ = (
        'id',
        'type',
        'name',
        'username',
        'password',
        'uri',
        'notes',
        'totp_secret',
        'custom_fields',
        'folder_id',
        'is_favorite',
        'tags',
        'card',
        'identity',
        'created_at',
        'updated_at',
        'accessed_at',
    )

    def __init__(self, name="", type=EntryType.LOGIN, id=None, username="", password="", uri="", notes="", totp_secret="", custom_fields=None, folder_id=None, is_favorite=False, tags=None, card=None, identity=None, created_at=None, updated_at=None, accessed_at=None):
        now = utcnow()
        self.id = id if id is not None else generate_id()
        self.type = EntryType.parse(type)
        self.name = name
        self.username = username
        self.password = password
        self.uri = uri
        self.notes = notes
        self.totp_secret = totp_secret
        self.custom_fields = dict(custom_fields) if custom_fields else {}
        self.folder_id = folder_id or None
        self.is_favorite = bool(is_favorite)
        self.tags = list(tags) if tags else []
        self.card = card
        self.identity = identity
        self.created_at = created_at if created_at is not None else now
        # updated_at never precedes created_at, even for a skewed payload
        self.updated_at = max(updated_at, self.created_at) if updated_at is not None else self.created_at
        self.accessed_at = accessed_at
        if self.type is EntryType.CARD and self.card is None:
            self.card = CardDetails()
        if self.type is EntryType.IDENTITY and self.identity is None:
            self.identity = IdentityDetails()

    @property
    def details(self):
        """Kind-specific payload; None for kinds without one."""
        if self.type is EntryType.CARD:
            return self.card
        if self.type is EntryType.IDENTITY:
            return self.identity
        return None

    def touch(self) -> None:
        """Mark the entry modified; updated_at never precedes created_at."""
        self.updated_at = max(utcnow(), self.created_at)

    def update_access_time(self) -> None:
        """Record a read; independent of the modification timestamp."""
        self.accessed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'type': self.type.value,
            'name': self.name,
            'username': self.username,
            'password': self.password,
            'uri': self.uri,
            'notes': self.notes,
            'totp_secret': self.totp_secret,
            'custom_fields': dict(self.custom_fields),
            'folder_id': self.folder_id,
            'is_favorite': self.is_favorite,
            'tags': list(self.tags),
            'created_at': _format_time(self.created_at),
            'updated_at': _format_time(self.updated_at),
            'accessed_at': _format_time(self.accessed_at),
        }
        if self.card is not None:
            data['card'] = self.card.to_dict()
        if self.identity is not None:
            data['identity'] = self.identity.to_dict()
        return data

    def __repr__(self):
        return f"Entry(id={self.id!r}, name={self.name!r}, type={self.type.label!r})"

    def __eq__(self, other):
        if not isinstance(other, Entry):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


def create_entry_from_dict(data: Dict[str, Any]) -> Entry:
    """
        Create an Entry from its serialized dict
    """
    return Entry(
        id=data['id'],
        type=data.get('type', EntryType.LOGIN.value),
        name=data.get('name', ''),
        username=data.get('username') or '',
        password=data.get('password') or '',
        uri=data.get('uri') or '',
        notes=data.get('notes') or '',
        totp_secret=data.get('totp_secret') or '',
        custom_fields=data.get('custom_fields') or {},
        folder_id=data.get('folder_id'),
        is_favorite=data.get('is_favorite', False),
        tags=data.get('tags') or [],
        card=_details_from_dict(CardDetails, data.get('card')),
        identity=_details_from_dict(IdentityDetails, data.get('identity')),
        created_at=_parse_time(data.get('created_at')),
        updated_at=_parse_time(data.get('updated_at')),
        accessed_at=_parse_time(data.get('accessed_at')),
    )


class Folder:
    """
        Organizational folder; parent_id None means root
    """

    __slots__ = ('id', 'name', 'parent_id', 'created_at')

    def __init__(self, name, parent_id=None, id=None, created_at=None):
        self.id = id if id is not None else generate_id()
        self.name = name
        self.parent_id = parent_id or None
        self.created_at = created_at if created_at is not None else utcnow()

    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'parent_id': self.parent_id,
            'created_at': _format_time(self.created_at),
        }

    def __repr__(self):
        return f"Folder(id={self.id!r}, name={self.name!r})"


def create_folder_from_dict(data: Dict[str, Any]) -> Folder:
    return Folder(
        id=data['id'],
        name=data.get('name', ''),
        parent_id=data.get('parent_id'),
        created_at=_parse_time(data.get('created_at')),
    )


class Settings:
    """
        Vault-scoped preferences stored inside the encrypted payload
    """

    __slots__ = (
        'auto_lock_timeout',
        'clipboard_timeout',
        'password_gen_length',
        'password_gen_upper',
        'password_gen_lower',
        'password_gen_numbers',
        'password_gen_symbols',
    )

    def __init__(self, auto_lock_timeout=5, clipboard_timeout=30, password_gen_length=16, password_gen_upper=True, password_gen_lower=True, password_gen_numbers=True, password_gen_symbols=True):
        self.auto_lock_timeout = auto_lock_timeout
        self.clipboard_timeout = clipboard_timeout
        self.password_gen_length = password_gen_length
        self.password_gen_upper = password_gen_upper
        self.password_gen_lower = password_gen_lower
        self.password_gen_numbers = password_gen_numbers
        self.password_gen_symbols = password_gen_symbols

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__slots__}


def create_settings_from_dict(data: Optional[Dict[str, Any]]) -> Settings:
    data = data or {}
    return Settings(**{k: v for k, v in data.items() if k in Settings.__slots__})


class Vault:
    """
        The decrypted vault; owns its entries and folders exclusively
    """

    __slots__ = ('version', 'entries', 'folders', 'settings', 'created_at', 'updated_at')

    def __init__(self, version=VAULT_FORMAT_VERSION, entries=None, folders=None, settings=None, created_at=None, updated_at=None):
        now = utcnow()
        self.version = version
        self.entries: List[Entry] = list(entries) if entries else []
        self.folders: List[Folder] = list(folders) if folders else []
        self.settings = settings if settings is not None else Settings()
        self.created_at = created_at if created_at is not None else now
        self.updated_at = updated_at if updated_at is not None else self.created_at

    def touch(self) -> None:
        self.updated_at = max(utcnow(), self.created_at)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def add_entry(self, entry: Entry) -> Entry:
        if not entry.name or not entry.name.strip():
            raise ValidationError("Entry name cannot be empty")
        if self.find_entry(entry.id) is not None:
            raise DuplicateEntryError(f"Entry id {entry.id!r} already exists")
        if entry.folder_id is not None and self.find_folder(entry.folder_id) is None:
            raise ValidationError(f"Folder {entry.folder_id!r} does not exist")
        self.entries.append(entry)
        self.touch()
        return entry

    def update_entry(self, entry_id: str, **fields: Any) -> Entry:
        """Apply field changes to an entry; the id and created_at cannot change."""
        entry = self.find_entry(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        for immutable in ('id', 'created_at'):
            if immutable in fields:
                raise ValidationError(f"Entry {immutable} is immutable")
        unknown = set(fields) - set(Entry.__slots__)
        if unknown:
            raise ValidationError(f"Unknown entry fields: {', '.join(sorted(unknown))}")
        if 'name' in fields and not str(fields['name']).strip():
            raise ValidationError("Entry name cannot be empty")
        folder_id = fields.get('folder_id')
        if folder_id and self.find_folder(folder_id) is None:
            raise ValidationError(f"Folder {folder_id!r} does not exist")

        for key, value in fields.items():
            if key == 'type':
                value = EntryType.parse(value)
            elif key == 'folder_id':
                value = value or None
            setattr(entry, key, value)
        if entry.type is EntryType.CARD and entry.card is None:
            entry.card = CardDetails()
        if entry.type is EntryType.IDENTITY and entry.identity is None:
            entry.identity = IdentityDetails()
        entry.touch()
        self.touch()
        return entry

    def remove_entry(self, entry_id: str) -> bool:
        for i, entry in enumerate(self.entries):
            if entry.id == entry_id:
                del self.entries[i]
                self.touch()
                return True
        return False

    def find_entry(self, entry_id: str) -> Optional[Entry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def find_entries_by_name(self, name: str) -> List[Entry]:
        wanted = name.casefold()
        return [e for e in self.entries if e.name.casefold() == wanted]

    def search(self, query: str = "", folder_id: Optional[str] = None, entry_type: Optional[EntryType] = None, favorites_only: bool = False) -> List[Entry]:
        """Case-insensitive filter over name, username, uri, notes and tags."""
        needle = query.strip().casefold()
        results = []
        for entry in self.entries:
            if folder_id is not None and entry.folder_id != folder_id:
                continue
            if entry_type is not None and entry.type is not entry_type:
                continue
            if favorites_only and not entry.is_favorite:
                continue
            if needle:
                haystack = [entry.name, entry.username, entry.uri, entry.notes, *entry.tags]
                if not any(needle in (field or "").casefold() for field in haystack):
                    continue
            results.append(entry)
        return results

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def find_folder(self, folder_id: str) -> Optional[Folder]:
        for folder in self.folders:
            if folder.id == folder_id:
                return folder
        return None

    def children(self, folder_id: Optional[str]) -> List[Folder]:
        return [f for f in self.folders if f.parent_id == folder_id]

    def _check_parent(self, folder_id: str, parent_id: Optional[str]) -> None:
        # Walk up from the proposed parent; reaching folder_id means a cycle.
        if parent_id is None:
            return
        if parent_id == folder_id:
            raise FolderCycleError("A folder cannot be its own parent")
        seen = set()
        current = self.find_folder(parent_id)
        if current is None:
            raise ValidationError(f"Parent folder {parent_id!r} does not exist")
        while current is not None:
            if current.id == folder_id:
                raise FolderCycleError("A folder cannot be moved under its own descendant")
            if current.id in seen:
                raise FolderCycleError(f"Folder tree already contains a cycle at {current.id!r}")
            seen.add(current.id)
            current = self.find_folder(current.parent_id) if current.parent_id else None

    def add_folder(self, folder: Folder) -> Folder:
        if not folder.name or not folder.name.strip():
            raise ValidationError("Folder name cannot be empty")
        if self.find_folder(folder.id) is not None:
            raise DuplicateEntryError(f"Folder id {folder.id!r} already exists")
        self._check_parent(folder.id, folder.parent_id)
        self.folders.append(folder)
        self.touch()
        return folder

    def move_folder(self, folder_id: str, parent_id: Optional[str]) -> Folder:
        folder = self.find_folder(folder_id)
        if folder is None:
            raise KeyError(folder_id)
        self._check_parent(folder_id, parent_id)
        folder.parent_id = parent_id
        self.touch()
        return folder

    def rename_folder(self, folder_id: str, name: str) -> Folder:
        folder = self.find_folder(folder_id)
        if folder is None:
            raise KeyError(folder_id)
        if not name.strip():
            raise ValidationError("Folder name cannot be empty")
        folder.name = name
        self.touch()
        return folder

    def remove_folder(self, folder_id: str) -> bool:
        """Remove a folder; its children move up one level and its entries go to root."""
        folder = self.find_folder(folder_id)
        if folder is None:
            return False
        for child in self.children(folder_id):
            child.parent_id = folder.parent_id
        for entry in self.entries:
            if entry.folder_id == folder_id:
                entry.folder_id = None
        self.folders.remove(folder)
        self.touch()
        return True

    def folder_path(self, folder_id: Optional[str]) -> str:
        """Slash-joined names from root to ``folder_id``."""
        names = []
        seen = set()
        current = self.find_folder(folder_id) if folder_id else None
        while current is not None and current.id not in seen:
            seen.add(current.id)
            names.append(current.name)
            current = self.find_folder(current.parent_id) if current.parent_id else None
        return "/".join(reversed(names))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'entries': [e.to_dict() for e in self.entries],
            'folders': [f.to_dict() for f in self.folders],
            'settings': self.settings.to_dict(),
            'created_at': _format_time(self.created_at),
            'updated_at': _format_time(self.updated_at),
        }

    def wipe(self) -> None:
        """Drop references to every secret held by this vault."""
        for entry in self.entries:
            entry.password = ""
            entry.totp_secret = ""
            entry.notes = ""
            entry.custom_fields = {}
            entry.card = None
            entry.identity = None
        self.entries = []
        self.folders = []

    def __repr__(self):
        return f"Vault(entries={len(self.entries)}, folders={len(self.folders)})"


def create_vault_from_dict(data: Dict[str, Any]) -> Vault:
    """
        Create a Vault from the decrypted payload dict
    """
    return Vault(
        version=data.get('version', VAULT_FORMAT_VERSION),
        entries=[create_entry_from_dict(e) for e in data.get('entries') or []],
        folders=[create_folder_from_dict(f) for f in data.get('folders') or []],
        settings=create_settings_from_dict(data.get('settings')),
        created_at=_parse_time(data.get('created_at')),
        updated_at=_parse_time(data.get('updated_at')),
    )


def vault_to_bytes(vault: Vault) -> bytearray:
    """
    Serialize a vault to UTF-8 JSON.

    Returned as a bytearray so the caller can zero it once it is sealed.
    """
    return bytearray(json.dumps(vault.to_dict(), ensure_ascii=False).encode("utf-8"))


def vault_from_bytes(data: bytes) -> Vault:
    """Parse a decrypted payload; malformed JSON or shape is a corrupt vault."""
    try:
        raw = json.loads(bytes(data).decode("utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("payload is not a JSON object")
        return create_vault_from_dict(raw)
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
        raise CorruptVaultError(CorruptVaultError.BAD_PAYLOAD, str(exc)) from None
