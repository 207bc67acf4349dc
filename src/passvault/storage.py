"""Vault storage backends.

VaultStore is the interface the manager works against. Two local variants
ship here: LocalFileStore keeps the whole vault in one JSON document,
SqliteStore keeps it in a SQLite file. Remote backends implement the same
interface outside this package and are plugged in through create_store.
"""

import json
import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Type

from .errors import DuplicateItem, IOFailure, NotFound, OutOfRange, UnsupportedStorage
from .models import Credential, Item

logger = logging.getLogger(__name__)


def set_permissions(path, mode=0o600):
    """Set file permissions."""
    os.chmod(path, mode)


class VaultStore(ABC):
    """Ordered collection of items, owned by exactly one store instance."""

    @abstractmethod
    def init(self) -> None:
        """Create the backing store if it does not exist yet."""

    @abstractmethod
    def get_all(self) -> List[Item]:
        """Return every item in insertion order."""

    @abstractmethod
    def add_item(self, item: Item) -> None:
        """Append a new item.

        Raises:
            DuplicateItem: If an item with the same name exists
            ValueError: If the item has no credentials

        """

    @abstractmethod
    def add_credential(self, name: str, credential: Credential) -> None:
        """Append a credential to an existing item."""

    @abstractmethod
    def update_item(self, item: Item) -> None:
        """Replace the stored item that has the same name."""

    @abstractmethod
    def delete_item(self, item: Item) -> None:
        """Remove the item with this name."""

    @abstractmethod
    def delete_credential(self, item: Item, credential: Credential) -> None:
        """Remove a credential, and the item too when it was the last one."""

    def get_by_name(self, name: str) -> Item:
        for item in self.get_all():
            if item.name == name:
                return item
        raise NotFound(f"Item not found: {name}")

    def get_by_index(self, index: int) -> Item:
        items = self.get_all()
        if index < 0 or index >= len(items):
            raise OutOfRange(f"No item at index {index} (vault holds {len(items)})")
        return items[index]

    def get_all_names(self) -> List[str]:
        return [item.name for item in self.get_all()]


def _check_item(item: Item) -> None:
    if not item.credentials:
        raise ValueError(f"Item '{item.name}' must hold at least one credential")


def _parse_item(entry, source) -> Item:
    """Build an item from its document form, enforcing the vault invariants.

    Raises:
        IOFailure: If fields are missing, mistyped, or the item is empty

    """
    if (
        not isinstance(entry, dict)
        or not isinstance(entry.get("name"), str)
        or not isinstance(entry.get("credentials"), list)
    ):
        raise IOFailure(f"Invalid vault format in {source}: malformed item {entry!r}")

    for credential in entry["credentials"]:
        if not (
            isinstance(credential, dict)
            and isinstance(credential.get("username"), str)
            and isinstance(credential.get("password"), str)
        ):
            raise IOFailure(
                f"Invalid vault format in {source}: malformed credential under '{entry['name']}'"
            )

    if not entry["credentials"]:
        raise IOFailure(
            f"Invalid vault format in {source}: item '{entry['name']}' has no credentials"
        )
    return Item.from_dict(entry)


def _remove_credential(item: Item, credential: Credential) -> None:
    for i, existing in enumerate(item.credentials):
        if existing.username == credential.username:
            del item.credentials[i]
            return
    raise NotFound(f"No credential for '{credential.username}' under '{item.name}'")


class LocalFileStore(VaultStore):
    """Whole vault as one JSON document.

    Every mutation reads the document, changes it and writes it back. Writes
    land in a temporary file that replaces the vault atomically, but there is
    no locking: two processes writing at once can lose one of the updates.
    """

    def __init__(self, path):
        self.path = Path(path)

    def init(self) -> None:
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(mode=0o700, parents=True)
            if not self.path.exists():
                self._save([])
                logger.info("Created vault at %s", self.path)
        except OSError as e:
            raise IOFailure(f"Cannot create vault at {self.path}: {e}") from e

    def _load(self) -> List[Item]:
        if not self.path.exists():
            raise IOFailure(f"Vault not found: {self.path}")

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise IOFailure(f"Cannot read vault {self.path}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise IOFailure(f"Invalid vault format in {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise IOFailure(f"Invalid vault format in {self.path}: missing items list")

        return [_parse_item(entry, self.path) for entry in data["items"]]

    def _save(self, items: List[Item]) -> None:
        document = {"items": [item.to_dict() for item in items]}

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".vault-", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            set_permissions(tmp_path)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise IOFailure(f"Cannot write vault {self.path}: {e}") from e

    def get_all(self) -> List[Item]:
        return self._load()

    def add_item(self, item: Item) -> None:
        _check_item(item)
        items = self._load()
        if any(existing.name == item.name for existing in items):
            raise DuplicateItem(f"Item already exists: {item.name}")
        items.append(item)
        self._save(items)

    def add_credential(self, name: str, credential: Credential) -> None:
        items = self._load()
        for item in items:
            if item.name == name:
                item.credentials.append(credential)
                self._save(items)
                return
        raise NotFound(f"Item not found: {name}")

    def update_item(self, item: Item) -> None:
        _check_item(item)
        items = self._load()
        for i, existing in enumerate(items):
            if existing.name == item.name:
                items[i] = item
                self._save(items)
                return
        raise NotFound(f"Item not found: {item.name}")

    def delete_item(self, item: Item) -> None:
        items = self._load()
        remaining = [existing for existing in items if existing.name != item.name]
        if len(remaining) == len(items):
            raise NotFound(f"Item not found: {item.name}")
        self._save(remaining)

    def delete_credential(self, item: Item, credential: Credential) -> None:
        items = self._load()
        for i, existing in enumerate(items):
            if existing.name == item.name:
                _remove_credential(existing, credential)
                if not existing.credentials:
                    del items[i]
                self._save(items)
                return
        raise NotFound(f"Item not found: {item.name}")


class SqliteStore(VaultStore):
    """Vault kept in a SQLite database, one row per item and per credential.

    Insertion order is the rowid order of each table.
    """

    def __init__(self, path):
        self.path = Path(path)

    @contextmanager
    def _connect(self, create=False):
        if not create and not self.path.exists():
            raise IOFailure(f"Vault not found: {self.path}")

        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            raise IOFailure(f"Cannot open vault {self.path}: {e}") from e

        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise IOFailure(f"Vault database error in {self.path}: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init(self) -> None:
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(mode=0o700, parents=True)
        except OSError as e:
            raise IOFailure(f"Cannot create vault at {self.path}: {e}") from e

        is_new = not self.path.exists()
        with self._connect(create=True) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS credentials (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    item_id INTEGER NOT NULL REFERENCES items(id) ON DELETE CASCADE,
                    username TEXT NOT NULL,
                    password TEXT NOT NULL
                )
            """)

        if is_new:
            set_permissions(self.path)
            logger.info("Created vault at %s", self.path)

    def _item_id(self, cursor, name):
        cursor.execute("SELECT id FROM items WHERE name = ?", (name,))
        row = cursor.fetchone()
        if not row:
            raise NotFound(f"Item not found: {name}")
        return row[0]

    def _insert_credentials(self, cursor, item_id, credentials):
        cursor.executemany(
            "INSERT INTO credentials (item_id, username, password) VALUES (?, ?, ?)",
            [(item_id, c.username, c.password) for c in credentials]
        )

    def get_all(self) -> List[Item]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, name FROM items ORDER BY id")
            items: Dict[int, Item] = {
                row[0]: Item(name=row[1]) for row in cursor.fetchall()
            }
            cursor.execute(
                "SELECT item_id, username, password FROM credentials ORDER BY id"
            )
            for item_id, username, password in cursor.fetchall():
                items[item_id].credentials.append(
                    Credential(username=username, password=password)
                )

        empty = [item.name for item in items.values() if not item.credentials]
        if empty:
            raise IOFailure(
                f"Invalid vault in {self.path}: items without credentials: {', '.join(empty)}"
            )

        # dicts keep insertion order, which follows items.id here
        return list(items.values())

    def add_item(self, item: Item) -> None:
        _check_item(item)
        with self._connect() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("INSERT INTO items (name) VALUES (?)", (item.name,))
            except sqlite3.IntegrityError as e:
                raise DuplicateItem(f"Item already exists: {item.name}") from e
            self._insert_credentials(cursor, cursor.lastrowid, item.credentials)

    def add_credential(self, name: str, credential: Credential) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            item_id = self._item_id(cursor, name)
            self._insert_credentials(cursor, item_id, [credential])

    def update_item(self, item: Item) -> None:
        _check_item(item)
        with self._connect() as conn:
            cursor = conn.cursor()
            item_id = self._item_id(cursor, item.name)
            cursor.execute("DELETE FROM credentials WHERE item_id = ?", (item_id,))
            self._insert_credentials(cursor, item_id, item.credentials)

    def delete_item(self, item: Item) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            item_id = self._item_id(cursor, item.name)
            cursor.execute("DELETE FROM credentials WHERE item_id = ?", (item_id,))
            cursor.execute("DELETE FROM items WHERE id = ?", (item_id,))

    def delete_credential(self, item: Item, credential: Credential) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            item_id = self._item_id(cursor, item.name)
            cursor.execute(
                "SELECT id FROM credentials WHERE item_id = ? AND username = ? ORDER BY id LIMIT 1",
                (item_id, credential.username)
            )
            row = cursor.fetchone()
            if not row:
                raise NotFound(
                    f"No credential for '{credential.username}' under '{item.name}'"
                )
            cursor.execute("DELETE FROM credentials WHERE id = ?", (row[0],))

            cursor.execute("SELECT COUNT(*) FROM credentials WHERE item_id = ?", (item_id,))
            if cursor.fetchone()[0] == 0:
                cursor.execute("DELETE FROM items WHERE id = ?", (item_id,))


STORES: Dict[str, Type[VaultStore]] = {
    "file": LocalFileStore,
    "sqlite": SqliteStore,
}


def create_store(kind, path) -> VaultStore:
    """Build the store selected by configuration."""
    try:
        store_class = STORES[kind]
    except KeyError:
        raise UnsupportedStorage(
            f"Unsupported storage '{kind}' (choose from: {', '.join(sorted(STORES))})"
        ) from None
    return store_class(path)
