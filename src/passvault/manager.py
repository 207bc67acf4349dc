"""Vault manager - passphrase verification and item/credential CRUD.

The manager never stores a passphrase verifier. Because key derivation is
deterministic, a passphrase is checked by decrypting the first stored
credential with the key it derives. An empty vault has nothing to check
against, so any passphrase is accepted and becomes the vault passphrase.
"""

import logging
from typing import List, Optional

from .crypto import decrypt_secret, derive_key, encrypt_secret
from .errors import (
    AmbiguousCredential,
    AuthenticationFailure,
    DuplicateCredential,
    NotFound,
)
from .generator import DEFAULT_LENGTH, generate_password
from .models import Credential, Item
from .storage import VaultStore

logger = logging.getLogger(__name__)


def resolve_credential(item: Item, username: Optional[str] = None) -> Credential:
    """Pick a credential from an item.

    Without a username, an item holding a single credential resolves to it.

    Raises:
        NotFound: If the username is not in the item
        AmbiguousCredential: If no username is given and the item has several

    """
    if username is not None:
        return item.get_credential(username)
    if len(item.credentials) == 1:
        return item.credentials[0]
    raise AmbiguousCredential(
        f"'{item.name}' has {len(item.credentials)} credentials: "
        f"{', '.join(item.usernames())}"
    )


class VaultManager:
    """Orchestrates crypto and storage for every vault operation."""

    def __init__(self, store: VaultStore, password_length: int = DEFAULT_LENGTH, rng=None):
        self.store = store
        self.password_length = password_length
        self.rng = rng

    def _key_matches(self, key: bytes, items: List[Item]) -> bool:
        if not items:
            logger.debug("Vault is empty, any passphrase is accepted")
            return True

        reference = items[0].credentials[0]
        try:
            decrypt_secret(key, reference.password)
        except AuthenticationFailure:
            return False
        return True

    def check_passphrase(self, passphrase) -> bool:
        """Return True if the passphrase opens the vault.

        MalformedBlob from the reference credential propagates.
        """
        items = self.store.get_all()
        if not items:
            return True
        return self._key_matches(derive_key(passphrase), items)

    def unlock(self, passphrase) -> bytes:
        """Derive the vault key, verifying the passphrase first.

        Raises:
            AuthenticationFailure: If the passphrase does not open the vault

        """
        items = self.store.get_all()
        key = derive_key(passphrase)
        if not self._key_matches(key, items):
            logger.warning("Passphrase rejected")
            raise AuthenticationFailure()
        return key

    def list_items(self) -> List[Item]:
        return self.store.get_all()

    def list_names(self) -> List[str]:
        return self.store.get_all_names()

    def get_item(self, name: str) -> Item:
        return self.store.get_by_name(name)

    def get_or_create_item(self, name: str, username: str, passphrase) -> Optional[str]:
        """Store a freshly generated password for (name, username).

        Creates the item on first use of the name, otherwise appends a
        credential to it.

        Returns:
            The generated plaintext password, or None when the pair already
            existed and nothing was changed

        Raises:
            AuthenticationFailure: If the passphrase does not open the vault

        """
        if not name or not username:
            raise ValueError("Name and username must not be empty")

        try:
            item = self.store.get_by_name(name)
        except NotFound:
            item = None

        if item is not None and item.has_username(username):
            logger.info("Credential %s/%s already exists, nothing to do", name, username)
            return None

        key = self.unlock(passphrase)
        password = generate_password(self.password_length, self.rng)
        credential = Credential(username=username, password=encrypt_secret(key, password))

        if item is None:
            self.store.add_item(Item(name=name, credentials=[credential]))
            logger.info("Created item %s", name)
        else:
            self.store.add_credential(name, credential)
            logger.info("Added credential %s to item %s", username, name)

        return password

    def get_password(self, name: str, username: Optional[str], passphrase) -> str:
        """Decrypt the password of one credential."""
        item = self.store.get_by_name(name)
        credential = resolve_credential(item, username)
        key = self.unlock(passphrase)
        return decrypt_secret(key, credential.password)

    def rename_username(self, name: str, old_username: str, new_username: str) -> Item:
        """Change a credential's username, leaving its ciphertext untouched.

        Raises:
            NotFound: If the item or old username does not exist
            DuplicateCredential: If new_username is already used in the item

        """
        if not new_username:
            raise ValueError("New username must not be empty")

        item = self.store.get_by_name(name)
        credential = item.get_credential(old_username)

        if new_username == old_username:
            return item
        if item.has_username(new_username):
            raise DuplicateCredential(
                f"'{new_username}' already exists under '{name}'"
            )

        credential.username = new_username
        self.store.update_item(item)
        logger.info("Renamed %s to %s under %s", old_username, new_username, name)
        return item

    def delete_credential(self, name: str, username: Optional[str] = None) -> bool:
        """Remove a credential, and its item when it was the last one.

        Returns:
            True if the whole item was removed

        """
        item = self.store.get_by_name(name)
        credential = resolve_credential(item, username)

        if len(item.credentials) == 1:
            self.store.delete_item(item)
            logger.info("Deleted item %s", name)
            return True

        self.store.delete_credential(item, credential)
        logger.info("Deleted credential %s from item %s", credential.username, name)
        return False
