"""Error types raised by the passvault core.

The core never prints or exits. Every failure surfaces as a subclass of
VaultError carrying a short machine-readable code, and the CLI decides how
to report it.
"""

from typing import Optional

# Error codes
ERROR_CODES = {
    "NOT_FOUND": "Entry not found",
    "OUT_OF_RANGE": "Index out of range",
    "DUPLICATE_ITEM": "Item already exists",
    "DUPLICATE_CREDENTIAL": "Credential already exists",
    "AMBIGUOUS_CREDENTIAL": "Item has several credentials, a username is required",
    "INVALID_PASSWORD": "Invalid master password",
    "MALFORMED_BLOB": "Malformed ciphertext",
    "STORAGE_ERROR": "Storage unreadable or unwritable",
    "UNSUPPORTED_STORAGE": "Unsupported storage backend",
}


class VaultError(Exception):
    """Base class for all vault errors."""

    code = "VAULT_ERROR"

    def __init__(self, message: Optional[str] = None):
        self.message = message or ERROR_CODES.get(self.code, "Unknown error")
        super().__init__(self.message)


class NotFound(VaultError):
    """A name, username or index is absent from the vault."""

    code = "NOT_FOUND"


class OutOfRange(NotFound):
    """An index lies outside the vault."""

    code = "OUT_OF_RANGE"


class DuplicateItem(VaultError):
    code = "DUPLICATE_ITEM"


class DuplicateCredential(VaultError):
    code = "DUPLICATE_CREDENTIAL"


class AmbiguousCredential(VaultError):
    code = "AMBIGUOUS_CREDENTIAL"


class AuthenticationFailure(VaultError):
    """Wrong passphrase, or ciphertext that failed authentication."""

    code = "INVALID_PASSWORD"


class MalformedBlob(VaultError):
    code = "MALFORMED_BLOB"


class IOFailure(VaultError):
    """The backing store could not be read, written or parsed."""

    code = "STORAGE_ERROR"


class UnsupportedStorage(VaultError):
    code = "UNSUPPORTED_STORAGE"
