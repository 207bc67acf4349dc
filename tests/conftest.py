"""Pytest fixtures and utilities for passvault tests."""

import tempfile
from pathlib import Path

import pytest
import nacl.pwhash

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from passvault import config, crypto
from passvault.manager import VaultManager
from passvault.storage import LocalFileStore, SqliteStore


PASSPHRASE = "correct horse battery staple"


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Run the real Argon2id with the cheapest parameters libsodium allows."""
    monkeypatch.setattr(crypto, "OPS_LIMIT", nacl.pwhash.argon2id.OPSLIMIT_MIN)
    monkeypatch.setattr(crypto, "MEM_LIMIT", nacl.pwhash.argon2id.MEMLIMIT_MIN)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep the user's config file and PASSVAULT_* variables out of tests."""
    for var in (
        "PASSVAULT_CONFIG",
        "PASSVAULT_PATH",
        "PASSVAULT_STORAGE",
        "PASSVAULT_PASSWORD",
        "PASSVAULT_PASSWORD_LENGTH",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(config, "DEFAULT_CONFIG", tmp_path / "no-such-config.json")


@pytest.fixture
def temp_vault_dir():
    """Create a temporary directory for vault files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture
def test_key():
    return crypto.derive_key(PASSPHRASE)


@pytest.fixture
def file_store(temp_vault_dir):
    """An initialized, empty JSON-document store."""
    store = LocalFileStore(temp_vault_dir / "storage.json")
    store.init()
    return store


@pytest.fixture(params=["file", "sqlite"])
def store(request, temp_vault_dir):
    """Each store variant, initialized and empty."""
    if request.param == "file":
        store = LocalFileStore(temp_vault_dir / "storage.json")
    else:
        store = SqliteStore(temp_vault_dir / "vault.db")
    store.init()
    return store


@pytest.fixture
def manager(store):
    return VaultManager(store)


@pytest.fixture
def populated_manager(manager, passphrase):
    """A manager whose vault holds two items and three credentials.

    The generated plaintext passwords are kept on the manager as
    ``plaintexts`` keyed by (name, username).
    """
    manager.plaintexts = {}
    for name, username in [
        ("example.com", "alice"),
        ("example.com", "bob"),
        ("mail.example.org", "carol"),
    ]:
        manager.plaintexts[(name, username)] = manager.get_or_create_item(
            name, username, passphrase
        )
    return manager
