"""Key derivation and authenticated encryption for vault passwords.

Uses libsodium via pynacl: Argon2id for the key, XChaCha20-Poly1305 (IETF
AEAD) for each stored password.

The salt is a fixed constant shared by every installation. That is what lets
the same passphrase produce the same key in every session, so a passphrase
can be checked by decrypting existing data instead of comparing against a
stored verifier. It also means the salt offers no protection against
precomputation across installations.
"""

import base64
import binascii
import logging

import nacl.exceptions
import nacl.pwhash
import nacl.secret
import nacl.utils

from .errors import AuthenticationFailure, MalformedBlob

logger = logging.getLogger(__name__)

# Constants
SALT = b"This is the salt"
KEY_SIZE = 32
NONCE_SIZE = nacl.secret.Aead.NONCE_SIZE
TAG_SIZE = nacl.secret.Aead.MACBYTES
OPS_LIMIT = nacl.pwhash.argon2id.OPSLIMIT_INTERACTIVE
MEM_LIMIT = nacl.pwhash.argon2id.MEMLIMIT_INTERACTIVE


def _passphrase_bytes(passphrase):
    if isinstance(passphrase, str):
        return passphrase.encode('utf-8')
    return bytes(passphrase)


def derive_key(passphrase):
    """Derive the 256-bit vault key from a passphrase using Argon2id.

    Deterministic: the salt and cost parameters are fixed, so equal
    passphrases always give equal keys. An empty passphrase is accepted.
    """
    return nacl.pwhash.argon2id.kdf(
        KEY_SIZE,
        _passphrase_bytes(passphrase),
        SALT,
        opslimit=OPS_LIMIT,
        memlimit=MEM_LIMIT
    )


def encrypt_secret(key, plaintext):
    """Encrypt plaintext with a fresh nonce.

    Returns URL-safe base64 text of nonce || ciphertext || tag.
    """
    box = nacl.secret.Aead(key)
    nonce = nacl.utils.random(NONCE_SIZE)
    # EncryptedMessage is already nonce + ciphertext + tag
    encrypted = box.encrypt(plaintext.encode('utf-8'), nonce=nonce)
    return base64.urlsafe_b64encode(bytes(encrypted)).decode('ascii')


def decrypt_secret(key, blob):
    """Authenticate and decrypt a blob produced by encrypt_secret.

    Raises:
        MalformedBlob: blob is not base64 or too short for nonce and tag
        AuthenticationFailure: wrong key or corrupted data

    """
    try:
        raw = base64.b64decode(blob.encode('ascii'), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError, AttributeError) as e:
        raise MalformedBlob(f"Ciphertext is not valid base64: {e}") from e

    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise MalformedBlob(
            f"Ciphertext too short ({len(raw)} bytes, need at least {NONCE_SIZE + TAG_SIZE})"
        )

    box = nacl.secret.Aead(key)
    nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        plaintext = box.decrypt(ciphertext, nonce=nonce)
        return plaintext.decode('utf-8')
    except (nacl.exceptions.CryptoError, UnicodeDecodeError) as e:
        logger.debug("Ciphertext failed authentication")
        raise AuthenticationFailure() from e


def wipe(buffer):
    """Overwrite a bytearray with zeros in place."""
    if isinstance(buffer, bytearray):
        for i in range(len(buffer)):
            buffer[i] = 0
