"""
Encryption to X25519 age recipients, armored by default.

The format itself is handled by pyrage, this module wraps its keys in
comparable values and maps its errors onto ours.
"""

import logging
import pathlib
import typing

import attr
import pyrage
from pyrage import x25519

from .utils import (
    DecryptionFailed,
    EncryptionFailed,
    InvalidCiphertext,
    InvalidKeyFormat,
    SseException,
    atomic_write,
)

log = logging.getLogger(__name__)

VERSION_LINE = b'age-encryption.org/v1\n'
ARMOR_BEGIN = b'-----BEGIN AGE ENCRYPTED FILE-----'


@attr.s(frozen=True)
class Recipient:
    """The public half of an X25519 keypair, written as 'age1...'."""

    key: str = attr.ib()

    @key.validator
    def _check_key(self, attribute, value):
        self._native(value)

    @staticmethod
    def _native(text: str) -> x25519.Recipient:
        if text.lower() != text:
            raise InvalidKeyFormat(f"malformed public key {text!r}: must be lower case")
        try:
            return x25519.Recipient.from_str(text)
        except pyrage.RecipientError as error:
            raise InvalidKeyFormat(f"malformed public key {text!r}: {error}") from None

    @classmethod
    def parse(cls, text: str) -> 'Recipient':
        return cls(str(cls._native(text)))

    @property
    def native(self) -> x25519.Recipient:
        return x25519.Recipient.from_str(self.key)

    def __str__(self):
        return self.key


@attr.s(frozen=True)
class Identity:
    """The private half of an X25519 keypair, written as 'AGE-SECRET-KEY-1...'."""

    key: str = attr.ib(repr=False)

    @key.validator
    def _check_key(self, attribute, value):
        self._native(value)

    @staticmethod
    def _native(text: str) -> x25519.Identity:
        # Never include the text in messages, it is a secret.
        if text.upper() != text:
            raise InvalidKeyFormat("malformed secret key: must be upper case")
        try:
            return x25519.Identity.from_str(text)
        except pyrage.IdentityError:
            raise InvalidKeyFormat("malformed secret key: not an age identity") from None

    @classmethod
    def generate(cls) -> 'Identity':
        return cls(str(x25519.Identity.generate()))

    @classmethod
    def parse(cls, text: str) -> 'Identity':
        return cls(str(cls._native(text)))

    @property
    def native(self) -> x25519.Identity:
        return x25519.Identity.from_str(self.key)

    @property
    def recipient(self) -> Recipient:
        return Recipient(str(self.native.to_public()))

    def __str__(self):
        return self.key


def encrypt(
        plaintext: bytes,
        recipients: typing.Sequence[Recipient],
        armored: bool = False) -> bytes:
    if not recipients:
        raise EncryptionFailed("no recipients given")
    try:
        return pyrage.encrypt(plaintext, [r.native for r in recipients], armored=armored)
    except pyrage.EncryptError as error:
        raise EncryptionFailed(f"encryption failed: {error}") from None


def decrypt(data: bytes, identities: typing.Sequence[Identity], armored: bool = False) -> bytes:
    """Decrypt age data, returning nothing unless the whole payload authenticates."""
    prefix = ARMOR_BEGIN if armored else VERSION_LINE
    if not data.startswith(prefix):
        raise InvalidCiphertext("not armored age data" if armored else "not age encrypted data")
    try:
        return pyrage.decrypt(data, [i.native for i in identities])
    except pyrage.DecryptError as error:
        raise DecryptionFailed(f"decryption failed: {error}") from None


@attr.s(frozen=True)
class Age:
    armour: bool = attr.ib(default=True)

    def encrypt(self, plaintext: bytes, recipient: Recipient) -> bytes:
        log.debug(f"Encrypting {len(plaintext)} bytes to {recipient}")
        return encrypt(plaintext, [recipient], armored=self.armour)

    def decrypt(self, ciphertext: bytes, identity: Identity) -> bytes:
        log.debug(f"Decrypting {len(ciphertext)} bytes for {identity.recipient}")
        return decrypt(ciphertext, [identity], armored=self.armour)

    def encrypt_file(
            self,
            encrypt: pathlib.Path,
            output: pathlib.Path,
            recipient: Recipient) -> None:
        log.debug(f"Encrypting {encrypt} to {output}")
        atomic_write(output, self.encrypt(self._read(encrypt), recipient))

    def decrypt_file(
            self,
            encrypted: pathlib.Path,
            decrypted: pathlib.Path,
            identity: Identity) -> None:
        log.debug(f"Decrypting {encrypted} to {decrypted}")
        atomic_write(decrypted, self.decrypt(self._read(encrypted), identity), mode=0o600)

    def decrypt_to_memory(self, path: pathlib.Path, identity: Identity) -> bytes:
        log.debug(f"Reading contents of {path}")
        return self.decrypt(self._read(path), identity)

    @staticmethod
    def _read(path: pathlib.Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as error:
            raise SseException(f"failed to read {path}: {error.strerror}") from error
