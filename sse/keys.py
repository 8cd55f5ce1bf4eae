"""
Master key files.

A key file holds a single age identity, optionally preceded by comments:

    # created: 2024-01-01T12:00:00+00:00
    # public key: age1...
    AGE-SECRET-KEY-1...

The public key comment is only a convenience, the recipient is always the
one derived from the identity.
"""

import datetime
import logging
import os
import pathlib
import typing

import attr

from .age import Identity, Recipient
from .utils import (
    InvalidKeyFormat,
    KeyFileAlreadyExists,
    KeyNotFound,
    SseException,
    atomic_write,
    reraise,
)

log = logging.getLogger(__name__)

DEFAULT_KEY_FILE = 'master.key'
MASTER_KEY_ENV_VAR = 'SSE_MASTER_KEY'

IDENTITY_PREFIX = 'AGE-SECRET-KEY-'
CREATED_COMMENT = '# created: '
PUBLIC_KEY_COMMENT = '# public key: '


@attr.s(frozen=True)
class KeyPair:
    identity: Identity = attr.ib()
    recipient: Recipient = attr.ib()

    @recipient.default
    def _derive_recipient(self) -> Recipient:
        return self.identity.recipient

    @recipient.validator
    def _check_recipient(self, attribute, value):
        if value != self.identity.recipient:
            raise InvalidKeyFormat("public key does not belong to the secret key")

    @classmethod
    def generate(cls) -> 'KeyPair':
        return cls(Identity.generate())

    def dumps(self, created: datetime.datetime) -> str:
        return (
            f"{CREATED_COMMENT}{created.isoformat(timespec='seconds')}\n"
            f"{PUBLIC_KEY_COMMENT}{self.recipient}\n"
            f"{self.identity}\n")


def parse(text: str) -> KeyPair:
    """
    Parse the first identity from the text of a key file.

    Also accepts a bare 'AGE-SECRET-KEY-1...' line. Anything after the
    first identity is ignored.
    """
    comment: typing.Optional[Recipient] = None

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        if line.startswith('#'):
            if line.startswith(PUBLIC_KEY_COMMENT):
                try:
                    comment = Recipient.parse(line[len(PUBLIC_KEY_COMMENT):].strip())
                except InvalidKeyFormat:
                    log.debug("Ignoring malformed public key comment")
            continue

        if line.startswith(IDENTITY_PREFIX):
            pair = KeyPair(Identity.parse(line))
            if comment is not None and comment != pair.recipient:
                log.warning(
                    f"Public key comment {comment} does not match the secret key, "
                    f"using {pair.recipient}")
            return pair

    raise KeyNotFound("no secret key found")


@attr.s(frozen=True)
class KeyManager:
    """Finds the master key in the environment or in a key file."""

    path: pathlib.Path = attr.ib(default=pathlib.Path(DEFAULT_KEY_FILE), converter=pathlib.Path)
    environ: typing.Mapping[str, str] = attr.ib(factory=lambda: os.environ, repr=False, eq=False)
    variable: str = attr.ib(default=MASTER_KEY_ENV_VAR)

    def generate(self, force: bool = False) -> KeyPair:
        if not force and self.path.exists():
            raise KeyFileAlreadyExists(
                f"key file {self.path} already exists (use --force to overwrite)")

        pair = KeyPair.generate()
        created = datetime.datetime.now().astimezone()
        try:
            atomic_write(self.path, pair.dumps(created).encode('utf-8'), mode=0o600)
        except OSError as error:
            raise SseException(f"failed to create key file {self.path}: {error.strerror}") from error

        log.info(f"Generated key file {self.path} for {pair.recipient}")
        return pair

    def read(self) -> KeyPair:
        log.debug(f"Reading key file {self.path}")
        try:
            text = self.path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise KeyNotFound(
                f"key file {self.path} does not exist "
                f"(run 'sse init' or set ${self.variable})") from None
        except UnicodeDecodeError:
            raise InvalidKeyFormat(f"key file {self.path} is not valid UTF-8") from None
        except OSError as error:
            raise KeyNotFound(f"failed to read key file {self.path}: {error.strerror}") from error

        try:
            return parse(text)
        except SseException as error:
            reraise(error, f"key file {self.path}")

    def load(self) -> KeyPair:
        value = self.environ.get(self.variable, '')
        if value:
            log.debug(f"Using the master key from ${self.variable}")
            try:
                return parse(value)
            except SseException as error:
                reraise(error, f"failed to parse ${self.variable}")
        return self.read()

    def load_identity(self) -> Identity:
        return self.load().identity

    def load_recipient(self) -> Recipient:
        return self.load().recipient
