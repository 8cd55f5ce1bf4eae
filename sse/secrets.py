import base64
import binascii
import logging
import pathlib
import re
import tomllib
import typing

import attr

from .age import Age, Identity, Recipient
from .keys import KeyManager
from .utils import (
    DecryptionFailed,
    EnvironmentNotFound,
    InvalidCiphertextEncoding,
    SecretsFileNotFound,
    SecretsParseError,
    SseException,
    atomic_write,
    reraise,
)

log = logging.getLogger(__name__)

DEFAULT_FILE = 'env.toml'
DEFAULT_ENVIRONMENT = 'development'
DEFAULT_ENVIRONMENTS = ('development', 'production')

ENCRYPTED_PREFIX = 'ENC['
ENCRYPTED_SUFFIX = ']'

Environment = typing.Dict[str, str]
Environments = typing.Dict[str, Environment]

BARE_KEY = re.compile(r'^[A-Za-z0-9_-]+$')
ESCAPES = {
    '"': '\\"',
    '\\': '\\\\',
    '\b': '\\b',
    '\t': '\\t',
    '\n': '\\n',
    '\f': '\\f',
    '\r': '\\r',
}


def toml_string(value: str) -> str:
    """Quote a value as a TOML basic string."""
    chars = []
    for char in value:
        if char in ESCAPES:
            chars.append(ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7f:
            chars.append(f'\\u{ord(char):04X}')
        else:
            chars.append(char)
    return '"' + ''.join(chars) + '"'


def toml_key(key: str) -> str:
    return key if BARE_KEY.match(key) else toml_string(key)


def is_encrypted(value: str) -> bool:
    """
    Check if a value is wrapped in the 'ENC[...]' envelope.

    This is purely syntactic, a plaintext value that happens to look like
    'ENC[...]' is treated as encrypted.
    """
    return value.startswith(ENCRYPTED_PREFIX) and value.endswith(ENCRYPTED_SUFFIX)


def encrypt_value(plaintext: str, recipient: Recipient, age: Age = Age()) -> str:
    ciphertext = age.encrypt(plaintext.encode('utf-8'), recipient)
    return ENCRYPTED_PREFIX + base64.b64encode(ciphertext).decode('ascii') + ENCRYPTED_SUFFIX


def decrypt_value(value: str, identity: Identity, age: Age = Age()) -> str:
    """Decrypt an 'ENC[...]' value, plaintext values are returned unchanged."""
    if not is_encrypted(value):
        return value

    encoded = value[len(ENCRYPTED_PREFIX):-len(ENCRYPTED_SUFFIX)]
    try:
        ciphertext = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidCiphertextEncoding("failed to decode encrypted value") from None

    plaintext = age.decrypt(ciphertext, identity)
    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError:
        raise DecryptionFailed("decrypted value is not valid UTF-8") from None


def encrypt_environment(
        environment: Environment,
        recipient: Recipient,
        age: Age = Age()) -> Environment:
    """
    Encrypt every plaintext value in an environment.

    Values that are already encrypted are kept as they are, even if the
    plaintext they hold is out of date.
    """
    result: Environment = {}
    for key, value in sorted(environment.items()):
        if is_encrypted(value):
            result[key] = value
            continue
        try:
            result[key] = encrypt_value(value, recipient, age)
        except SseException as error:
            reraise(error, f"failed to encrypt {key}")
    return result


def decrypt_environment(
        environment: Environment,
        identity: Identity,
        age: Age = Age()) -> Environment:
    """Decrypt every value in an environment, failing if any one of them fails."""
    result: Environment = {}
    for key, value in sorted(environment.items()):
        try:
            result[key] = decrypt_value(value, identity, age)
        except SseException as error:
            reraise(error, f"failed to decrypt {key}")
    return result


def to_env_list(environment: Environment) -> typing.List[str]:
    return [f'{key}={value}' for key, value in sorted(environment.items())]


@attr.s
class SecretsFile:
    """Environments by name, each mapping variable names to values."""

    environments: Environments = attr.ib(factory=dict)

    @classmethod
    def loads(cls, text: str) -> 'SecretsFile':
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as error:
            raise SecretsParseError(str(error)) from None

        environments: Environments = {}
        for name, table in data.items():
            if not isinstance(table, dict):
                raise SecretsParseError(f"{name} is not an environment section")
            for key, value in table.items():
                if not isinstance(value, str):
                    raise SecretsParseError(f"{name}.{key} is not a string")
            environments[name] = dict(table)
        return cls(environments)

    @classmethod
    def load(cls, path: pathlib.Path) -> 'SecretsFile':
        log.debug(f"Reading secrets file {path}")
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise SecretsFileNotFound(
                f"secrets file {path} does not exist (run 'sse init')") from None
        except OSError as error:
            raise SecretsFileNotFound(f"failed to read secrets file {path}: {error.strerror}") from error
        except UnicodeDecodeError:
            raise SecretsParseError(f"failed to parse secrets file {path}: not UTF-8") from None

        try:
            return cls.loads(text)
        except SecretsParseError as error:
            reraise(error, f"failed to parse secrets file {path}")

    def dumps(self) -> str:
        sections = []
        for name in sorted(self.environments):
            lines = [f'[{toml_key(name)}]']
            for key, value in sorted(self.environments[name].items()):
                lines.append(f'{toml_key(key)} = {toml_string(value)}')
            sections.append(''.join(f'{line}\n' for line in lines))
        return '\n'.join(sections)

    def save(self, path: pathlib.Path) -> None:
        try:
            atomic_write(path, self.dumps().encode('utf-8'))
        except OSError as error:
            raise SseException(f"failed to write secrets file {path}: {error.strerror}") from error
        log.info(f"Saved {len(self.environments)} environments to {path}")

    def get_environment(self, name: str) -> Environment:
        try:
            return self.environments[name]
        except KeyError:
            raise EnvironmentNotFound(f"environment {name!r} not found") from None

    def names(self) -> typing.List[str]:
        return sorted(self.environments)

    def encrypt(self, recipient: Recipient, age: Age = Age()) -> 'SecretsFile':
        environments: Environments = {}
        for name in self.names():
            try:
                environments[name] = encrypt_environment(self.environments[name], recipient, age)
            except SseException as error:
                reraise(error, f"environment {name}")
        return SecretsFile(environments)

    def decrypt(self, identity: Identity, age: Age = Age()) -> 'SecretsFile':
        environments: Environments = {}
        for name in self.names():
            try:
                environments[name] = decrypt_environment(self.environments[name], identity, age)
            except SseException as error:
                reraise(error, f"environment {name}")
        return SecretsFile(environments)

    def count_plaintext(self) -> int:
        return sum(
            not is_encrypted(value)
            for environment in self.environments.values()
            for value in environment.values())


def create_default(path: pathlib.Path) -> SecretsFile:
    secrets = SecretsFile({name: {} for name in DEFAULT_ENVIRONMENTS})
    secrets.save(path)
    return secrets


@attr.s(frozen=True)
class SecretKeeper:
    """A secrets file together with the master key and age settings used to open it."""

    path: pathlib.Path = attr.ib(default=pathlib.Path(DEFAULT_FILE), converter=pathlib.Path)
    keys: KeyManager = attr.ib(factory=KeyManager)
    age: Age = attr.ib(factory=Age)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> SecretsFile:
        return SecretsFile.load(self.path)

    def save(self, secrets: SecretsFile) -> None:
        secrets.save(self.path)

    def create_default(self) -> SecretsFile:
        log.info(f"Creating {self.path}")
        return create_default(self.path)

    def decrypt_all(self) -> SecretsFile:
        identity = self.keys.load_identity()
        return self.load().decrypt(identity, self.age)

    def decrypt_environment(self, name: str) -> Environment:
        identity = self.keys.load_identity()
        environment = self.load().get_environment(name)
        try:
            return decrypt_environment(environment, identity, self.age)
        except SseException as error:
            reraise(error, f"environment {name}")

    def encrypt_all(self) -> int:
        """Encrypt any plaintext values in place, returning how many were encrypted."""
        secrets = self.load()
        count = secrets.count_plaintext()
        if count:
            self.save(secrets.encrypt(self.keys.load_recipient(), self.age))
        log.info(f"Encrypted {count} plaintext values in {self.path}")
        return count

    def apply_edits(
            self,
            stored: SecretsFile,
            decrypted: SecretsFile,
            edited: SecretsFile,
            recipient: Recipient) -> SecretsFile:
        """
        Build the encrypted form of an edited file.

        Values whose plaintext did not change keep their stored ciphertext,
        everything else is encrypted again.
        """
        environments: Environments = {}
        for name in edited.names():
            before = decrypted.environments.get(name, {})
            kept = stored.environments.get(name, {})
            environments[name] = {
                key: kept[key] if key in before and before[key] == value else value
                for key, value in edited.environments[name].items()
            }
        return SecretsFile(environments).encrypt(recipient, self.age)
