import contextlib
import logging
import os
import pathlib
import stat
import tempfile
import typing

import click
import git

log = logging.getLogger(__name__)


class SseException(click.ClickException):
    pass


class KeyNotFound(SseException):
    pass


class InvalidKeyFormat(SseException):
    pass


class KeyFileAlreadyExists(SseException):
    pass


class SecretsFileNotFound(SseException):
    pass


class SecretsParseError(SseException):
    pass


class EnvironmentNotFound(SseException):
    pass


class EncryptionFailed(SseException):
    pass


class DecryptionFailed(SseException):
    pass


class InvalidCiphertext(SseException):
    pass


class InvalidCiphertextEncoding(InvalidCiphertext):
    pass


def reraise(error: SseException, prefix: str) -> typing.NoReturn:
    """Raise a copy of an error of the same kind with some context prepended."""
    raise type(error)(f"{prefix}: {error.message}") from error


def atomic_write(
        path: pathlib.Path,
        data: bytes,
        mode: typing.Optional[int] = None) -> None:
    """
    Replace the contents of a file without ever leaving it half written.

    The data is written to a temporary file in the same directory which is
    renamed over the target. Keeps the mode of an existing file unless one
    is given, new files default to 0644.
    """
    if mode is None:
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o644

    fd, temp = tempfile.mkstemp(
        dir=path.parent,
        prefix=f'.{path.name}.',
        suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp, mode)
        os.replace(temp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(temp)
        raise
    log.debug(f"Wrote {len(data)} bytes to {path}")


def add_to_gitignore(gitignore: pathlib.Path, entry: str) -> bool:
    """Append an entry to an existing .gitignore, returning True if it was added."""
    if not gitignore.exists():
        return False

    text = gitignore.read_text()
    if any(line.strip() == entry for line in text.splitlines()):
        log.debug(f"{entry} is already in {gitignore}")
        return False

    with gitignore.open('a') as f:
        if text and not text.endswith('\n'):
            f.write('\n')
        f.write(f'{entry}\n')
    return True


def ignored_by_git(path: pathlib.Path) -> typing.Optional[bool]:
    """Check if git ignores a path, or None when it isn't in a git work tree."""
    try:
        repo = git.Repo(path.parent, search_parent_directories=True)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
        return None

    if repo.bare:
        return None

    return bool(repo.ignored(path.resolve().as_posix()))
