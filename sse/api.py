import os
import pathlib
import typing

from .age import Age
from .keys import DEFAULT_KEY_FILE, KeyManager
from .secrets import DEFAULT_FILE, SecretKeeper


def open_keeper(
        directory: pathlib.Path,
        key_file: typing.Union[str, pathlib.Path] = DEFAULT_KEY_FILE,
        secrets_file: typing.Union[str, pathlib.Path] = DEFAULT_FILE,
        environ: typing.Optional[typing.Mapping[str, str]] = None,
        age: Age = Age()) -> SecretKeeper:
    return SecretKeeper(
        path=directory / secrets_file,
        keys=KeyManager(
            path=directory / key_file,
            environ=os.environ if environ is None else environ),
        age=age)
