import pathlib
import typing

import click.testing
import pytest

import sse.cli
from sse.keys import KeyManager, KeyPair


@pytest.fixture()
def project(tmp_path: pathlib.Path, monkeypatch) -> pathlib.Path:
    monkeypatch.chdir(tmp_path)
    for variable in ('SSE_MASTER_KEY', 'SSE_KEY_FILE', 'SSE_FILE', 'EDITOR', 'VISUAL'):
        monkeypatch.delenv(variable, raising=False)
    return tmp_path


@pytest.fixture()
def pair() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture()
def keys(project: pathlib.Path, pair: KeyPair) -> KeyManager:
    """A key manager with a key file already written for the keypair."""
    path = project / 'master.key'
    path.write_text(f"{pair.identity}\n")
    return KeyManager(path=path, environ={})


@pytest.fixture()
def run_cli(project: pathlib.Path):
    def run_func(arguments: typing.Sequence[str], **kwargs) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        return runner.invoke(sse.cli.main, ['-p', str(project), *arguments], **kwargs)

    return run_func


@pytest.fixture()
def invoke(run_cli):
    def invoke_func(arguments: typing.Sequence[str], **kwargs) -> typing.List[str]:
        result = run_cli(arguments, **kwargs)
        if result.exit_code != 0:
            message = f"Command sse {' '.join(arguments)} failed: {result.output}"
            raise Exception(message) from result.exception
        return result.output.splitlines()

    return invoke_func
