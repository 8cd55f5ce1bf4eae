import logging
import os
import re
import shutil
import subprocess
import typing

from .secrets import Environment
from .utils import SseException

log = logging.getLogger(__name__)

VARIABLE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def quote(value: str) -> str:
    """Single quote a value for a POSIX shell."""
    return "'" + value.replace("'", "'\"'\"'") + "'"


def check_environment(environment: Environment) -> None:
    """
    Refuse keys that are not shell variable names and values with null bytes.

    Messages name the key but never include the value.
    """
    for key, value in sorted(environment.items()):
        if not VARIABLE_NAME.match(key):
            raise SseException(f"{key!r} is not a valid environment variable name")
        if '\x00' in value:
            raise SseException(f"value of {key} contains a null byte")


def export_lines(environment: Environment) -> typing.List[str]:
    check_environment(environment)
    return [f"export {key}={quote(value)}" for key, value in sorted(environment.items())]


def find_editor(environ: typing.Mapping[str, str] = os.environ) -> typing.Optional[str]:
    """
    Pick an editor from $EDITOR, $VISUAL or VS Code.

    Returns None to let click fall back to its own default.
    """
    for variable in ('EDITOR', 'VISUAL'):
        if environ.get(variable):
            return environ[variable]
    if shutil.which('code'):
        return 'code --wait'
    return None


def exit_status(returncode: int) -> int:
    """Killed children report as 128 plus the signal number, as shells do."""
    return 128 - returncode if returncode < 0 else returncode


def run(arguments: typing.Sequence[str], environment: Environment) -> int:
    """Run a command with extra environment variables and wait for its exit status."""
    check_environment(environment)
    binary = shutil.which(arguments[0])
    if binary is None:
        raise SseException(f"command not found: {arguments[0]}")

    log.debug(f"Running {binary} with {len(environment)} additional variables")
    result = subprocess.run(
        list(arguments),
        executable=binary,
        env={**os.environ, **environment})
    return exit_status(result.returncode)
