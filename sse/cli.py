import functools
import logging
import os.path
import pathlib
import typing

import click

from . import __doc__, __version__
from .analysis import analyze
from .api import open_keeper
from .keys import DEFAULT_KEY_FILE
from .secrets import DEFAULT_ENVIRONMENT, DEFAULT_FILE, SecretKeeper, SecretsFile
from .shell import export_lines, find_editor, run
from .utils import SecretsParseError, SseException, add_to_gitignore, ignored_by_git, reraise

log = logging.getLogger(__name__)


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


@click.group(help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default='.',
    help="Project directory, defaults to the current directory.")
@click.option(
    '-k', '--key-file',
    metavar='FILE',
    envvar='SSE_KEY_FILE',
    default=DEFAULT_KEY_FILE,
    show_default=True,
    help="Key file, relative to the project directory.")
@click.option(
    '-f', '--file', 'secrets_file',
    metavar='FILE',
    envvar='SSE_FILE',
    default=DEFAULT_FILE,
    show_default=True,
    help="Secrets file, relative to the project directory.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(
        ctx,
        path: pathlib.Path,
        key_file: str,
        secrets_file: str,
        debug: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = open_keeper(path, key_file=key_file, secrets_file=secrets_file)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"sse {__version__}")


@main.command()
@click.option(
    '-f', '--force',
    default=False,
    is_flag=True,
    help="Overwrite existing files.")
@click.pass_obj
def init(sk: SecretKeeper, force: bool):
    """
    Create a master key and an empty secrets file.

    The key is added to an existing .gitignore. The secrets file is safe
    to commit as its values are encrypted.
    """
    sk.keys.generate(force=force)
    click.echo(f"Created {rel(sk.keys.path)}")

    if force or not sk.exists():
        sk.create_default()
        click.echo(f"Created {rel(sk.path)}")
    else:
        click.echo(f"Skipped {rel(sk.path)} (already exists)")

    entry = f'/{sk.keys.path.name}'
    try:
        if add_to_gitignore(sk.keys.path.parent / '.gitignore', entry):
            click.echo(f"Added {entry} to .gitignore")
    except OSError as error:
        click.secho(f"Warning: failed to update .gitignore: {error.strerror}", fg='yellow')

    if ignored_by_git(sk.keys.path) is False:
        click.secho(f"Warning: {rel(sk.keys.path)} is not ignored by git", fg='yellow')


@main.command()
@click.pass_obj
def public(sk: SecretKeeper):
    """Print the public key."""
    click.echo(str(sk.keys.load_recipient()))


@main.command()
@click.pass_obj
def private(sk: SecretKeeper):
    """Print the private key."""
    click.echo(str(sk.keys.load_identity()))


@main.command()
@click.pass_obj
def show(sk: SecretKeeper):
    """Print the secrets file with every value decrypted."""
    click.echo(sk.decrypt_all().dumps(), nl=False)


@main.command()
@click.argument('environment', default=DEFAULT_ENVIRONMENT)
@click.pass_obj
def load(sk: SecretKeeper, environment: str):
    """
    Print export statements for an environment.

    \b
        $ eval "$(sse load)"
        $ eval "$(sse load production)"
    """
    for line in export_lines(sk.decrypt_environment(environment)):
        click.echo(line)


@main.command(
    name='with',
    context_settings={'ignore_unknown_options': True, 'allow_interspersed_args': False})
@click.argument(
    'arguments',
    nargs=-1,
    required=True,
    type=click.UNPROCESSED)
@click.pass_context
def with_environment(ctx, arguments: typing.Sequence[str]):
    """
    Run a command with a decrypted environment.

    The environment defaults to development. Decrypted values are never
    written to disk.

    \b
        $ sse with -- env
        $ sse with production -- ./deploy.sh
    """
    sk: SecretKeeper = ctx.obj
    command = list(arguments)
    environment = DEFAULT_ENVIRONMENT

    if len(command) > 1 and command[0] != '--' and command[0] in sk.load().environments:
        environment = command.pop(0)
    if command and command[0] == '--':
        command.pop(0)
    if not command:
        raise click.UsageError("No command given", ctx=ctx)

    ctx.exit(run(command, sk.decrypt_environment(environment)))


@main.command()
@click.pass_obj
def edit(sk: SecretKeeper):
    """
    Edit the decrypted secrets file in your $EDITOR.

    Uses $EDITOR, $VISUAL or VS Code. Changed values are encrypted when
    the editor closes, unchanged values keep their ciphertext.
    """
    pair = sk.keys.load()
    stored = sk.load()
    decrypted = stored.decrypt(pair.identity, sk.age)

    old_text = decrypted.dumps()
    new_text = click.edit(
        text=old_text,
        editor=find_editor(),
        extension='.toml')

    if new_text is None or new_text == old_text:
        raise SseException("No changes were made to the file")

    try:
        edited = SecretsFile.loads(new_text)
    except SecretsParseError as error:
        reraise(error, "failed to parse edited file")

    sk.save(sk.apply_edits(stored, decrypted, edited, pair.recipient))
    click.echo(f"Saved {rel(sk.path)}")


@main.command()
@click.pass_obj
def encrypt(sk: SecretKeeper):
    """Encrypt plaintext values, leaving encrypted values untouched."""
    count = sk.encrypt_all()
    if count:
        click.echo(f"Encrypted {count} values in {rel(sk.path)}")
    else:
        click.echo(f"All values in {rel(sk.path)} are already encrypted")


@main.command(name='analyze')
@click.pass_obj
def analyze_command(sk: SecretKeeper):
    """
    Compare keys and values across environments.

    Lists keys that are missing from some environments, values that are
    identical in several environments, and keys that are unique everywhere.
    """
    secrets = sk.load()
    if len(secrets.environments) >= 2:
        secrets = secrets.decrypt(sk.keys.load_identity(), sk.age)

    for line in analyze(secrets.environments).lines():
        click.echo(line)
