import functools
import logging
import os.path
import pathlib
import typing

import click

from . import __doc__, __version__
from .cipher import get_cipher
from .config import (
    BACKENDS,
    Config,
    ConfigStore,
    add_default,
    add_files,
    get_target,
    list_targets,
    remove_files,
    remove_target,
    select_targets,
    set_defaults,
)
from .encrypt import decrypt_all, encrypt_all
from .errors import ConfigExistsError
from .passphrase import resolve_passphrase, store_passphrase
from .utils import relative_to_root

log = logging.getLogger(__name__)

UNKNOWN_ERROR_EXIT_CODE = 2

Result = typing.TypeVar('Result')


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


def enc(path: pathlib.Path) -> str:
    """Style a path to a encrypted file."""
    return click.style(rel(path), fg='green')


def dec(path: pathlib.Path) -> str:
    """Style a path to a decrypted file."""
    return click.style(rel(path), fg='red')


def tgt(name: str) -> str:
    """Style a target name."""
    return click.style(name, fg='cyan')


def warn(message: str) -> None:
    click.secho(message, fg='yellow', err=True)


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


class TrickGroup(click.Group):
    """Exits with status 2 on errors trick does not know how to explain."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except (click.ClickException, click.exceptions.Exit, click.Abort, EOFError):
            raise
        except Exception as error:
            log.debug("Unclassified error", exc_info=True)
            click.secho(f"Unknown error: {error}", fg='red', err=True)
            ctx.exit(UNKNOWN_ERROR_EXIT_CODE)


def change(
        store: ConfigStore,
        operation: typing.Callable[..., Result],
        *args) -> Result:
    """
    Run a registry operation as one configuration update.

    The configuration is saved if the operation's result is dirty. Operations
    that return a bool use it as the dirty flag, and ones that return nothing
    always save.
    """
    results: typing.List[Result] = []

    def mutator(config: Config) -> bool:
        result = operation(config, *args)
        results.append(result)
        if result is None:
            return True
        if isinstance(result, bool):
            return result
        return result.dirty

    store.update(mutator)
    return results[0]


@click.group(help=__doc__, cls=TrickGroup)
@click.version_option(__version__, prog_name='trick', message='%(prog)s %(version)s')
@click.option(
    '-p', '--path', 'root',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    envvar='TRICK_ROOT',
    default=None,
    help="Project root. Defaults to the nearest directory containing a "
         "trick.config.json, then the current git repository.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(ctx, debug: bool, root: typing.Optional[pathlib.Path]):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = ConfigStore(root=root.resolve() if root else None)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"trick {__version__}")


@main.command()
@click.pass_obj
def init(store: ConfigStore):
    """Create a trick.config.json with the default settings."""
    if store.root is None:
        store.root = pathlib.Path.cwd()

    if store.exists():
        raise ConfigExistsError(store.path)

    store.save(Config())
    click.echo(f"Created {rel(store.path)}")


@main.command()
@click.argument('name')
@click.argument(
    'files',
    type=PathType(),
    required=False,
    nargs=-1)
@click.pass_obj
def add(store: ConfigStore, name: str, files: typing.Sequence[pathlib.Path]):
    """
    Add a target or add files to an existing target.

    Paths are stored relative to the project root.
    """
    root = store.project_root()
    result = change(store, add_files, name, [relative_to_root(f, root) for f in files])

    if result.created:
        click.echo(f"Created target {tgt(name)}")
    for file in result.added:
        click.echo(f"Added {dec(root / file)} to {tgt(name)}")
    for file in result.skipped:
        warn(f"{file} is already in target {name}")
    if result.made_default:
        click.echo(f"Set {tgt(name)} as the default target")


@main.command()
@click.argument('name')
@click.argument(
    'files',
    type=PathType(),
    required=False,
    nargs=-1)
@click.option(
    '-t', '--target', 'whole_target',
    default=False,
    is_flag=True,
    help="Remove the target instead of files from it.")
@click.pass_obj
def remove(
        store: ConfigStore,
        name: str,
        files: typing.Sequence[pathlib.Path],
        whole_target: bool):
    """Remove files from a target, or remove the target."""
    if whole_target:
        change(store, remove_target, name)
        click.echo(f"Removed target {tgt(name)}")
        return

    root = store.project_root()
    result = change(store, remove_files, name, [relative_to_root(f, root) for f in files])

    for file in result.removed:
        click.echo(f"Removed {dec(root / file)} from {tgt(name)}")
    for file in result.missing:
        warn(f"{file} is not in target {name}")


@main.command(name='list')
@click.pass_obj
def list_command(store: ConfigStore):
    """List targets and their files. Default targets are marked with '*'."""
    config = store.load()
    for name, files in list_targets(config):
        marker = ' *' if name in config.default_target_names else ''
        click.echo(f"{tgt(name)}{marker}")
        for file in files:
            click.echo(f"    {click.style(file, fg='yellow')}")


def targets_argument(f):
    return click.argument(
        'names',
        metavar='[TARGETS]...',
        required=False,
        nargs=-1)(f)


@main.command()
@targets_argument
@click.pass_obj
def encrypt(store: ConfigStore, names: typing.Sequence[str]):
    """
    Encrypt the files of targets into the store directory.

    If no targets are given, encrypts the default targets.
    """
    config = store.load()
    root = store.project_root()
    targets = [(name, get_target(config, name)) for name in select_targets(config, names)]
    cipher = get_cipher(config.encryption.backend)

    for name, target in targets:
        encrypt_all(
            target.files,
            root / config.root_directory,
            resolve_passphrase(config, name),
            config.encryption.iteration_count,
            root=root,
            cipher=cipher,
            on_file=lambda src, dest: click.echo(f"Encrypted {dec(src)} -> {enc(dest)}"))


@main.command()
@targets_argument
@click.pass_obj
def decrypt(store: ConfigStore, names: typing.Sequence[str]):
    """
    Create decrypted plaintext from the encrypted files of targets.

    If no targets are given, decrypts the default targets.
    """
    config = store.load()
    root = store.project_root()
    targets = [(name, get_target(config, name)) for name in select_targets(config, names)]
    cipher = get_cipher(config.encryption.backend)

    for name, target in targets:
        decrypt_all(
            target.files,
            root / config.root_directory,
            resolve_passphrase(config, name),
            config.encryption.iteration_count,
            root=root,
            cipher=cipher,
            on_file=lambda src, dest: click.echo(f"Decrypted {enc(dest)} -> {dec(src)}"))


@main.command(name='set-default')
@click.argument('names', metavar='TARGETS...', required=True, nargs=-1)
@click.pass_obj
def set_default(store: ConfigStore, names: typing.Sequence[str]):
    """Replace the default targets."""
    change(store, set_defaults, names)
    click.echo(f"Default targets: {', '.join(tgt(name) for name in dict.fromkeys(names))}")


@main.command(name='add-default')
@click.argument('name')
@click.pass_obj
def add_default_command(store: ConfigStore, name: str):
    """Add a target to the default targets."""
    if change(store, add_default, name):
        click.echo(f"Added {tgt(name)} to the default targets")
    else:
        warn(f"{name} is already a default target")


@main.command(name='list-defaults')
@click.pass_obj
def list_defaults(store: ConfigStore):
    """Print the default targets."""
    for name in store.load().default_target_names:
        click.echo(name)


main.add_command(list_defaults, name='get-default')


@main.command(name='config')
@click.option(
    '--iteration-count',
    type=click.IntRange(min=1),
    help="PBKDF2 iteration count.")
@click.option(
    '--root-directory',
    help="Directory encrypted files are written to, relative to the project root.")
@click.option(
    '--passphrase-directory',
    help="Directory holding one passphrase file per target.")
@click.option(
    '--passphrase-file', 'passphrase_file_path',
    help="JSON file mapping target names to passphrases. "
         "An empty string switches back to the passphrase directory.")
@click.option(
    '--backend',
    type=click.Choice(BACKENDS),
    help="Encrypt in-process, or by running the openssl binary.")
@click.pass_obj
def config_command(
        store: ConfigStore,
        iteration_count: typing.Optional[int],
        root_directory: typing.Optional[str],
        passphrase_directory: typing.Optional[str],
        passphrase_file_path: typing.Optional[str],
        backend: typing.Optional[str]):
    """Show the configuration, or change its settings."""
    shown: typing.List[Config] = []

    def mutator(config: Config) -> bool:
        before = config.dumps()
        if iteration_count is not None:
            config.encryption.iteration_count = iteration_count
        if backend is not None:
            config.encryption.backend = backend
        if root_directory is not None:
            config.root_directory = root_directory
        if passphrase_directory is not None:
            config.passphrase_directory = passphrase_directory
        if passphrase_file_path is not None:
            config.passphrase_file_path = passphrase_file_path or None
        shown.append(config)
        return config.dumps() != before

    store.update(mutator)
    click.echo(f"# {rel(store.path)}")
    click.echo(shown[0].dumps(), nl=False)


@main.command(name='set-passphrase')
@click.argument('name')
@click.option(
    '--passphrase',
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Read from a prompt if not given.")
@click.pass_obj
def set_passphrase(store: ConfigStore, name: str, passphrase: str):
    """Save the passphrase of a target outside the project."""
    if not passphrase.strip():
        raise click.BadParameter("Passphrase is empty", param_hint="'--passphrase'")

    path = store_passphrase(store.load(), name, passphrase.strip())
    click.echo(f"Saved the passphrase for {tgt(name)} to {path}")
