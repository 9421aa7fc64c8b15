"""
Passphrases live outside the project, keyed by target name.

Either one file per target in a directory, or a single JSON object mapping
target names to passphrases.
"""

import json
import logging
import os
import pathlib
import typing

from .config import Config, validate_target_name
from .errors import (
    PassphraseFileNotFoundError,
    PassphraseNotFoundError,
    PassphraseReadError,
)
from .utils import expand_home

log = logging.getLogger(__name__)


def passphrase_path(config: Config, name: str) -> pathlib.Path:
    """The file a target's passphrase is read from."""
    validate_target_name(name)
    if config.passphrase_file_path:
        return expand_home(config.passphrase_file_path)
    return expand_home(config.passphrase_directory) / name


def read_text(path: pathlib.Path, name: str) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except UnicodeDecodeError:
        raise PassphraseReadError(path, name, "not valid UTF-8") from None
    except OSError as error:
        raise PassphraseReadError(path, name, error.strerror or str(error)) from None


def read_passphrase_file(path: pathlib.Path, name: str) -> typing.Dict[str, str]:
    try:
        data = json.loads(read_text(path, name))
    except ValueError:
        raise PassphraseReadError(path, name, "invalid JSON") from None
    if not isinstance(data, dict):
        raise PassphraseReadError(path, name, "expected a JSON object")
    return data


def resolve_passphrase(config: Config, name: str) -> str:
    path = passphrase_path(config, name)
    log.debug(f"Reading passphrase for {name} from {path}")

    if not path.is_file():
        raise PassphraseFileNotFoundError(path, name)

    if config.passphrase_file_path:
        passphrase = read_passphrase_file(path, name).get(name)
        if not isinstance(passphrase, str):
            raise PassphraseNotFoundError(path, name)
    else:
        passphrase = read_text(path, name)

    passphrase = passphrase.strip()
    if not passphrase:
        raise PassphraseNotFoundError(path, name)
    return passphrase


def store_passphrase(config: Config, name: str, passphrase: str) -> pathlib.Path:
    """Write a target's passphrase, readable only by the current user."""
    path = passphrase_path(config, name)
    log.info(f"Writing passphrase for {name} to {path}")

    if not path.parent.exists():
        path.parent.mkdir(mode=0o700, parents=True)

    if config.passphrase_file_path:
        data = read_passphrase_file(path, name) if path.is_file() else {}
        data[name] = passphrase
        contents = json.dumps(data, indent=2) + '\n'
    else:
        contents = passphrase + '\n'

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(contents)
    os.chmod(path, 0o600)
    return path
