"""
Every failure trick knows how to explain is a TrickException.

They are click exceptions, so click prints them to stderr and exits with
status 1. Anything else is an unclassified error and exits with status 2.
"""

import enum
import pathlib
import typing

import click

PASSPHRASE_HINT = "Run 'trick set-passphrase {name}' to create it."
PERMISSION_HINT = "Make sure the file exists and you have permission to access it."


class ErrorKind(enum.Enum):
    CONFIG_READ = 'config-read'
    CONFIG_WRITE = 'config-write'
    CONFIG_EXISTS = 'config-exists'
    ROOT_NOT_FOUND = 'root-not-found'
    TARGET_NOT_FOUND = 'target-not-found'
    NO_TARGET_SELECTED = 'no-target-selected'
    PASSPHRASE_NOT_FOUND = 'passphrase-not-found'
    PASSPHRASE_READ = 'passphrase-read'
    INVALID_TARGET_NAME = 'invalid-target-name'
    PATH_OUTSIDE_ROOT = 'path-outside-root'
    ENCRYPT = 'encrypt'
    DECRYPT = 'decrypt'


class TrickException(click.ClickException):
    kind: typing.ClassVar[ErrorKind]
    hint: typing.Optional[str] = None

    def show(self, file=None) -> None:
        super().show(file)
        if self.hint:
            click.secho(self.hint, fg='yellow', err=True)


class ConfigReadError(TrickException):
    kind = ErrorKind.CONFIG_READ

    def __init__(self, path: pathlib.Path, reason: str):
        super().__init__(f"Failed to read the configuration file {path}: {reason}")
        self.path = path
        self.reason = reason


class ConfigWriteError(TrickException):
    kind = ErrorKind.CONFIG_WRITE

    def __init__(self, path: pathlib.Path, reason: str):
        super().__init__(f"Failed to write the configuration file {path}: {reason}")
        self.path = path
        self.reason = reason


class ConfigExistsError(TrickException):
    kind = ErrorKind.CONFIG_EXISTS

    def __init__(self, path: pathlib.Path):
        super().__init__(f"Configuration file already exists: {path}")
        self.path = path


class RootNotFoundError(TrickException):
    kind = ErrorKind.ROOT_NOT_FOUND
    hint = "Run 'trick init' in the project root or pass --path."

    def __init__(self, start: pathlib.Path):
        super().__init__(f"No trick.config.json or git repository found above {start}")
        self.start = start


class TargetNotFoundError(TrickException):
    kind = ErrorKind.TARGET_NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Target not found: {name}")
        self.name = name


class NoTargetSelectedError(TrickException):
    kind = ErrorKind.NO_TARGET_SELECTED
    hint = "Pass a target name or run 'trick add-default <target>'."

    def __init__(self):
        super().__init__("No target given and no default targets are set")


class PassphraseFileNotFoundError(TrickException):
    kind = ErrorKind.PASSPHRASE_NOT_FOUND

    def __init__(self, path: pathlib.Path, name: str):
        super().__init__(f"Passphrase file not found: {path}")
        self.path = path
        self.hint = PASSPHRASE_HINT.format(name=name)


class PassphraseNotFoundError(TrickException):
    kind = ErrorKind.PASSPHRASE_NOT_FOUND

    def __init__(self, path: pathlib.Path, name: str):
        super().__init__(f"Passphrase for target {name} is not found in {path}")
        self.path = path
        self.name = name
        self.hint = PASSPHRASE_HINT.format(name=name)


class PassphraseReadError(TrickException):
    kind = ErrorKind.PASSPHRASE_READ

    def __init__(self, path: pathlib.Path, name: str, reason: str):
        super().__init__(f"Failed to read the passphrase file {path}: {reason}")
        self.path = path
        self.name = name
        self.reason = reason
        self.hint = PASSPHRASE_HINT.format(name=name)


class InvalidTargetNameError(TrickException):
    kind = ErrorKind.INVALID_TARGET_NAME
    hint = "Target names are used as file names and cannot contain '/' or '..'."

    def __init__(self, name: str):
        super().__init__(f"Invalid target name: {name!r}")
        self.name = name


class PathOutsideRootError(TrickException):
    kind = ErrorKind.PATH_OUTSIDE_ROOT

    def __init__(self, path: pathlib.Path, root: pathlib.Path):
        super().__init__(f"{path} is outside of the project root {root}")
        self.path = path
        self.root = root


class CipherFailure(TrickException):
    """Base for per-file failures that keep the cipher's own diagnostic."""

    verb: typing.ClassVar[str]
    noun: typing.ClassVar[str]

    def __init__(self, path: pathlib.Path, detail: typing.Optional[str] = None):
        super().__init__(f"Failed to {self.verb} {self.noun}: {path}")
        self.path = path
        self.detail = detail
        self.hint = None if detail else PERMISSION_HINT

    def show(self, file=None) -> None:
        super().show(file)
        if self.detail:
            click.secho(self.detail.rstrip(), fg='red', err=True)


class EncryptError(CipherFailure):
    kind = ErrorKind.ENCRYPT
    verb = 'encrypt'
    noun = 'source file'


class DecryptError(CipherFailure):
    kind = ErrorKind.DECRYPT
    verb = 'decrypt'
    noun = 'encrypted file'
