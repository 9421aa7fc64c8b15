"""
Encrypt files into the store directory and decrypt them back.

A file 'path/to/file' is stored as '<store>/path/to/file.enc'. Batches run in
order and stop at the first failure. Files handled before it stay handled.
"""

import contextlib
import logging
import os
import pathlib
import tempfile
import typing

from .cipher import Backend, CipherError, LibraryCipher
from .errors import DecryptError, EncryptError

log = logging.getLogger(__name__)

SUFFIX = '.enc'

Pair = typing.Tuple[pathlib.Path, pathlib.Path]
Callback = typing.Callable[[pathlib.Path, pathlib.Path], None]


def encrypted_path(store: pathlib.Path, file: str) -> pathlib.Path:
    return store / f'{file}{SUFFIX}'


@contextlib.contextmanager
def replacing(path: pathlib.Path) -> typing.Iterator[pathlib.Path]:
    """
    Yield a temporary path that replaces `path` when the block succeeds.

    The temporary file is removed if the block fails, leaving `path` as it was.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f'.{path.name}.', dir=path.parent)
    os.close(fd)
    temporary = pathlib.Path(name)
    try:
        yield temporary
        if path.exists():
            os.chmod(temporary, path.stat().st_mode & 0o777)
        os.replace(temporary, path)
    finally:
        if temporary.exists():
            temporary.unlink()


def encrypt_one(
        src: pathlib.Path,
        dest: pathlib.Path,
        passphrase: str,
        iteration_count: int,
        cipher: typing.Optional[Backend] = None) -> None:
    """Encrypt the plaintext `src` into `dest`."""
    if not src.is_file():
        raise EncryptError(src)

    cipher = cipher or LibraryCipher()
    try:
        with replacing(dest) as temporary:
            cipher.encrypt(src, temporary, passphrase, iteration_count)
    except (CipherError, OSError) as error:
        raise EncryptError(src, str(error)) from error


def decrypt_one(
        src: pathlib.Path,
        dest: pathlib.Path,
        passphrase: str,
        iteration_count: int,
        cipher: typing.Optional[Backend] = None) -> None:
    """Decrypt the encrypted `dest` back into the plaintext `src`."""
    if not dest.is_file():
        raise DecryptError(dest)

    cipher = cipher or LibraryCipher()
    try:
        with replacing(src) as temporary:
            cipher.decrypt(dest, temporary, passphrase, iteration_count)
    except (CipherError, OSError) as error:
        raise DecryptError(dest, str(error)) from error


def display(path: pathlib.Path, root: pathlib.Path) -> str:
    return pathlib.Path(os.path.relpath(path, root)).as_posix()


def encrypt_all(
        files: typing.Sequence[str],
        store: pathlib.Path,
        passphrase: str,
        iteration_count: int,
        root: pathlib.Path = pathlib.Path('.'),
        cipher: typing.Optional[Backend] = None,
        on_file: typing.Optional[Callback] = None) -> typing.List[Pair]:
    log.info(f"Encrypting {len(files)} files into {store}")
    done: typing.List[Pair] = []
    for file in files:
        src, dest = root / file, encrypted_path(store, file)
        encrypt_one(src, dest, passphrase, iteration_count, cipher)
        log.info(f"Encrypted {display(src, root)} -> {display(dest, root)}")
        done.append((src, dest))
        if on_file:
            on_file(src, dest)
    return done


def decrypt_all(
        files: typing.Sequence[str],
        store: pathlib.Path,
        passphrase: str,
        iteration_count: int,
        root: pathlib.Path = pathlib.Path('.'),
        cipher: typing.Optional[Backend] = None,
        on_file: typing.Optional[Callback] = None) -> typing.List[Pair]:
    log.info(f"Decrypting {len(files)} files from {store}")
    done: typing.List[Pair] = []
    for file in files:
        src, dest = root / file, encrypted_path(store, file)
        decrypt_one(src, dest, passphrase, iteration_count, cipher)
        log.info(f"Decrypted {display(dest, root)} -> {display(src, root)}")
        done.append((src, dest))
        if on_file:
            on_file(src, dest)
    return done
