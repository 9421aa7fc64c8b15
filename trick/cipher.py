"""
AES-256-CBC with a PBKDF2-HMAC-SHA256 derived key, in OpenSSL's format.

Files start with b'Salted__' and an 8 byte salt. The key and IV are the 48
bytes PBKDF2 derives from the passphrase and salt. This is what
`openssl enc -aes-256-cbc -salt -pbkdf2 -iter N` writes, so both backends
can read each other's files.
"""

import logging
import os
import pathlib
import subprocess
import typing

import attr
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

log = logging.getLogger(__name__)

MAGIC = b'Salted__'
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE = 16


class CipherError(Exception):
    """The cipher rejected its input. The message is the cipher's diagnostic."""


def derive_key_iv(
        passphrase: str,
        salt: bytes,
        iteration_count: int) -> typing.Tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE + IV_SIZE,
        salt=salt,
        iterations=iteration_count)
    material = kdf.derive(passphrase.encode('utf-8'))
    return material[:KEY_SIZE], material[KEY_SIZE:]


@attr.s(frozen=True)
class LibraryCipher:
    """Encrypts in-process, so the passphrase never reaches a command line."""

    def encrypt_bytes(self, plaintext: bytes, passphrase: str, iteration_count: int) -> bytes:
        salt = os.urandom(SALT_SIZE)
        key, iv = derive_key_iv(passphrase, salt, iteration_count)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return MAGIC + salt + encryptor.update(padded) + encryptor.finalize()

    def decrypt_bytes(self, ciphertext: bytes, passphrase: str, iteration_count: int) -> bytes:
        header = len(MAGIC) + SALT_SIZE
        if len(ciphertext) < header or not ciphertext.startswith(MAGIC):
            raise CipherError("bad magic number")

        salt, body = ciphertext[len(MAGIC):header], ciphertext[header:]
        if not body or len(body) % BLOCK_SIZE:
            raise CipherError("wrong final block length")

        key, iv = derive_key_iv(passphrase, salt, iteration_count)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise CipherError("bad decrypt (wrong passphrase or corrupt file)") from None

    def encrypt(
            self,
            decrypted: pathlib.Path,
            encrypted: pathlib.Path,
            passphrase: str,
            iteration_count: int) -> None:
        log.debug(f"Encrypting {decrypted} to {encrypted}")
        plaintext = decrypted.read_bytes()
        encrypted.write_bytes(self.encrypt_bytes(plaintext, passphrase, iteration_count))

    def decrypt(
            self,
            encrypted: pathlib.Path,
            decrypted: pathlib.Path,
            passphrase: str,
            iteration_count: int) -> None:
        log.debug(f"Decrypting {encrypted} to {decrypted}")
        ciphertext = encrypted.read_bytes()
        decrypted.write_bytes(self.decrypt_bytes(ciphertext, passphrase, iteration_count))


@attr.s(frozen=True)
class OpenSSL:
    """
    Runs the openssl binary.

    The passphrase is passed as a 'pass:' argument and is visible to other
    users in the process list while openssl runs.
    """

    executable: str = attr.ib(default='openssl')

    def command(
            self,
            arguments: typing.Sequence[str],
            decrypt: bool,
            iteration_count: int) -> typing.Tuple[str, ...]:
        command: typing.Tuple[str, ...] = (self.executable, 'enc')
        if decrypt:
            command = (*command, '-d')
        command = (*command, '-aes-256-cbc', '-salt', '-pbkdf2', '-iter', str(iteration_count))
        return (*command, *arguments)

    def run(
            self,
            arguments: typing.Sequence[str],
            decrypt: bool,
            iteration_count: int) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                self.command(arguments, decrypt, iteration_count),
                encoding='utf-8',
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True)
        except FileNotFoundError:
            raise CipherError(f"{self.executable} is not installed") from None
        except subprocess.CalledProcessError as error:
            for line in error.stderr.splitlines():
                log.debug(line)
            raise CipherError(
                error.stderr.strip() or
                f"{self.executable} exited with status {error.returncode}") from None

    def encrypt(
            self,
            decrypted: pathlib.Path,
            encrypted: pathlib.Path,
            passphrase: str,
            iteration_count: int) -> None:
        log.debug(f"Encrypting {decrypted} to {encrypted} with {self.executable}")
        self.run([
            '-in', str(decrypted),
            '-out', str(encrypted),
            '-pass', f'pass:{passphrase}',
        ], decrypt=False, iteration_count=iteration_count)

    def decrypt(
            self,
            encrypted: pathlib.Path,
            decrypted: pathlib.Path,
            passphrase: str,
            iteration_count: int) -> None:
        log.debug(f"Decrypting {encrypted} to {decrypted} with {self.executable}")
        self.run([
            '-in', str(encrypted),
            '-out', str(decrypted),
            '-pass', f'pass:{passphrase}',
        ], decrypt=True, iteration_count=iteration_count)


Backend = typing.Union[LibraryCipher, OpenSSL]


def get_cipher(backend: str) -> Backend:
    if backend == 'openssl':
        return OpenSSL()
    return LibraryCipher()
