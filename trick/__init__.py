"""
Trick keeps credential files in a repository, encrypted with a passphrase.

Files are grouped into named targets listed in trick.config.json at the
project root. Encrypted copies are written to the store directory ('.trick'
by default) as '<file>.enc' and can be committed; the plaintext files should
be ignored by git. Files are encrypted with AES-256-CBC and a PBKDF2 derived
key, in the same format as 'openssl enc -aes-256-cbc -pbkdf2'.

Create a configuration file and a target:

\b
    $ trick init
    $ trick add db secret.env certs/db.pem

Store the target's passphrase outside the repository:

\b
    $ trick set-passphrase db

Encrypt the target's files, and decrypt them on another machine:

\b
    $ trick encrypt db
    $ trick decrypt db

Without target names, encrypt and decrypt use the default targets:

\b
    $ trick add-default db
    $ trick decrypt
"""

__author__ = 'Sam Clements'
__version__ = '1.0.7'
