import json
import pathlib
import shutil

import click.testing
import pytest

import trick.cli
from trick.config import ConfigStore

FILES = pathlib.Path(__file__).parent / 'files'


def test_version(invoke):
    assert invoke(['version']) == [f"trick {trick.__version__}"]


def test_version_option(run):
    result = run(['--version'])
    assert result.exit_code == 0
    assert result.output.splitlines() == [f"trick {trick.__version__}"]


def test_init(tmp_path, monkeypatch):
    directory = tmp_path / 'new'
    directory.mkdir()
    monkeypatch.chdir(directory)
    runner = click.testing.CliRunner()

    result = runner.invoke(trick.cli.main, ['init'])
    assert result.exit_code == 0
    assert result.output.splitlines() == ['Created trick.config.json']
    assert ConfigStore(root=directory).load().targets == {}

    result = runner.invoke(trick.cli.main, ['init'])
    assert result.exit_code == 1
    assert "Configuration file already exists" in result.output


def test_root_is_discovered(project, db, monkeypatch):
    subdirectory = project / 'sub'
    subdirectory.mkdir()
    monkeypatch.chdir(subdirectory)
    result = click.testing.CliRunner().invoke(trick.cli.main, ['list'])
    assert result.exit_code == 0
    assert result.output.splitlines()[0] == 'db *'


def test_root_from_environment(project, db, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('TRICK_ROOT', str(project))
    result = click.testing.CliRunner().invoke(trick.cli.main, ['list-defaults'])
    assert result.output.splitlines() == ['db']


def test_add(invoke, store):
    assert invoke(['add', 'db', 'secret.env']) == [
        'Created target db',
        'Added secret.env to db',
        'Set db as the default target',
    ]
    assert invoke(['add', 'db', 'extra.env']) == ['Added extra.env to db']
    assert store.load().targets['db'].files == ['secret.env', 'extra.env']


def test_add_relative_to_root(invoke, store, project, monkeypatch):
    (project / 'config').mkdir()
    monkeypatch.chdir(project / 'config')
    invoke(['add', 'db', 'app.env', '../secret.env'])
    assert store.load().targets['db'].files == ['config/app.env', 'secret.env']


def test_add_duplicate_warns(invoke, store):
    invoke(['add', 'db', 'secret.env'])
    before = store.path.read_bytes()
    assert invoke(['add', 'db', 'secret.env']) == ['secret.env is already in target db']
    assert store.path.read_bytes() == before


def test_add_outside_root(run, store):
    result = run(['add', 'db', '../outside.env'])
    assert result.exit_code == 1
    assert "is outside of the project root" in result.output
    assert store.load().targets == {}


def test_add_invalid_target_name(run, store):
    before = store.path.read_bytes()
    result = run(['add', '../escaped', 'a.txt'])
    assert result.exit_code == 1
    assert "Invalid target name: '../escaped'" in result.output
    assert store.path.read_bytes() == before


def test_remove_files(invoke, db, store):
    assert invoke(['remove', 'db', 'a.txt', 'c.txt']) == [
        'Removed a.txt from db',
        'c.txt is not in target db',
    ]
    assert store.load().targets['db'].files == ['b.txt']


def test_remove_target(invoke, db, store):
    assert invoke(['remove', '--target', 'db']) == ['Removed target db']
    config = store.load()
    assert config.targets == {}
    assert config.default_target_names == []


@pytest.mark.parametrize('arguments', [
    ['remove', 'missing', 'a.txt'],
    ['remove', '-t', 'missing'],
    ['encrypt', 'missing'],
    ['add-default', 'missing'],
], ids=' '.join)
def test_target_not_found(run, db, store, arguments):
    before = store.path.read_bytes()
    result = run(arguments)
    assert result.exit_code == 1
    assert "Error: Target not found: missing" in result.output
    assert store.path.read_bytes() == before


def test_list(invoke, db):
    invoke(['add', 'api', 'key.pem'])
    assert invoke(['list']) == [
        'db *',
        '    a.txt',
        '    b.txt',
        'api',
        '    key.pem',
    ]


def test_defaults(invoke, db, store):
    invoke(['add', 'api', 'key.pem'])
    assert invoke(['get-default']) == ['db']
    assert invoke(['add-default', 'api']) == ['Added api to the default targets']
    assert invoke(['add-default', 'api']) == ['api is already a default target']
    assert invoke(['list-defaults']) == ['db', 'api']
    assert invoke(['set-default', 'api']) == ['Default targets: api']
    assert store.load().default_target_names == ['api']


def test_encrypt(invoke, db, project):
    assert invoke(['encrypt', 'db']) == [
        'Encrypted a.txt -> .trick/a.txt.enc',
        'Encrypted b.txt -> .trick/b.txt.enc',
    ]
    assert (project / '.trick' / 'a.txt.enc').is_file()
    assert (project / '.trick' / 'b.txt.enc').is_file()


def test_encrypt_defaults(invoke, db):
    assert len(invoke(['encrypt'])) == 2


def test_encrypt_without_targets(run, db, store):
    def mutator(config):
        config.default_target_names.clear()
        return True

    store.update(mutator)
    result = run(['encrypt'])
    assert result.exit_code == 1
    assert "No target given and no default targets are set" in result.output


def test_encrypt_without_passphrase(run, db, home):
    (home / 'passphrases' / 'db').unlink()
    result = run(['encrypt', 'db'])
    assert result.exit_code == 1
    assert "Passphrase file not found" in result.output
    assert "trick set-passphrase db" in result.output


def test_encrypt_passphrase_not_utf8(run, db, home, project):
    (home / 'passphrases' / 'db').write_bytes(b'\xff\xfe\n')
    result = run(['encrypt', 'db'])
    assert result.exit_code == 1
    assert "Failed to read the passphrase file" in result.output
    assert not (project / '.trick').exists()


def test_encrypt_missing_file(run, db, project):
    (project / 'b.txt').unlink()
    result = run(['encrypt', 'db'])
    assert result.exit_code == 1
    assert result.output.splitlines()[0] == 'Encrypted a.txt -> .trick/a.txt.enc'
    assert f"Failed to encrypt source file: {project / 'b.txt'}" in result.output


def test_decrypt(invoke, db, project):
    invoke(['encrypt'])
    for path in db:
        path.unlink()

    assert invoke(['decrypt', 'db']) == [
        'Decrypted .trick/a.txt.enc -> a.txt',
        'Decrypted .trick/b.txt.enc -> b.txt',
    ]
    assert [path.read_text() for path in db] == ['contents of a.txt\n', 'contents of b.txt\n']


def test_decrypt_missing_encrypted_file(run, invoke, db, project):
    invoke(['encrypt'])
    (project / '.trick' / 'a.txt.enc').unlink()
    result = run(['decrypt'])
    assert result.exit_code == 1
    assert "a.txt.enc" in result.output
    assert (project / '.trick' / 'b.txt.enc').is_file()


@pytest.fixture()
def openssl_secret(invoke, project, passphrase) -> pathlib.Path:
    """The target 'db' holding a secret encrypted by the openssl command."""
    (project / '.trick').mkdir()
    shutil.copy(FILES / 'secret.env.enc', project / '.trick' / 'secret.env.enc')
    invoke(['add', 'db', 'secret.env'])
    return project / 'secret.env'


def test_decrypt_openssl_secret(invoke, openssl_secret):
    assert invoke(['decrypt']) == ['Decrypted .trick/secret.env.enc -> secret.env']
    assert openssl_secret.read_bytes() == (FILES / 'secret.env').read_bytes()


def test_decrypt_wrong_passphrase(run, invoke, openssl_secret):
    openssl_secret.write_text('previous plaintext\n')
    invoke(['set-passphrase', 'db', '--passphrase', 'wrong horse'])

    result = run(['decrypt'])

    assert result.exit_code == 1
    assert "Failed to decrypt encrypted file" in result.output
    assert "bad decrypt" in result.output
    assert openssl_secret.read_text() == 'previous plaintext\n'


@pytest.mark.skipif(shutil.which('openssl') is None, reason="openssl is not installed")
def test_openssl_backend(invoke, db, store):
    invoke(['config', '--backend', 'openssl'])
    invoke(['encrypt'])
    for path in db:
        path.unlink()
    invoke(['config', '--backend', 'library'])
    invoke(['decrypt'])
    assert db[1].read_text() == 'contents of b.txt\n'


def test_config(invoke, store):
    output = invoke(['config'])
    assert output[0] == '# trick.config.json'
    assert json.loads('\n'.join(output[1:]))['encryption']['iteration_count'] == 1000


def test_config_without_changes_does_not_write(invoke, store):
    before = store.path.read_bytes()
    mtime = store.path.stat().st_mtime_ns
    invoke(['config'])
    invoke(['config', '--iteration-count', '1000'])
    assert store.path.read_bytes() == before
    assert store.path.stat().st_mtime_ns == mtime


def test_config_changes(invoke, store):
    invoke([
        'config',
        '--iteration-count', '5',
        '--root-directory', 'secrets',
        '--passphrase-file', '~/passphrases.json',
        '--backend', 'openssl',
    ])
    config = store.load()
    assert config.encryption.iteration_count == 5
    assert config.encryption.backend == 'openssl'
    assert config.root_directory == 'secrets'
    assert config.passphrase_file_path == '~/passphrases.json'

    invoke(['config', '--passphrase-file', ''])
    assert store.load().passphrase_file_path is None


def test_config_rejects_invalid_iteration_count(run, store):
    result = run(['config', '--iteration-count', '0'])
    assert result.exit_code == 2
    assert store.load().encryption.iteration_count == 1000


def test_set_passphrase_prompt(invoke, home):
    output = invoke(['set-passphrase', 'api'], input='s3cret\ns3cret\n')
    assert output[-1] == f"Saved the passphrase for api to {home / 'passphrases' / 'api'}"
    assert (home / 'passphrases' / 'api').read_text() == 's3cret\n'


def test_set_passphrase_empty(run):
    result = run(['set-passphrase', 'api', '--passphrase', '  '])
    assert result.exit_code == 2


@pytest.mark.parametrize('passphrase_directory', [True, False], ids=['existing', 'missing'])
def test_set_passphrase_invalid_target_name(run, home, passphrase_directory):
    if passphrase_directory:
        (home / 'passphrases').mkdir()
    result = run(['set-passphrase', '../escaped', '--passphrase', 'hunter2'])
    assert result.exit_code == 1
    assert "Invalid target name" in result.output
    assert not (home / 'escaped').exists()
    assert (home / 'passphrases').exists() == passphrase_directory


def test_invalid_config_file(run, store):
    store.path.write_text('{not json')
    result = run(['list'])
    assert result.exit_code == 1
    assert "Failed to read the configuration file" in result.output


def test_unknown_error(run, monkeypatch):
    def explode(config):
        raise RuntimeError("boom")

    monkeypatch.setattr(trick.cli, 'list_targets', explode)
    result = run(['list'])
    assert result.exit_code == 2
    assert "Unknown error: boom" in result.output
