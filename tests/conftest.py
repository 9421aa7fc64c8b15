import pathlib
import typing

import click.testing
import pytest

import trick.cli
from trick.config import Config, ConfigStore, Encryption, add_files
from trick.passphrase import store_passphrase

ROOT = pathlib.Path(__file__).parent
FILES = ROOT / 'files'

# Low enough to keep the tests fast.
ITERATION_COUNT = 1000
PASSPHRASE = 'correct horse'


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch) -> pathlib.Path:
    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.setenv('HOME', str(home))
    return home


@pytest.fixture()
def project(tmp_path, monkeypatch) -> pathlib.Path:
    root = tmp_path / 'project'
    root.mkdir()
    monkeypatch.chdir(root)
    ConfigStore(root=root).save(Config(
        passphrase_directory='~/passphrases',
        encryption=Encryption(iteration_count=ITERATION_COUNT)))
    return root


@pytest.fixture()
def store(project) -> ConfigStore:
    return ConfigStore(root=project)


@pytest.fixture()
def passphrase(store) -> str:
    store_passphrase(store.load(), 'db', PASSPHRASE)
    return PASSPHRASE


@pytest.fixture()
def run(project):
    def run_func(arguments: typing.Sequence[str], **kwargs) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        return runner.invoke(trick.cli.main, ['-p', str(project), *arguments], **kwargs)

    return run_func


@pytest.fixture()
def invoke(run):
    def invoke_func(arguments: typing.Sequence[str], **kwargs) -> typing.List[str]:
        result = run(arguments, **kwargs)
        if result.exit_code != 0:
            message = f"Command trick {' '.join(arguments)} failed: {result.output}"
            raise Exception(message) from result.exception
        return result.output.splitlines()

    return invoke_func


@pytest.fixture()
def db(project, store, passphrase) -> typing.List[pathlib.Path]:
    """A target 'db' with two plaintext files and a passphrase."""
    files = [project / 'a.txt', project / 'b.txt']
    for path in files:
        path.write_text(f"contents of {path.name}\n")

    def mutator(config: Config) -> bool:
        add_files(config, 'db', ['a.txt', 'b.txt'])
        return True

    store.update(mutator)
    return files
