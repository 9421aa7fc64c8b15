"""
The configuration file and the targets it describes.

Every command is one load, an optional in-memory change, and one save. The
save only happens when the change says something actually changed.
"""

import json
import logging
import os
import pathlib
import tempfile
import typing

import attr

from .errors import (
    ConfigReadError,
    ConfigWriteError,
    InvalidTargetNameError,
    NoTargetSelectedError,
    TargetNotFoundError,
)
from .utils import CONFIG_FILE_NAME, find_root

log = logging.getLogger(__name__)

DEFAULT_ROOT_DIRECTORY = '.trick'
DEFAULT_PASSPHRASE_DIRECTORY = '~/.config/trick/passphrases'
DEFAULT_ITERATION_COUNT = 100000
BACKENDS = ('library', 'openssl')


def positive(instance, attribute, value) -> None:
    if isinstance(value, bool) or value <= 0:
        raise ValueError(f"{attribute.name} must be a positive integer, not {value!r}")


def strings(iterable_type=list):
    return attr.validators.deep_iterable(
        member_validator=attr.validators.instance_of(str),
        iterable_validator=attr.validators.instance_of(iterable_type))


def known_fields(cls, data: typing.Any) -> typing.Dict[str, typing.Any]:
    """Pick the keys of a JSON object that are attributes of an attrs class."""
    if not isinstance(data, dict):
        raise TypeError(f"expected an object for {cls.__name__}, got {type(data).__name__}")
    return {a.name: data[a.name] for a in attr.fields(cls) if a.name in data}


@attr.s
class Target:
    files: typing.List[str] = attr.ib(factory=list, validator=strings())

    @classmethod
    def from_json(cls, data: typing.Any) -> 'Target':
        return cls(**known_fields(cls, data))


@attr.s
class Encryption:
    iteration_count: int = attr.ib(
        default=DEFAULT_ITERATION_COUNT,
        validator=[attr.validators.instance_of(int), positive])
    backend: str = attr.ib(
        default='library',
        validator=attr.validators.in_(BACKENDS))

    @classmethod
    def from_json(cls, data: typing.Any) -> 'Encryption':
        return cls(**known_fields(cls, data))


@attr.s
class Config:
    targets: typing.Dict[str, Target] = attr.ib(
        factory=dict,
        validator=attr.validators.deep_mapping(
            key_validator=attr.validators.instance_of(str),
            value_validator=attr.validators.instance_of(Target),
            mapping_validator=attr.validators.instance_of(dict)))
    default_target_names: typing.List[str] = attr.ib(factory=list, validator=strings())
    root_directory: str = attr.ib(
        default=DEFAULT_ROOT_DIRECTORY,
        validator=attr.validators.instance_of(str))
    passphrase_directory: str = attr.ib(
        default=DEFAULT_PASSPHRASE_DIRECTORY,
        validator=attr.validators.instance_of(str))
    passphrase_file_path: typing.Optional[str] = attr.ib(
        default=None,
        validator=attr.validators.optional(attr.validators.instance_of(str)))
    encryption: Encryption = attr.ib(factory=Encryption)

    @classmethod
    def from_json(cls, data: typing.Any) -> 'Config':
        fields = known_fields(cls, data)
        if 'targets' in fields:
            targets = fields['targets']
            if not isinstance(targets, dict):
                raise TypeError("'targets' must be an object")
            fields['targets'] = {name: Target.from_json(t) for name, t in targets.items()}
        if 'encryption' in fields:
            fields['encryption'] = Encryption.from_json(fields['encryption'])
        return cls(**fields)

    def to_json(self) -> typing.Dict[str, typing.Any]:
        return attr.asdict(self)

    def dumps(self) -> str:
        return json.dumps(self.to_json(), indent=2) + '\n'


@attr.s
class ConfigStore:
    """
    Reads and writes the configuration file of one project.

    The root is discovered the first time it is needed unless one was given.
    """

    root: typing.Optional[pathlib.Path] = attr.ib(default=None)

    def project_root(self) -> pathlib.Path:
        if self.root is None:
            self.root = find_root()
        return self.root

    @property
    def path(self) -> pathlib.Path:
        return self.project_root() / CONFIG_FILE_NAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Config:
        path = self.path

        if not path.exists():
            log.debug(f"No configuration file at {path}, using defaults")
            return Config()

        log.debug(f"Reading configuration from {path}")
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except OSError as error:
            raise ConfigReadError(path, error.strerror or str(error)) from error
        except ValueError as error:
            raise ConfigReadError(path, f"invalid JSON ({error})") from error

        try:
            return Config.from_json(data)
        except (TypeError, ValueError) as error:
            raise ConfigReadError(path, str(error)) from error

    def save(self, config: Config) -> None:
        """Replace the configuration file in one step."""
        path = self.path
        log.debug(f"Writing configuration to {path}")

        mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
        temporary: typing.Optional[str] = None
        try:
            fd, temporary = tempfile.mkstemp(prefix=f'.{path.name}.', dir=path.parent)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(config.dumps())
            os.chmod(temporary, mode)
            os.replace(temporary, path)
        except OSError as error:
            if temporary is not None and os.path.exists(temporary):
                os.unlink(temporary)
            raise ConfigWriteError(path, error.strerror or str(error)) from error

    def update(self, mutator: typing.Callable[[Config], bool]) -> bool:
        """
        Load the configuration, apply a change, and save it if needed.

        The mutator returns True when it changed the configuration. Returns
        whether the file was written.
        """
        config = self.load()
        if not mutator(config):
            log.debug("Configuration unchanged, not writing it")
            return False
        self.save(config)
        return True


def validate_target_name(name: str) -> str:
    """Target names double as passphrase file names, so they must be plain."""
    separators = {'/', os.sep} | ({os.altsep} if os.altsep else set())
    if not name or name == '.' or '..' in name or any(s in name for s in separators):
        raise InvalidTargetNameError(name)
    return name


def get_target(config: Config, name: str) -> Target:
    try:
        return config.targets[name]
    except KeyError:
        raise TargetNotFoundError(name) from None


@attr.s(frozen=True, kw_only=True)
class AddResult:
    name: str = attr.ib()
    created: bool = attr.ib(default=False)
    added: typing.Tuple[str, ...] = attr.ib(default=(), converter=tuple)
    skipped: typing.Tuple[str, ...] = attr.ib(default=(), converter=tuple)
    made_default: bool = attr.ib(default=False)

    @property
    def dirty(self) -> bool:
        return self.created or bool(self.added)


@attr.s(frozen=True, kw_only=True)
class RemoveResult:
    name: str = attr.ib()
    removed: typing.Tuple[str, ...] = attr.ib(default=(), converter=tuple)
    missing: typing.Tuple[str, ...] = attr.ib(default=(), converter=tuple)

    @property
    def dirty(self) -> bool:
        return bool(self.removed)


def add_files(config: Config, name: str, files: typing.Iterable[str]) -> AddResult:
    """
    Add files to a target, creating it if it does not exist.

    A newly created target becomes the default when no default is set yet.
    Files the target already has are skipped.
    """
    validate_target_name(name)
    created = name not in config.targets
    target = config.targets.setdefault(name, Target())

    added: typing.List[str] = []
    skipped: typing.List[str] = []
    for file in files:
        if file in target.files:
            skipped.append(file)
        else:
            target.files.append(file)
            added.append(file)

    made_default = created and not config.default_target_names
    if made_default:
        config.default_target_names.append(name)

    log.debug(f"Target {name}: created={created} added={added} skipped={skipped}")
    return AddResult(
        name=name,
        created=created,
        added=added,
        skipped=skipped,
        made_default=made_default)


def remove_files(config: Config, name: str, files: typing.Iterable[str]) -> RemoveResult:
    target = get_target(config, name)

    removed: typing.List[str] = []
    missing: typing.List[str] = []
    for file in files:
        if file in target.files:
            target.files.remove(file)
            removed.append(file)
        else:
            missing.append(file)

    return RemoveResult(name=name, removed=removed, missing=missing)


def remove_target(config: Config, name: str) -> None:
    get_target(config, name)
    del config.targets[name]
    if name in config.default_target_names:
        config.default_target_names.remove(name)


def list_targets(config: Config) -> typing.List[typing.Tuple[str, typing.List[str]]]:
    return [(name, list(target.files)) for name, target in config.targets.items()]


def add_default(config: Config, name: str) -> bool:
    get_target(config, name)
    if name in config.default_target_names:
        return False
    config.default_target_names.append(name)
    return True


def set_defaults(config: Config, names: typing.Iterable[str]) -> bool:
    defaults: typing.List[str] = []
    for name in names:
        get_target(config, name)
        if name not in defaults:
            defaults.append(name)

    if defaults == config.default_target_names:
        return False
    config.default_target_names = defaults
    return True


def select_targets(config: Config, names: typing.Sequence[str]) -> typing.List[str]:
    """The targets named on the command line, or the default targets."""
    selected = list(names) or list(config.default_target_names)
    if not selected:
        raise NoTargetSelectedError()
    return selected
