import logging
import os.path
import pathlib
import typing

import git

from .errors import PathOutsideRootError, RootNotFoundError

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = 'trick.config.json'


def find_git_directory(
        start: typing.Optional[pathlib.Path] = None) -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(start or pathlib.Path.cwd(), search_parent_directories=True)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
        return None
    if repo.working_tree_dir is None:
        return None
    return pathlib.Path(repo.working_tree_dir).resolve()


def find_root(start: typing.Optional[pathlib.Path] = None) -> pathlib.Path:
    """
    Find the project root.

    The nearest directory holding a trick.config.json wins, then the working
    tree of the enclosing git repository.
    """
    start = (start or pathlib.Path.cwd()).resolve()

    for directory in (start, *start.parents):
        if (directory / CONFIG_FILE_NAME).is_file():
            log.debug(f"Found {CONFIG_FILE_NAME} in {directory}")
            return directory

    directory = find_git_directory(start)
    if directory is None:
        raise RootNotFoundError(start)

    log.debug(f"Using git repository {directory} as the project root")
    return directory


def expand_home(path: str) -> pathlib.Path:
    """Expand a leading '~' to the current user's home directory."""
    return pathlib.Path(os.path.expanduser(path))


def relative_to_root(path: pathlib.Path, root: pathlib.Path) -> str:
    """
    Convert a path given on the command line to the form stored in targets.

    Returns a POSIX string relative to the project root.
    """
    absolute = path if path.is_absolute() else pathlib.Path.cwd() / path
    absolute = pathlib.Path(os.path.normpath(absolute))
    root = root.resolve()

    try:
        return absolute.relative_to(root).as_posix()
    except ValueError:
        pass

    # The root may have been resolved through a symlink the path was not.
    try:
        return absolute.resolve().relative_to(root).as_posix()
    except ValueError:
        raise PathOutsideRootError(path, root) from None
