"""Filesystem capability used by the state store and the settings service.

Components never touch ``pathlib``/``os`` directly; they receive an object
implementing :class:`FileSystem`. Production code uses :class:`OsFileSystem`,
tests pass an in-memory fake with error injection.

"Quiet" reads and writes are for files whose absence is a normal fallback
path (e.g. the cached settings file on first boot): they skip the debug
logging that would otherwise report every missing file.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Protocol, Union

from hostagent.logging import LoggerFactory


PathLike = Union[str, os.PathLike]

log = LoggerFactory.for_fs()


class FileSystem(Protocol):
    def read_file(self, path: PathLike, quiet: bool = False) -> bytes: ...

    def write_file(self, path: PathLike, content: bytes, quiet: bool = False) -> None: ...

    def file_exists(self, path: PathLike) -> bool: ...

    def remove_all(self, path: PathLike) -> None: ...

    def rename(self, old_path: PathLike, new_path: PathLike) -> None: ...

    def chmod(self, path: PathLike, mode: int) -> None: ...

    def chown(self, path: PathLike, owner: str | None, group: str | None) -> None: ...


class OsFileSystem:
    """:class:`FileSystem` backed by the local disk.

    All methods raise :class:`OSError` subclasses on failure.
    """

    def read_file(self, path: PathLike, quiet: bool = False) -> bytes:
        if not quiet:
            log.debug(f"Reading file {path}")
        try:
            return Path(path).read_bytes()
        except FileNotFoundError:
            if not quiet:
                log.debug(f"File {path} does not exist")
            raise

    def write_file(self, path: PathLike, content: bytes, quiet: bool = False) -> None:
        if not quiet:
            log.debug(f"Writing {len(content)} bytes to {path}")
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    def file_exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def remove_all(self, path: PathLike) -> None:
        """Remove a file or a directory tree; a missing path is not an error."""
        log.debug(f"Removing {path}")
        target = Path(path)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink(missing_ok=True)

    def rename(self, old_path: PathLike, new_path: PathLike) -> None:
        log.debug(f"Renaming {old_path} to {new_path}")
        os.replace(old_path, new_path)

    def chmod(self, path: PathLike, mode: int) -> None:
        log.debug(f"Changing mode of {path} to {oct(mode)}")
        Path(path).chmod(mode)

    def chown(self, path: PathLike, owner: str | None, group: str | None) -> None:
        log.debug(f"Changing owner of {path} to {owner}:{group}")
        try:
            shutil.chown(path, user=owner, group=group)
        except LookupError as error:
            # Unknown user/group names surface as LookupError from shutil.
            raise PermissionError(str(error)) from error
