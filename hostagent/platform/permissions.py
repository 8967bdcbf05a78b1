"""Platform-defined permissions for files the agent shares with other processes."""

from __future__ import annotations

from hostagent.config.settings import DEFAULT_RECORDS_MODE
from hostagent.logging import LoggerFactory
from hostagent.system.filesystem import FileSystem


log = LoggerFactory.for_system()


class RecordsPermissionSetter:
    """Applies the DNS records file mode (and ownership, when configured).

    The records file is read by the local DNS resolver, so it is group
    readable but never world readable.
    """

    def __init__(
        self,
        fs: FileSystem,
        mode: int = DEFAULT_RECORDS_MODE,
        owner: str | None = None,
        group: str | None = None,
    ):
        self._fs = fs
        self._mode = mode
        self._owner = owner
        self._group = group

    def setup_records_json_permissions(self, path: str) -> None:
        """Set the records mode on path, then ownership if configured.

        Raises:
            OSError: If the mode or ownership cannot be changed
        """
        self._fs.chmod(path, self._mode)
        if self._owner or self._group:
            self._fs.chown(path, self._owner, self._group)
        log.debug(f"Set records permissions on {path} to {oct(self._mode)}")
