"""Versioned DNS records snapshot persisted with write-temp-then-rename.

The authoritative source stamps every DNS records snapshot with a version.
:class:`SyncDNSState` keeps the last snapshot on disk and answers "is the local
copy older than version N?" without keeping the document in memory.

Save protocol:
    1. validate the state, so a document load_state would reject is never
       committed
    2. generate a unique suffix
    3. serialize the state to JSON
    4. write it to ``<path><suffix>``
    5. apply the platform's records permissions to the temp file
    6. rename the temp file onto ``<path>``

Only step 6 makes new content visible, so a crash or I/O error at any step
leaves the previously committed file intact. The store does no locking of its
own: concurrent writers must be serialized by the caller (the last rename
wins).

Example:
    >>> store = SyncDNSState(OsFileSystem(), "/var/vcap/instance/dns/records.json",
    ...                      RandomUUIDGenerator(), permissions)
    >>> if store.needs_update(remote_version):
    ...     store.save_state(fresh_state)
"""

from __future__ import annotations

import contextlib
import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from hostagent.exceptions import (
    StateDecodeError,
    StateError,
    StatePermissionError,
    StateReadError,
    StateRenameError,
    StateValidationError,
    StateWriteError,
    UUIDGenerationError,
)
from hostagent.logging import LoggerFactory
from hostagent.system.filesystem import FileSystem
from hostagent.system.uuidgen import UUIDGenerator


log = LoggerFactory.for_dns_state()


class RecordsPermissions(Protocol):
    def setup_records_json_permissions(self, path: str) -> None: ...


def _string_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(item, str) for item in value
    ):
        raise ValueError(f"{name} must be a list of strings")
    return list(value)


@dataclass
class LocalDNSState:
    """Snapshot of DNS records as delivered by the authoritative source.

    ``record_infos`` rows are positionally aligned with ``record_keys``
    (e.g. id, instance_group, az, network, deployment, ip).
    """

    version: int = 0
    records: list[tuple[str, str]] = field(default_factory=list)
    record_keys: list[str] = field(default_factory=list)
    record_infos: list[list[str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.records = [tuple(record) for record in self.records]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "records": [list(record) for record in self.records],
            "record_keys": list(self.record_keys),
            "record_infos": [list(row) for row in self.record_infos],
        }

    def validate(self) -> None:
        """Check the document schema that :meth:`from_dict` enforces on load.

        Raises:
            ValueError: If the version is not a non-negative integer, a
                record is not a name/IP pair, or a record_infos row does not
                line up with record_keys
        """
        version = self.version
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise ValueError("version must be a non-negative integer")

        for record in self.records:
            pair = _string_list(record, "record")
            if len(pair) != 2:
                raise ValueError(f"record must have 2 elements, got {len(pair)}")

        record_keys = _string_list(self.record_keys, "record_keys")

        for row in self.record_infos:
            info = _string_list(row, "record_infos row")
            if len(info) != len(record_keys):
                raise ValueError(
                    f"record_infos row has {len(info)} fields, "
                    f"expected {len(record_keys)}"
                )

    @classmethod
    def from_dict(cls, data: Any) -> LocalDNSState:
        """Build a state from decoded JSON, validating the schema.

        Missing fields default to zero/empty.

        Raises:
            ValueError: If a field has the wrong type or the document fails
                :meth:`validate`
        """
        if not isinstance(data, dict):
            raise ValueError("state must be a JSON object")

        records = data.get("records") or []
        record_infos = data.get("record_infos") or []
        if not isinstance(records, list) or not isinstance(record_infos, list):
            raise ValueError("records and record_infos must be lists")

        state = cls(
            version=data.get("version", 0),
            records=[_string_list(record, "record") for record in records],
            record_keys=_string_list(data.get("record_keys") or [], "record_keys"),
            record_infos=[_string_list(row, "record_infos row") for row in record_infos],
        )
        state.validate()
        return state


class SyncDNSState:
    def __init__(
        self,
        fs: FileSystem,
        path: str,
        uuid_generator: UUIDGenerator,
        permissions: RecordsPermissions,
    ):
        self._fs = fs
        self._path = str(path)
        self._uuid_generator = uuid_generator
        self._permissions = permissions

    @property
    def path(self) -> str:
        return self._path

    def load_state(self) -> LocalDNSState:
        """Read and decode the persisted snapshot.

        Raises:
            StateReadError: The file cannot be read
            StateDecodeError: The contents are not a valid DNS state document
        """
        try:
            contents = self._fs.read_file(self._path)
        except OSError as error:
            raise StateReadError(self._path, error) from error

        try:
            return LocalDNSState.from_dict(json.loads(contents))
        except ValueError as error:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors too
            raise StateDecodeError(self._path, error) from error

    def save_state(self, state: LocalDNSState) -> None:
        """Persist ``state`` without ever exposing a partially written file.

        Raises:
            StateValidationError: The state breaks the document schema; the
                committed file is not touched
            UUIDGenerationError: No temp file suffix could be generated
            StateWriteError: Writing the temp file failed
            StatePermissionError: Setting permissions on the temp file failed
            StateRenameError: Moving the temp file into place failed
        """
        try:
            state.validate()
        except ValueError as error:
            raise StateValidationError(self._path, error) from error

        try:
            suffix = self._uuid_generator.generate()
        except OSError as error:
            raise UUIDGenerationError(self._path, error) from error

        contents = json.dumps(state.to_dict()).encode("utf-8")
        temp_path = self._path + suffix

        try:
            self._fs.write_file(temp_path, contents)
        except OSError as error:
            raise StateWriteError(self._path, error) from error

        try:
            self._permissions.setup_records_json_permissions(temp_path)
        except OSError as error:
            self._discard(temp_path)
            raise StatePermissionError(self._path, error) from error

        try:
            self._fs.rename(temp_path, self._path)
        except OSError as error:
            self._discard(temp_path)
            raise StateRenameError(self._path, error) from error

        log.info(f"Saved DNS state version {state.version} to {self._path}")

    def needs_update(self, required_version: int) -> bool:
        """Return True unless the stored snapshot is at least ``required_version``.

        Any load failure counts as stale: if the local copy cannot be proven
        current, a refresh is triggered.
        """
        try:
            state = self.load_state()
        except StateError as error:
            log.debug(f"Assuming DNS state needs update: {error}")
            return True
        return state.version < required_version

    def _discard(self, temp_path: str) -> None:
        with contextlib.suppress(OSError):
            self._fs.remove_all(temp_path)
