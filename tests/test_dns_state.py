"""
Tests for hostagent.state.dns_state.

This test suite covers:
- Loading state (missing file, invalid JSON, schema violations)
- Saving state through a temp file and rename
- Each failure phase of a save leaving the committed file untouched
- Version staleness checks
"""

import json

import pytest

from hostagent.exceptions import (
    StateDecodeError,
    StatePermissionError,
    StateReadError,
    StateRenameError,
    StateValidationError,
    StateWriteError,
    UUIDGenerationError,
)
from hostagent.state.dns_state import LocalDNSState, SyncDNSState


PATH = "/blobstore-dns-records.json"


@pytest.fixture
def store(fake_fs, fake_uuid_generator, fake_permissions) -> SyncDNSState:
    fake_uuid_generator.generated_uuid = "fake-generated-uuid"
    return SyncDNSState(fake_fs, PATH, fake_uuid_generator, fake_permissions)


@pytest.fixture
def dns_state() -> LocalDNSState:
    return LocalDNSState(
        version=1234,
        records=[("rec", "ip")],
        record_keys=["id", "instance_group", "az", "network", "deployment", "ip"],
        record_infos=[["id-1", "instance-group-1", "az1", "network1", "deployment1", "ip1"]],
    )


class TestLocalDNSState:
    """Tests for LocalDNSState encoding and validation."""

    def test_defaults_are_empty(self):
        """Test a fresh state has version 0 and no records."""
        state = LocalDNSState()
        assert state.version == 0
        assert state.records == []
        assert state.record_keys == []
        assert state.record_infos == []

    def test_records_are_normalized_to_tuples(self):
        """Test list pairs are stored as tuples."""
        state = LocalDNSState(records=[["name", "1.2.3.4"]])
        assert state.records == [("name", "1.2.3.4")]

    def test_from_dict_accepts_version_only(self):
        """Test a document with only a version decodes."""
        state = LocalDNSState.from_dict({"version": 1234})
        assert state.version == 1234
        assert state.records == []

    def test_from_dict_rejects_misaligned_rows(self):
        """Test record_infos rows must match record_keys in length."""
        with pytest.raises(ValueError, match="expected 2"):
            LocalDNSState.from_dict(
                {"record_keys": ["id", "ip"], "record_infos": [["id-1"]]}
            )

    def test_from_dict_rejects_bad_record_pair(self):
        """Test records must be name/IP pairs."""
        with pytest.raises(ValueError, match="2 elements"):
            LocalDNSState.from_dict({"records": [["only-name"]]})

    def test_from_dict_rejects_negative_version(self):
        """Test version must be non-negative."""
        with pytest.raises(ValueError, match="version"):
            LocalDNSState.from_dict({"version": -1})

    def test_from_dict_rejects_boolean_version(self):
        """Test a JSON boolean is not accepted as a version."""
        with pytest.raises(ValueError, match="version"):
            LocalDNSState.from_dict({"version": True})

    def test_from_dict_rejects_non_object(self):
        """Test a JSON array is not a state document."""
        with pytest.raises(ValueError):
            LocalDNSState.from_dict([1, 2])

    def test_from_dict_rejects_non_list_records(self):
        """Test a records value that is not a list is a ValueError."""
        with pytest.raises(ValueError, match="must be lists"):
            LocalDNSState.from_dict({"records": 5})

    def test_validate_accepts_aligned_state(self, dns_state):
        """Test a well-formed state validates."""
        dns_state.validate()

    @pytest.mark.parametrize(
        "state, message",
        [
            (
                LocalDNSState(record_keys=["id", "ip"], record_infos=[["only-one"]]),
                "expected 2",
            ),
            (LocalDNSState(records=[("name", "ip", "extra")]), "2 elements"),
            (LocalDNSState(version=-1), "version"),
            (LocalDNSState(version=True), "version"),
        ],
    )
    def test_validate_rejects_what_load_rejects(self, state, message):
        """Test validate() enforces the same rules as from_dict()."""
        with pytest.raises(ValueError, match=message):
            state.validate()

        with pytest.raises(ValueError, match=message):
            LocalDNSState.from_dict(state.to_dict())


class TestLoadState:
    """Tests for SyncDNSState.load_state()."""

    def test_missing_file_raises_read_error(self, store):
        """Test an unreadable file raises StateReadError."""
        with pytest.raises(StateReadError, match="reading state file"):
            store.load_state()

    def test_invalid_json_raises_decode_error(self, store, fake_fs):
        """Test garbage contents raise StateDecodeError."""
        fake_fs.files[PATH] = b"fake-state-file"

        with pytest.raises(StateDecodeError, match="decoding state file"):
            store.load_state()

    def test_schema_violation_raises_decode_error(self, store, fake_fs):
        """Test valid JSON with the wrong shape raises StateDecodeError."""
        fake_fs.write_json(PATH, {"version": "one"})

        with pytest.raises(StateDecodeError):
            store.load_state()

    def test_loads_version(self, store, fake_fs):
        """Test the version is decoded."""
        fake_fs.files[PATH] = b'{"version": 1234}'

        state = store.load_state()

        assert state.version == 1234

    def test_read_error_keeps_path_and_cause(self, store, fake_fs):
        """Test the read error exposes the path and chains the OSError."""
        cause = PermissionError("denied")
        fake_fs.read_error = cause

        with pytest.raises(StateReadError) as exc_info:
            store.load_state()

        assert exc_info.value.path == PATH
        assert exc_info.value.__cause__ is cause


class TestSaveState:
    """Tests for SyncDNSState.save_state()."""

    def test_save_then_load_round_trip(self, store, dns_state):
        """Test a saved state loads back deep-equal."""
        store.save_state(dns_state)

        assert store.load_state() == dns_state

    def test_writes_expected_json(self, store, fake_fs, dns_state):
        """Test the persisted document uses the documented keys."""
        store.save_state(dns_state)

        assert fake_fs.read_json(PATH) == {
            "version": 1234,
            "records": [["rec", "ip"]],
            "record_keys": ["id", "instance_group", "az", "network", "deployment", "ip"],
            "record_infos": [
                ["id-1", "instance-group-1", "az1", "network1", "deployment1", "ip1"]
            ],
        }

    def test_invalid_state_is_rejected_before_writing(
        self, store, fake_fs, fake_permissions, dns_state
    ):
        """Test a state load_state would refuse never replaces the committed file."""
        store.save_state(dns_state)
        committed = fake_fs.files[PATH]
        writes_before = dict(fake_fs.files)

        misaligned = LocalDNSState(
            version=5, record_keys=["id", "ip"], record_infos=[["only-one"]]
        )
        with pytest.raises(StateValidationError) as exc_info:
            store.save_state(misaligned)

        assert str(exc_info.value) == (
            "validating DNS state: record_infos row has 1 fields, expected 2"
        )
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert fake_fs.files == writes_before
        assert fake_fs.files[PATH] == committed
        assert fake_fs.rename_old_paths == [PATH + "fake-generated-uuid"]
        assert fake_permissions.paths == [PATH + "fake-generated-uuid"]
        assert store.load_state() == dns_state
        assert store.needs_update(1234) is False

    @pytest.mark.parametrize(
        "state",
        [
            LocalDNSState(version=-3),
            LocalDNSState(version=False),
            LocalDNSState(records=[("only-name",)]),
        ],
    )
    def test_other_schema_violations_are_rejected(self, store, fake_fs, state):
        """Test bad versions and records are caught before any write."""
        with pytest.raises(StateValidationError):
            store.save_state(state)

        assert fake_fs.files == {}

    def test_renames_temp_file_onto_path(self, store, fake_fs, dns_state):
        """Test the temp path is the real path plus the generated suffix."""
        store.save_state(dns_state)

        assert fake_fs.rename_old_paths == [PATH + "fake-generated-uuid"]
        assert fake_fs.rename_new_paths == [PATH]
        assert PATH + "fake-generated-uuid" not in fake_fs.files

    def test_sets_permissions_on_temp_file(self, store, fake_permissions, dns_state):
        """Test platform permissions are applied before the rename."""
        store.save_state(dns_state)

        assert fake_permissions.paths == [PATH + "fake-generated-uuid"]

    def test_write_failure(self, store, fake_fs, dns_state):
        """Test a failed temp write raises StateWriteError."""
        fake_fs.write_error = OSError("fake fail saving error")

        with pytest.raises(StateWriteError) as exc_info:
            store.save_state(dns_state)

        assert str(exc_info.value) == "writing the DNS state: fake fail saving error"

    def test_uuid_failure(self, store, fake_uuid_generator, dns_state):
        """Test a failed suffix generation raises UUIDGenerationError."""
        fake_uuid_generator.generate_error = OSError("failed to generate a uuid")

        with pytest.raises(UUIDGenerationError) as exc_info:
            store.save_state(dns_state)

        assert str(exc_info.value) == (
            "generating uuid for temp file: failed to generate a uuid"
        )

    def test_rename_failure(self, store, fake_fs, dns_state):
        """Test a failed rename raises StateRenameError."""
        fake_fs.rename_error = OSError("failed to rename")

        with pytest.raises(StateRenameError, match="renaming: failed to rename"):
            store.save_state(dns_state)

    def test_permission_failure(self, store, fake_permissions, dns_state):
        """Test a failed permission change raises StatePermissionError."""
        fake_permissions.error = PermissionError("failed to set permissions")

        with pytest.raises(StatePermissionError) as exc_info:
            store.save_state(dns_state)

        assert str(exc_info.value) == (
            "setting permissions of DNS state: failed to set permissions"
        )

    @pytest.mark.parametrize("phase", ["write", "permissions", "rename"])
    def test_failed_save_leaves_committed_file_untouched(
        self, store, fake_fs, fake_permissions, dns_state, phase
    ):
        """Test a failure in any phase keeps the previous file byte-for-byte."""
        store.save_state(dns_state)
        committed = fake_fs.files[PATH]

        if phase == "write":
            fake_fs.write_errors[PATH + "fake-generated-uuid"] = OSError("disk full")
        elif phase == "permissions":
            fake_permissions.error = OSError("chmod failed")
        else:
            fake_fs.rename_error = OSError("rename failed")

        newer = LocalDNSState(version=9999, records=[("other", "1.1.1.1")])
        with pytest.raises(Exception):
            store.save_state(newer)

        assert fake_fs.files[PATH] == committed
        assert store.load_state() == dns_state

    def test_failed_rename_discards_temp_file(self, store, fake_fs, dns_state):
        """Test the temp file is cleaned up after a failed rename."""
        fake_fs.rename_error = OSError("failed to rename")

        with pytest.raises(StateRenameError):
            store.save_state(dns_state)

        assert PATH + "fake-generated-uuid" not in fake_fs.files
        assert PATH + "fake-generated-uuid" in fake_fs.removed

    def test_failed_write_does_not_override_existing_records(
        self, store, fake_fs, dns_state
    ):
        """Test an existing file survives a failed temp write."""
        fake_fs.files[PATH] = b"{}"
        fake_fs.write_errors[PATH + "fake-generated-uuid"] = OSError(
            "failed to write tmp file"
        )

        with pytest.raises(StateWriteError, match="failed to write tmp file"):
            store.save_state(dns_state)

        assert json.loads(fake_fs.files[PATH]) == {}


class TestNeedsUpdate:
    """Tests for SyncDNSState.needs_update()."""

    def test_true_when_file_missing(self, store):
        """Test a missing file always needs an update."""
        assert store.needs_update(0) is True

    @pytest.mark.parametrize(
        "stored, required, expected",
        [
            (1, 2, True),
            (1, 1, False),
            (1, 0, False),
            (0, 0, False),
            (5, 100, True),
        ],
    )
    def test_compares_versions(self, store, fake_fs, stored, required, expected):
        """Test staleness is stored < required."""
        fake_fs.write_json(PATH, {"version": stored})

        assert store.needs_update(required) is expected

    def test_true_on_read_error(self, store, fake_fs):
        """Test a read failure is treated as stale."""
        fake_fs.write_json(PATH, {"version": 1})
        fake_fs.read_error = OSError("fake fail reading error")

        assert store.needs_update(2) is True

    def test_true_on_corrupt_file(self, store, fake_fs):
        """Test a corrupt file is treated as stale, whatever the version."""
        fake_fs.files[PATH] = b"garbage"

        assert store.needs_update(0) is True


class TestOnDisk:
    """Integration tests against the real filesystem."""

    def test_save_and_load_with_os_filesystem(self, tmp_path, dns_state):
        """Test the store works end to end with OsFileSystem."""
        from hostagent.platform.permissions import RecordsPermissionSetter
        from hostagent.system.filesystem import OsFileSystem
        from hostagent.system.uuidgen import RandomUUIDGenerator

        fs = OsFileSystem()
        path = tmp_path / "dns" / "records.json"
        store = SyncDNSState(
            fs, str(path), RandomUUIDGenerator(), RecordsPermissionSetter(fs, mode=0o640)
        )

        store.save_state(dns_state)

        assert store.load_state() == dns_state
        assert (path.stat().st_mode & 0o777) == 0o640
        assert [p.name for p in path.parent.iterdir()] == ["records.json"]
        assert store.needs_update(1234) is False
        assert store.needs_update(1235) is True
