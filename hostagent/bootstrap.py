"""Factories that assemble the state components from an :class:`AgentConfig`."""

from __future__ import annotations

from hostagent.config.settings import AgentConfig
from hostagent.platform.disk.sfdisk import SfdiskPartitioner
from hostagent.platform.network import IpRouteNetworkResolver
from hostagent.platform.permissions import RecordsPermissionSetter
from hostagent.settings.service import SettingsService
from hostagent.settings.sources import DefaultNetworkResolver, Source
from hostagent.state.dns_state import SyncDNSState
from hostagent.system.filesystem import FileSystem, OsFileSystem
from hostagent.system.uuidgen import RandomUUIDGenerator


def build_settings_service(
    source: Source,
    resolver: DefaultNetworkResolver | None = None,
    config: AgentConfig | None = None,
    fs: FileSystem | None = None,
) -> SettingsService:
    config = config or AgentConfig.from_env()
    return SettingsService(
        fs or OsFileSystem(),
        str(config.settings_path),
        str(config.disk_settings_path),
        source,
        resolver or IpRouteNetworkResolver(),
    )


def build_sync_dns_state(
    config: AgentConfig | None = None,
    fs: FileSystem | None = None,
) -> SyncDNSState:
    config = config or AgentConfig.from_env()
    fs = fs or OsFileSystem()
    permissions = RecordsPermissionSetter(
        fs,
        mode=config.records_mode,
        owner=config.records_owner,
        group=config.records_group,
    )
    return SyncDNSState(fs, str(config.dns_records_path), RandomUUIDGenerator(), permissions)


def build_partitioner() -> SfdiskPartitioner:
    return SfdiskPartitioner()
