"""Settings model and the reconciliation service that keeps it current."""

from __future__ import annotations

from .models import (
    DiskSettings,
    Disks,
    Env,
    Network,
    Route,
    Settings,
    networks_have_interface_alias,
)
from .service import SettingsService, merge_disk_settings
from .sources import DefaultNetworkResolver, FileSettingsSource, Source


__all__ = [
    "DefaultNetworkResolver",
    "DiskSettings",
    "Disks",
    "Env",
    "FileSettingsSource",
    "Network",
    "Route",
    "Settings",
    "SettingsService",
    "Source",
    "merge_disk_settings",
    "networks_have_interface_alias",
]
