"""Versioned local state persisted atomically."""

from __future__ import annotations

from .dns_state import LocalDNSState, SyncDNSState


__all__ = ["LocalDNSState", "SyncDNSState"]
