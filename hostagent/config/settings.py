"""Filesystem locations and permissions used by the agent's state subsystem."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


BASE_DIR = Path(os.environ.get("HOSTAGENT_BASE_DIR", "/var/vcap/bosh"))

SETTINGS_PATH = Path(
    os.environ.get("HOSTAGENT_SETTINGS_PATH", BASE_DIR / "settings.json")
)
DISK_SETTINGS_PATH = Path(
    os.environ.get(
        "HOSTAGENT_DISK_SETTINGS_PATH", BASE_DIR / "persistent_disk_hints.json"
    )
)
DNS_RECORDS_PATH = Path(
    os.environ.get(
        "HOSTAGENT_DNS_RECORDS_PATH",
        BASE_DIR.parent / "instance" / "dns" / "records.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_RECORDS_MODE = 0o640
DEFAULT_RECORDS_OWNER: str | None = None
DEFAULT_RECORDS_GROUP: str | None = None


def parse_mode(value: str | int) -> int:
    """Parse a file mode given as an octal string ("0640") or an int.

    Raises:
        ValueError: If the value is not a valid permission mode
    """
    if isinstance(value, int):
        mode = value
    else:
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        mode = int(text, 8)
    if mode < 0 or mode > 0o7777:
        raise ValueError(f"File mode out of range: {oct(mode)}")
    return mode


@dataclass(frozen=True)
class AgentConfig:
    base_dir: Path = BASE_DIR
    settings_path: Path = SETTINGS_PATH
    disk_settings_path: Path = DISK_SETTINGS_PATH
    dns_records_path: Path = DNS_RECORDS_PATH
    records_mode: int = DEFAULT_RECORDS_MODE
    records_owner: str | None = DEFAULT_RECORDS_OWNER
    records_group: str | None = DEFAULT_RECORDS_GROUP

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AgentConfig:
        """Build a config from HOSTAGENT_* environment variables.

        Paths not given explicitly are derived from HOSTAGENT_BASE_DIR, so
        pointing the base dir somewhere else moves every state file with it.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: If HOSTAGENT_RECORDS_MODE is not an octal mode
        """
        env = os.environ if environ is None else environ
        base_dir = Path(env.get("HOSTAGENT_BASE_DIR", "/var/vcap/bosh"))
        return cls(
            base_dir=base_dir,
            settings_path=Path(
                env.get("HOSTAGENT_SETTINGS_PATH", base_dir / "settings.json")
            ),
            disk_settings_path=Path(
                env.get(
                    "HOSTAGENT_DISK_SETTINGS_PATH",
                    base_dir / "persistent_disk_hints.json",
                )
            ),
            dns_records_path=Path(
                env.get(
                    "HOSTAGENT_DNS_RECORDS_PATH",
                    base_dir.parent / "instance" / "dns" / "records.json",
                )
            ),
            records_mode=parse_mode(
                env.get("HOSTAGENT_RECORDS_MODE", DEFAULT_RECORDS_MODE)
            ),
            records_owner=env.get("HOSTAGENT_RECORDS_OWNER") or None,
            records_group=env.get("HOSTAGENT_RECORDS_GROUP") or None,
        )
