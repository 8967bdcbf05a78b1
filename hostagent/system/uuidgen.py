"""Unique name generation for temporary files."""

from __future__ import annotations

import uuid
from typing import Protocol


class UUIDGenerator(Protocol):
    def generate(self) -> str:
        """Return an opaque string unlikely to collide across concurrent calls.

        Raises:
            OSError: If no randomness source is available
        """
        ...


class RandomUUIDGenerator:
    """Random (version 4) UUIDs; ``uuid4`` reads ``os.urandom``."""

    def generate(self) -> str:
        return str(uuid.uuid4())
